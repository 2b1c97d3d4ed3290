from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional
from dataclasses import dataclass, field
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class Status(Enum):
    """Outcome of a step, ordered by severity"""
    PASSED = "passed"
    UNDEFINED = "undefined"
    PENDING = "pending"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def severity(self) -> int:
        if self is Status.PASSED:
            return 0
        elif self is Status.UNDEFINED:
            return 1
        elif self is Status.PENDING:
            return 2
        elif self is Status.SKIPPED:
            return 3
        elif self is Status.FAILED:
            return 4
        raise ValueError(f"Unknown status: {self!r}")

    def __lt__(self, other):
        if not isinstance(other, Status):
            return NotImplemented
        return self.severity < other.severity

    def __le__(self, other):
        if not isinstance(other, Status):
            return NotImplemented
        return self.severity <= other.severity

    def __gt__(self, other):
        if not isinstance(other, Status):
            return NotImplemented
        return self.severity > other.severity

    def __ge__(self, other):
        if not isinstance(other, Status):
            return NotImplemented
        return self.severity >= other.severity

    def __str__(self):
        return self.value


def worst_status(statuses: Iterable[Status]) -> Status:
    """
    Return the most severe status present.

    An empty collection has nothing that failed, so it counts as passed.
    """
    worst = None
    for status in statuses:
        if worst is None or status.severity > worst.severity:
            worst = status
    return worst if worst is not None else Status.PASSED


@dataclass
class RunContext:
    """
    Execution-mode switches threaded through every traversal call.
    Holds the quit flag instead of keeping it in module state.
    """
    dry_run: bool = False
    strict: bool = False
    full_trace: bool = False
    truncate_trace: bool = False
    quit_requested: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    def request_quit(self) -> None:
        """Ask the run to stop before the next unit or step"""
        logger.info("Quit requested, remaining steps will not run")
        self.quit_requested = True

    @property
    def wants_to_quit(self) -> bool:
        return self.quit_requested


class Reporter(ABC):
    """Receives execution events in execution order"""

    def feature_started(self, feature: Any) -> None:
        pass

    @abstractmethod
    def unit_started(self, unit: Any) -> None:
        """Called before the first step of a scenario or outline row"""
        pass

    @abstractmethod
    def step_finished(self, result: Any) -> None:
        """Called with the final StepResult of every step"""
        pass

    @abstractmethod
    def unit_finished(self, unit: Any, status: Status) -> None:
        """Called after the last step of a scenario or outline row"""
        pass

    def feature_finished(self, feature: Any, status: Optional[Status] = None) -> None:
        pass
