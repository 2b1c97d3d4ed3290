"""
Runtime binding of one step occurrence to its definition and outcome.

A StepInvocation resolves its step definition, runs the handler at most once
and converts whatever the handler raises into a Status. Nothing raised by a
handler escapes invoke().
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
import logging

from ..bdd.model import Location, Step
from ..core.base import RunContext, Status, worst_status
from ..core.exceptions import Ambiguous, Pending, TableMismatch, Undefined
from .backtrace import TraceFrame, frames_from_exception
from .step_definitions import NoStepMatch

logger = logging.getLogger(__name__)

REPEAT_KEYWORDS = ("And", "But")
STAR_KEYWORD = "*"
STAR_CODE_KEYWORD = "Given"


@dataclass
class StepFailure:
    """A captured handler or lookup failure with its filtered trace"""
    exception: BaseException
    frames: List[TraceFrame] = field(default_factory=list)
    trace: List[str] = field(default_factory=list)
    reported: bool = True

    @property
    def message(self) -> str:
        return str(self.exception) or type(self.exception).__name__

    @property
    def error_type(self) -> str:
        return type(self.exception).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.error_type,
            'message': self.message,
            'trace': list(self.trace),
        }


@dataclass
class StepResult:
    """What the reporter receives for every executed step"""
    keyword: str
    name: str
    match_id: Optional[str]
    multiline_arg: Any
    status: Status
    failure: Optional[StepFailure]
    location: Location
    background: bool = False
    step_match: Any = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'keyword': self.keyword,
            'name': self.name,
            'status': self.status.value,
            'location': str(self.location),
            'match': self.match_id,
            'background': self.background,
        }
        if self.multiline_arg is not None:
            result['argument'] = self.multiline_arg.to_dict()
        if self.failure is not None:
            result['error'] = self.failure.message
            result['error_type'] = self.failure.error_type
            result['trace'] = list(self.failure.trace)
        return result


class StepInvocation:
    """One concrete occurrence of a step in one step collection"""

    def __init__(self, step: Step, name: Optional[str] = None, multiline_arg: Any = None,
                 matched_cells: Iterable[int] = (), background: bool = False, row: Any = None):
        self.step = step
        self.name = name if name is not None else step.name
        self.multiline_arg = multiline_arg if multiline_arg is not None else step.multiline_arg
        self.matched_cells: Tuple[int, ...] = tuple(matched_cells)
        self.background = background
        self.row = row
        self.collection: Optional["StepCollection"] = None

        self.status: Optional[Status] = None
        self.step_match = None
        self.exception: Optional[BaseException] = None
        self.failure: Optional[StepFailure] = None
        self.different_table = None
        self._skip_invoke = False
        self._set_status(Status.SKIPPED)

    @property
    def keyword(self) -> str:
        return self.step.keyword

    @property
    def location(self) -> Location:
        return self.step.location

    @property
    def attempted(self) -> bool:
        return self._skip_invoke

    def skip_invoke(self) -> None:
        """Never run the handler for this invocation"""
        self._skip_invoke = True

    def invoke(self, runtime, run_context: RunContext) -> None:
        if run_context.wants_to_quit:
            return

        self.find_step_match(runtime, run_context)

        if (self._skip_invoke or run_context.dry_run or self.exception is not None
                or self._earlier_failure()):
            return

        self._skip_invoke = True
        try:
            runtime.invoke(self)
            runtime.after_step(self)
            self._set_status(Status.PASSED)
        except Pending as e:
            self._failed(runtime, run_context, e)
            self._set_status(Status.PENDING)
        except Undefined as e:
            self._failed(runtime, run_context, e)
            self._set_status(Status.UNDEFINED)
        except TableMismatch as e:
            self.different_table = e.table
            self._failed(runtime, run_context, e)
            self._set_status(Status.FAILED)
        except Exception as e:
            self._failed(runtime, run_context, e)
            self._set_status(Status.FAILED)

        logger.debug(f"{self.keyword} {self.name}: {self.status}")

    def find_step_match(self, runtime, run_context: RunContext) -> None:
        if self.step_match is not None:
            return
        try:
            self.step_match = runtime.step_match(self.name)
        except Undefined as e:
            self._failed(runtime, run_context, e, clear_backtrace=True)
            self._set_status(Status.UNDEFINED)
            self.step_match = NoStepMatch(self.name)
        except Ambiguous as e:
            self._failed(runtime, run_context, e)
            self._set_status(Status.FAILED)
            self.step_match = NoStepMatch(self.name)
        runtime.step_visited(self)

    def _earlier_failure(self) -> bool:
        return self.collection is not None and self.collection.failed_before(self)

    def _failed(self, runtime, run_context: RunContext, e: BaseException,
                clear_backtrace: bool = False) -> None:
        frames = [] if clear_backtrace else frames_from_exception(e)
        frames.append(TraceFrame(
            filename=self.location.filename,
            lineno=self.location.line,
            name=f"{self.keyword} {self.name}",
        ))

        backtrace_filter = runtime.backtrace_filter
        frames = backtrace_filter.filter(frames)

        reported = (run_context.strict or not isinstance(e, Undefined) or e.nested)
        self.exception = e
        self.failure = StepFailure(
            exception=e,
            frames=frames,
            trace=backtrace_filter.format(frames),
            reported=reported,
        )

    def _set_status(self, status: Status) -> None:
        if self.status is Status.FAILED and status is not Status.FAILED:
            return
        self.status = status
        if self.row is not None and self.matched_cells:
            self.row.mark_cells(self.matched_cells, status)

    @property
    def reported_failure(self) -> Optional[StepFailure]:
        if self.failure is not None and self.failure.reported:
            return self.failure
        return None

    @property
    def previous(self) -> Optional["StepInvocation"]:
        if self.collection is None:
            return None
        return self.collection.previous_step(self)

    @property
    def actual_keyword(self) -> str:
        """Keyword with And/But resolved to the nearest preceding real keyword"""
        keyword = self.keyword
        if keyword in REPEAT_KEYWORDS:
            previous = self.previous
            if previous is not None:
                return previous.actual_keyword
            return keyword
        return STAR_CODE_KEYWORD if keyword == STAR_KEYWORD else keyword

    def step_result(self) -> StepResult:
        return StepResult(
            keyword=self.keyword,
            name=self.name,
            match_id=self.step_match.id if self.step_match is not None else None,
            multiline_arg=self.different_table or self.multiline_arg,
            status=self.status,
            failure=self.reported_failure,
            location=self.location,
            background=self.background,
            step_match=self.step_match,
        )

    def __repr__(self):
        return f"<StepInvocation {self.keyword} {self.name!r} {self.status}>"


class StepCollection:
    """Ordered invocations of one scenario or outline row, background first"""

    def __init__(self, invocations: Sequence[StepInvocation]):
        self.invocations: List[StepInvocation] = list(invocations)
        for invocation in self.invocations:
            if invocation.collection is not None and invocation.collection is not self:
                raise ValueError(f"{invocation!r} already belongs to another step collection")
            invocation.collection = self

    @classmethod
    def build(cls, steps: Sequence[Step], background_steps: Sequence[Step] = ()) -> "StepCollection":
        """Fresh invocations for a plain scenario"""
        invocations = [StepInvocation(step, background=True) for step in background_steps]
        invocations.extend(StepInvocation(step) for step in steps)
        return cls(invocations)

    def __iter__(self) -> Iterator[StepInvocation]:
        return iter(self.invocations)

    def __len__(self) -> int:
        return len(self.invocations)

    def __getitem__(self, index):
        return self.invocations[index]

    def previous_step(self, invocation: StepInvocation) -> Optional[StepInvocation]:
        index = self._index_of(invocation)
        return self.invocations[index - 1] if index > 0 else None

    def failed_before(self, invocation: StepInvocation) -> bool:
        """True if an earlier invocation holds a failure"""
        for other in self.invocations[:self._index_of(invocation)]:
            if other.exception is not None:
                return True
        return False

    @property
    def exception(self) -> Optional[BaseException]:
        for invocation in self.invocations:
            if invocation.exception is not None:
                return invocation.exception
        return None

    @property
    def status(self) -> Status:
        return worst_status(invocation.status for invocation in self.invocations)

    @property
    def statuses(self) -> List[Status]:
        return [invocation.status for invocation in self.invocations]

    def skip_invoke(self) -> None:
        for invocation in self.invocations:
            invocation.skip_invoke()

    def _index_of(self, invocation: StepInvocation) -> int:
        for index, other in enumerate(self.invocations):
            if other is invocation:
                return index
        raise ValueError(f"{invocation!r} is not part of this step collection")
