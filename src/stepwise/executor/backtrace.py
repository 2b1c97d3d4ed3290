import os
import re
import traceback
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence
import logging

logger = logging.getLogger(__name__)

ENGINE_DIR = str(Path(__file__).resolve().parent.parent)

DEFAULT_FILTER_PATTERNS = [
    re.escape(ENGINE_DIR + os.sep),
    r"site-packages[/\\]",
    r"dist-packages[/\\]",
    r"[/\\]_pytest[/\\]",
    r"[/\\]pluggy[/\\]",
    r"[/\\]unittest[/\\]",
    r"[/\\]behave[/\\]",
    r"[/\\]asyncio[/\\]",
]


@dataclass(frozen=True)
class TraceFrame:
    """One structured diagnostic frame"""
    filename: str
    lineno: int = 0
    name: str = ""
    internal: bool = False

    def format(self, truncate: bool = False) -> str:
        location = f"{self.filename}:{self.lineno}" if self.lineno else self.filename
        if truncate or not self.name:
            return location
        return f"{location}:in `{self.name}'"


def frames_from_exception(exc: BaseException) -> List[TraceFrame]:
    """Structured frames of an exception's traceback, outermost first"""
    if exc.__traceback__ is None:
        return []
    return [
        TraceFrame(filename=summary.filename, lineno=summary.lineno or 0, name=summary.name)
        for summary in traceback.extract_tb(exc.__traceback__)
    ]


class BacktraceFilter:
    """
    Removes engine and test-library frames from diagnostic traces and
    shortens paths under the working directory.

    Filtering only changes what is displayed.
    """

    def __init__(self, patterns: Optional[Iterable[str]] = None, cwd: Optional[str] = None,
                 full_trace: bool = False, truncate: bool = False,
                 is_internal: Optional[Callable[[TraceFrame], bool]] = None):
        if patterns is None:
            patterns = DEFAULT_FILTER_PATTERNS
        self.patterns = [re.compile(p) for p in patterns]
        self.cwd = os.path.abspath(cwd or os.getcwd())
        self.full_trace = full_trace
        self.truncate = truncate
        self.is_internal = is_internal

    def add_pattern(self, pattern: str) -> None:
        self.patterns.append(re.compile(pattern))

    def _internal(self, frame: TraceFrame) -> bool:
        if frame.internal:
            return True
        if self.is_internal is not None and self.is_internal(frame):
            return True
        return any(p.search(frame.filename) for p in self.patterns)

    def _relative(self, frame: TraceFrame) -> TraceFrame:
        prefix = self.cwd.rstrip(os.sep) + os.sep
        if frame.filename.startswith(prefix):
            return replace(frame, filename="./" + frame.filename[len(prefix):].replace(os.sep, "/"))
        return frame

    def filter(self, frames: Sequence[TraceFrame]) -> List[TraceFrame]:
        if self.full_trace:
            return list(frames)

        # internal patterns are checked against absolute paths
        kept = [frame for frame in frames if not self._internal(frame)]
        return [self._relative(frame) for frame in kept]

    def format(self, frames: Sequence[TraceFrame]) -> List[str]:
        truncate = self.truncate and not self.full_trace
        return [frame.format(truncate=truncate) for frame in frames]
