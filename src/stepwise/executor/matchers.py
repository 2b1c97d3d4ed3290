"""
Pull arguments out of step text.

Patterns are regular expressions. A plain string pattern must match the whole
step text, so it is wrapped as ^(?:...)$ when compiled and alternations stay
inside the anchors; a pre-compiled pattern is used as given and searched for
anywhere in the text.
"""
import re
import inspect
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Union
import logging

logger = logging.getLogger(__name__)

PatternLike = Union[str, re.Pattern]


@dataclass(frozen=True)
class Argument:
    """An argument found in a step name; offsets are kept for reporters"""
    start: int
    end: int
    value: Optional[str]


def strip_anchors(source: str) -> str:
    """Drop a leading ^ and an unescaped trailing $ from a pattern source"""
    if source.startswith('^'):
        source = source[1:]
    if source.endswith('$'):
        backslashes = len(source[:-1]) - len(source[:-1].rstrip('\\'))
        if backslashes % 2 == 0:
            source = source[:-1]
    return source


def compile_pattern(pattern: PatternLike, ignore_case: bool = False) -> re.Pattern:
    """Compile a step pattern, anchoring plain strings to the whole text"""
    if isinstance(pattern, re.Pattern):
        return pattern
    if not isinstance(pattern, str):
        raise TypeError(f"Step pattern must be a string or compiled regex, got {type(pattern).__name__}")

    return re.compile(f"^(?:{strip_anchors(pattern)})$", re.IGNORECASE if ignore_case else 0)


def extract_arguments(pattern: re.Pattern, step_text: str) -> Optional[List[Argument]]:
    """
    Match a compiled pattern against step text.

    Returns:
        Ordered arguments, one per capture group, or None when the text
        does not match. Optional groups that did not participate yield
        an Argument whose value is None.
    """
    match = pattern.search(step_text)
    if not match:
        return None

    arguments = []
    for index in range(1, (pattern.groups or 0) + 1):
        arguments.append(Argument(match.start(index), match.end(index), match.group(index)))
    return arguments


class Transform:
    """Converts an argument string that fully matches its pattern"""

    def __init__(self, pattern: PatternLike, func: Callable[..., Any]):
        if func is None or not callable(func):
            raise TypeError("Transform needs a callable")
        self.regex = compile_pattern(pattern)
        self.source = pattern if isinstance(pattern, str) else self.regex.pattern
        self.func = func

    def match(self, value: Any) -> Optional[re.Match]:
        if not isinstance(value, str):
            return None
        return self.regex.fullmatch(value)

    def apply(self, match: re.Match) -> Any:
        groups = match.groups()
        if groups:
            return self.func(*groups)
        return self.func(match.group(0))

    @property
    def pattern_source(self) -> str:
        return self.source

    def __repr__(self):
        return f"<Transform: {self.pattern_source!r} -> {getattr(self.func, '__name__', self.func)!r}>"


def apply_transforms(values: Sequence[Any], transforms: Sequence[Transform]) -> List[Any]:
    """
    Run each value through the most recently registered transform whose
    pattern matches it. Exceptions from a transform propagate to the caller.
    """
    converted = []
    for value in values:
        for transform in reversed(transforms):
            match = transform.match(value)
            if match:
                logger.debug(f"Transforming {value!r} with {transform!r}")
                value = transform.apply(match)
                break
        converted.append(value)
    return converted


def callable_location(func: Callable) -> str:
    """file:line where a handler was defined"""
    target = inspect.unwrap(func)
    code = getattr(target, "__code__", None)
    if code is not None:
        return f"{code.co_filename}:{code.co_firstlineno}"
    try:
        return f"{inspect.getfile(type(target))}:0"
    except TypeError:
        return f"<{getattr(target, '__name__', type(target).__name__)}>"
