import re
from typing import Optional, Tuple

from ..bdd.model import DocString, Table

_ARGUMENT_PATTERNS = [
    (re.compile(r'"[^"]*"'), r'"([^"]*)"'),
    (re.compile(r"(?<![\w.])-?\d+(?:\.\d+)?(?![\w.])"), r"(-?\d+(?:\.\d+)?)"),
]
_SPECIAL = re.compile(r"([\\.^$*+?{}\[\]|()])")


def _escape(text: str) -> str:
    # re.escape also escapes spaces, which reads badly in a pasted snippet
    return _SPECIAL.sub(r"\\\1", text)


def snippet_pattern(step_name: str) -> Tuple[str, int]:
    """Regex source for a step name, with quoted strings and numbers captured"""
    pieces = []
    position = 0
    spans = []
    for regex, replacement in _ARGUMENT_PATTERNS:
        for match in regex.finditer(step_name):
            if any(start < match.end() and match.start() < end for start, end, _ in spans):
                continue
            spans.append((match.start(), match.end(), replacement))
    spans.sort()

    for start, end, replacement in spans:
        pieces.append(_escape(step_name[position:start]))
        pieces.append(replacement)
        position = end
    pieces.append(_escape(step_name[position:]))
    return "".join(pieces), len(spans)


def make_snippet(keyword: str, step_name: str, multiline_arg: Optional[object] = None) -> str:
    """Ready-to-paste step definition for an undefined step"""
    decorator = keyword.strip().lower()
    if decorator not in ('given', 'when', 'then'):
        decorator = 'step'

    pattern, arg_count = snippet_pattern(step_name)
    params = ['context'] + [f'arg{index}' for index in range(1, arg_count + 1)]
    if isinstance(multiline_arg, Table):
        params.append('table')
    elif isinstance(multiline_arg, DocString):
        params.append('text')

    quote = "'" if "'" not in pattern else '"""'
    return (
        f"@{decorator}(r{quote}{pattern}{quote})\n"
        f"def step_impl({', '.join(params)}):\n"
        f"    pending(\"Write code here that turns the phrase above into concrete actions\")\n"
    )
