"""
Immutable feature model consumed by the executor.

The parser adapter builds these objects once per feature file; nothing in the
executor mutates them. Runtime state lives on step invocations instead.
"""
import difflib
import re
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..core.exceptions import TableMismatch

PLACEHOLDER_PATTERN = re.compile(r"<([^<>]+)>")


@dataclass(frozen=True)
class Location:
    """File and line a model element came from"""
    filename: str
    line: int = 0

    def __str__(self):
        return f"{self.filename}:{self.line}"


@dataclass(frozen=True)
class Table:
    """Multiline table argument, also used for Examples tables"""
    headings: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...] = ()

    @classmethod
    def from_raw(cls, raw: Sequence[Sequence[str]]) -> "Table":
        """Build from a list of rows where the first row holds the headings"""
        if not raw:
            return cls(headings=())
        return cls(
            headings=tuple(str(cell) for cell in raw[0]),
            rows=tuple(tuple(str(cell) for cell in row) for row in raw[1:]),
        )

    def raw(self) -> List[List[str]]:
        return [list(self.headings)] + [list(row) for row in self.rows]

    def hashes(self) -> List[Dict[str, str]]:
        """Rows as dicts keyed by heading"""
        return [dict(zip(self.headings, row)) for row in self.rows]

    def substitute(self, values: Mapping[str, str]) -> "Table":
        return Table(
            headings=tuple(substitute_placeholders(cell, values) for cell in self.headings),
            rows=tuple(
                tuple(substitute_placeholders(cell, values) for cell in row)
                for row in self.rows
            ),
        )

    def placeholders(self) -> List[str]:
        names = []
        for row in [self.headings] + list(self.rows):
            for cell in row:
                names.extend(PLACEHOLDER_PATTERN.findall(cell))
        return names

    def diff(self, actual: Union["Table", Sequence[Sequence[str]]]) -> None:
        """
        Compare against an actual table.

        Raises TableMismatch carrying a diff table whose first column marks
        each row: "" for rows in both, "-" for expected rows that are missing
        and "+" for unexpected rows.
        """
        if not isinstance(actual, Table):
            actual = Table.from_raw(actual)
        if self == actual:
            return

        expected_raw = [tuple(row) for row in self.raw()]
        actual_raw = [tuple(row) for row in actual.raw()]
        matcher = difflib.SequenceMatcher(a=expected_raw, b=actual_raw, autojunk=False)

        marked = []
        for tag, i1, i2, j1, j2 in matcher.get_opcodes():
            if tag == "equal":
                marked.extend(("",) + row for row in expected_raw[i1:i2])
            if tag in ("delete", "replace"):
                marked.extend(("-",) + row for row in expected_raw[i1:i2])
            if tag in ("insert", "replace"):
                marked.extend(("+",) + row for row in actual_raw[j1:j2])

        # equal headings become the diff table's own headings
        if marked and marked[0][0] == "":
            diff_table = Table(headings=marked[0], rows=tuple(marked[1:]))
        else:
            diff_table = Table(headings=("",) + self.headings, rows=tuple(marked))
        raise TableMismatch(diff_table)

    def to_dict(self) -> Dict[str, list]:
        return {"headings": list(self.headings), "rows": [list(row) for row in self.rows]}


@dataclass(frozen=True)
class DocString:
    """Multiline free-text argument"""
    content: str
    content_type: str = ""

    def substitute(self, values: Mapping[str, str]) -> "DocString":
        return replace(self, content=substitute_placeholders(self.content, values))

    def placeholders(self) -> List[str]:
        return PLACEHOLDER_PATTERN.findall(self.content)

    def to_dict(self) -> Dict[str, str]:
        return {"content": self.content, "content_type": self.content_type}

    def __str__(self):
        return self.content


MultilineArg = Union[Table, DocString]


@dataclass(frozen=True)
class Step:
    keyword: str
    name: str
    location: Location
    multiline_arg: Optional[MultilineArg] = None

    def substitute(self, values: Mapping[str, str]) -> "Step":
        """Concrete step for one Examples row"""
        multiline_arg = self.multiline_arg.substitute(values) if self.multiline_arg else None
        return replace(
            self,
            name=substitute_placeholders(self.name, values),
            multiline_arg=multiline_arg,
        )

    def placeholders(self) -> List[str]:
        names = PLACEHOLDER_PATTERN.findall(self.name)
        if self.multiline_arg is not None:
            names.extend(self.multiline_arg.placeholders())
        return names


@dataclass(frozen=True)
class Background:
    steps: Tuple[Step, ...] = ()
    name: str = ""
    location: Optional[Location] = None


@dataclass(frozen=True)
class Scenario:
    name: str
    steps: Tuple[Step, ...]
    location: Location
    keyword: str = "Scenario"
    tags: Tuple[str, ...] = ()
    background: Optional[Background] = None


@dataclass(frozen=True)
class Examples:
    table: Optional[Table]
    location: Location
    name: str = ""
    keyword: str = "Examples"
    tags: Tuple[str, ...] = ()
    row_lines: Tuple[int, ...] = ()


@dataclass(frozen=True)
class ScenarioOutline:
    name: str
    steps: Tuple[Step, ...]
    location: Location
    examples: Tuple[Examples, ...] = ()
    keyword: str = "Scenario Outline"
    tags: Tuple[str, ...] = ()
    background: Optional[Background] = None


FeatureElement = Union[Scenario, ScenarioOutline]


@dataclass(frozen=True)
class Feature:
    name: str
    filename: str
    elements: Tuple[FeatureElement, ...] = ()
    background: Optional[Background] = None
    tags: Tuple[str, ...] = ()
    description: str = ""
    language: str = "en"
    line: int = 1


def substitute_placeholders(text: str, values: Mapping[str, str]) -> str:
    """Replace <name> placeholders with row values; unknown names are kept"""
    def _replace(match):
        key = match.group(1)
        return str(values[key]) if key in values else match.group(0)

    return PLACEHOLDER_PATTERN.sub(_replace, text)
