from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
import logging

from ..bdd.model import Background, Examples, Location, ScenarioOutline, Step
from ..core.base import Status, worst_status
from ..core.exceptions import MissingExamples
from .step_invocation import StepCollection, StepInvocation

logger = logging.getLogger(__name__)


class OutlineRow:
    """
    One Examples data row with its own step collection.

    Cell statuses start as skipped and are updated through mark_cells by the
    invocations that use the cell's value.
    """

    def __init__(self, outline: ScenarioOutline, examples: Examples, table_index: int,
                 row_index: int, headings: Sequence[str], cells: Sequence[str],
                 line: int = 0):
        self.outline = outline
        self.examples = examples
        self.table_index = table_index
        self.row_index = row_index
        self.headings: Tuple[str, ...] = tuple(headings)
        self.cells: Tuple[str, ...] = tuple(cells)
        self.location = Location(outline.location.filename, line or examples.location.line)
        self.cell_statuses: List[Status] = [Status.SKIPPED] * len(self.cells)
        self.collection: Optional[StepCollection] = None

    @property
    def values(self) -> Dict[str, str]:
        return dict(zip(self.headings, self.cells))

    @property
    def name(self) -> str:
        name = f"{self.outline.name} -- @{self.table_index}.{self.row_index}"
        if self.examples.name:
            name += f" {self.examples.name}"
        return name

    @property
    def tags(self) -> Tuple[str, ...]:
        return self.outline.tags + self.examples.tags

    def mark_cells(self, indices: Iterable[int], status: Status) -> None:
        for index in indices:
            if self.cell_statuses[index] is Status.FAILED:
                continue
            self.cell_statuses[index] = status

    def cell_indices(self, step: Step) -> Tuple[int, ...]:
        """Indices of the cells whose placeholders the step template uses"""
        used = set(step.placeholders())
        return tuple(index for index, heading in enumerate(self.headings) if heading in used)

    @property
    def status(self) -> Status:
        if self.collection is None:
            return Status.SKIPPED
        return self.collection.status

    @property
    def failed(self) -> bool:
        return self.status is Status.FAILED

    def __iter__(self) -> Iterator[StepInvocation]:
        return iter(self.collection or [])

    def __repr__(self):
        return f"<OutlineRow {self.name!r} {self.values}>"


class OutlineExpander:
    """Turns a scenario outline into one step collection per Examples row"""

    def expand(self, outline: ScenarioOutline, background: Optional[Background] = None) -> List[OutlineRow]:
        """
        Build every row of every Examples table

        Args:
            outline: The scenario outline
            background: Background whose steps run ahead of each row;
                defaults to the outline's own background

        Returns:
            Rows in file order, each owning a fresh StepCollection

        Raises:
            MissingExamples: the outline has no Examples section
        """
        if not outline.examples:
            raise MissingExamples(f"Missing Example section for Scenario Outline at {outline.location}.")

        if background is None:
            background = outline.background
        background_steps = background.steps if background is not None else ()

        rows = []
        for table_index, examples in enumerate(outline.examples, start=1):
            rows.extend(self._expand_examples(outline, examples, table_index, background_steps))

        logger.debug(f"Expanded outline '{outline.name}' into {len(rows)} rows")
        return rows

    def _expand_examples(self, outline: ScenarioOutline, examples: Examples, table_index: int,
                         background_steps: Sequence[Step]) -> List[OutlineRow]:
        if examples.table is None:
            return []

        rows = []
        for row_index, cells in enumerate(examples.table.rows, start=1):
            line = examples.row_lines[row_index - 1] if row_index <= len(examples.row_lines) else 0
            row = OutlineRow(outline, examples, table_index, row_index,
                             examples.table.headings, cells, line)
            row.collection = self.step_collection(outline.steps, row, background_steps)
            rows.append(row)
        return rows

    def step_collection(self, steps: Sequence[Step], row: OutlineRow,
                        background_steps: Sequence[Step] = ()) -> StepCollection:
        values = row.values
        invocations = [StepInvocation(step, background=True) for step in background_steps]
        for template in steps:
            concrete = template.substitute(values)
            invocations.append(StepInvocation(
                concrete,
                matched_cells=row.cell_indices(template),
                row=row,
            ))
        return StepCollection(invocations)


def outline_status(rows: Sequence[OutlineRow]) -> Status:
    return worst_status(row.status for row in rows)


def outline_failed(rows: Sequence[OutlineRow]) -> bool:
    """A scenario outline fails when any expanded row fails"""
    return any(row.failed for row in rows)
