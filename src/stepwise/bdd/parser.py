import logging
from pathlib import Path
from typing import Optional, Tuple, Union

from behave.parser import parse_feature as behave_parse_feature, ParserError
from behave import model as behave_model

from ..core.exceptions import FeatureParseError
from .model import (
    Background,
    DocString,
    Examples,
    Feature,
    Location,
    Scenario,
    ScenarioOutline,
    Step,
    Table,
)

logger = logging.getLogger(__name__)


def parse_feature(text: str, filename: Optional[str] = None, language: Optional[str] = None) -> Feature:
    """
    Parse Gherkin text into the immutable feature model.

    Args:
        text: Feature file contents
        filename: Name used in step locations and diagnostics
        language: Gherkin language, defaults to the file's "# language:" header

    Returns:
        Parsed Feature
    """
    filename = filename or "<string>"
    try:
        parsed = behave_parse_feature(text, language=language, filename=filename)
    except ParserError as e:
        raise FeatureParseError(str(e), filename=filename, line=getattr(e, "line", None)) from e

    if parsed is None:
        raise FeatureParseError(f"No feature found in {filename}", filename=filename)

    return _convert_feature(parsed, filename)


def parse_feature_file(path: Union[str, Path]) -> Feature:
    """Parse a single .feature file"""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Feature file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        content = f.read()

    logger.debug(f"Parsing feature file: {path}")
    return parse_feature(content, filename=str(path))


def _convert_feature(parsed: behave_model.Feature, filename: str) -> Feature:
    feature_background = _convert_background(parsed.background, filename)

    elements = [
        _convert_element(scenario, feature_background, filename)
        for scenario in parsed.scenarios or []
    ]

    # Rules keep their own background after the feature's one
    for rule in getattr(parsed, "rules", None) or []:
        rule_background = _merge_backgrounds(
            feature_background,
            _convert_background(getattr(rule, "background", None), filename),
        )
        elements.extend(
            _convert_element(scenario, rule_background, filename)
            for scenario in rule.scenarios or []
        )

    description = parsed.description or []
    if isinstance(description, (list, tuple)):
        description = "\n".join(description)

    return Feature(
        name=parsed.name,
        filename=filename,
        elements=tuple(elements),
        background=feature_background,
        tags=_tags(parsed.tags),
        description=description,
        language=parsed.language or "en",
        line=parsed.line,
    )


def _convert_element(scenario, background: Optional[Background], filename: str):
    location = Location(getattr(scenario, "filename", None) or filename, scenario.line)
    steps = tuple(_convert_step(step, filename) for step in scenario.steps)

    if isinstance(scenario, behave_model.ScenarioOutline):
        return ScenarioOutline(
            name=scenario.name,
            steps=steps,
            location=location,
            examples=tuple(_convert_examples(examples, filename) for examples in scenario.examples or []),
            keyword=scenario.keyword,
            tags=_tags(scenario.tags),
            background=background,
        )

    return Scenario(
        name=scenario.name,
        steps=steps,
        location=location,
        keyword=scenario.keyword,
        tags=_tags(scenario.tags),
        background=background,
    )


def _convert_background(background, filename: str) -> Optional[Background]:
    if background is None:
        return None
    return Background(
        steps=tuple(_convert_step(step, filename) for step in background.steps),
        name=background.name or "",
        location=Location(getattr(background, "filename", None) or filename, background.line),
    )


def _merge_backgrounds(first: Optional[Background], second: Optional[Background]) -> Optional[Background]:
    if first is None:
        return second
    if second is None:
        return first
    return Background(steps=first.steps + second.steps, name=second.name, location=second.location)


def _convert_examples(examples, filename: str) -> Examples:
    table = None
    row_lines: Tuple[int, ...] = ()
    if examples.table is not None:
        table = _convert_table(examples.table)
        row_lines = tuple(getattr(row, "line", 0) or 0 for row in examples.table.rows)

    return Examples(
        table=table,
        location=Location(getattr(examples, "filename", None) or filename, examples.line),
        name=examples.name or "",
        keyword=examples.keyword,
        tags=_tags(getattr(examples, "tags", None)),
        row_lines=row_lines,
    )


def _convert_step(step, filename: str) -> Step:
    multiline_arg = None
    if step.table is not None:
        multiline_arg = _convert_table(step.table)
    elif step.text is not None:
        multiline_arg = DocString(
            content=str(step.text),
            content_type=getattr(step.text, "content_type", None) or "",
        )

    return Step(
        keyword=step.keyword.strip(),
        name=step.name,
        location=Location(getattr(step, "filename", None) or filename, step.line),
        multiline_arg=multiline_arg,
    )


def _convert_table(table) -> Table:
    return Table(
        headings=tuple(table.headings),
        rows=tuple(tuple(row.cells) for row in table.rows),
    )


def _tags(tags) -> Tuple[str, ...]:
    return tuple(str(tag) for tag in tags or [])
