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
from .parser import parse_feature, parse_feature_file

__all__ = [
    "Background",
    "DocString",
    "Examples",
    "Feature",
    "Location",
    "Scenario",
    "ScenarioOutline",
    "Step",
    "Table",
    "parse_feature",
    "parse_feature_file",
]
