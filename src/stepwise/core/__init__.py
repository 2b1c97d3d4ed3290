from .base import (
    Status,
    RunContext,
    Reporter,
    worst_status,
)
from .config import ConfigManager
from .exceptions import (
    StepwiseError,
    ConfigurationError,
    FeatureParseError,
    StepModuleError,
    MissingHandler,
    MissingExamples,
    Undefined,
    Ambiguous,
    Pending,
    TableMismatch,
)

__all__ = [
    # Base classes
    "Status",
    "RunContext",
    "Reporter",
    "worst_status",

    # Configuration
    "ConfigManager",

    # Exceptions
    "StepwiseError",
    "ConfigurationError",
    "FeatureParseError",
    "StepModuleError",
    "MissingHandler",
    "MissingExamples",
    "Undefined",
    "Ambiguous",
    "Pending",
    "TableMismatch",
]
