"""
stepwise - step matching and invocation engine for BDD feature files
"""

__version__ = "0.1.0"
__author__ = "stepwise Contributors"

from .core import (
    Status,
    RunContext,
    Reporter,
    worst_status,
    ConfigManager,
    Undefined,
    Ambiguous,
    Pending,
    TableMismatch,
    MissingExamples,
    MissingHandler,
)
from .executor import (
    TestExecutor,
    ExecutorConfig,
    StepDefinitionRegistry,
    TestContext,
    given,
    when,
    then,
    step,
    transform,
    after_step,
    pending,
)

__all__ = [
    "Status",
    "RunContext",
    "Reporter",
    "worst_status",
    "ConfigManager",
    "Undefined",
    "Ambiguous",
    "Pending",
    "TableMismatch",
    "MissingExamples",
    "MissingHandler",
    "TestExecutor",
    "ExecutorConfig",
    "StepDefinitionRegistry",
    "TestContext",
    "given",
    "when",
    "then",
    "step",
    "transform",
    "after_step",
    "pending",
]
