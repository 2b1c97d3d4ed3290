from .executor import TestExecutor, ExecutorConfig, ExecutionUnit
from .step_definitions import (
    StepDefinition,
    StepDefinitionRegistry,
    StepMatch,
    NoStepMatch,
    given,
    when,
    then,
    step,
    transform,
    after_step,
    pending,
)
from .step_invocation import StepInvocation, StepCollection, StepResult, StepFailure
from .outline import OutlineExpander, OutlineRow
from .backtrace import BacktraceFilter, TraceFrame
from .runtime import Runtime
from .test_context import TestContext
from .report_collector import ReportCollector

__all__ = [
    'TestExecutor',
    'ExecutorConfig',
    'ExecutionUnit',
    'StepDefinition',
    'StepDefinitionRegistry',
    'StepMatch',
    'NoStepMatch',
    'StepInvocation',
    'StepCollection',
    'StepResult',
    'StepFailure',
    'OutlineExpander',
    'OutlineRow',
    'BacktraceFilter',
    'TraceFrame',
    'Runtime',
    'TestContext',
    'ReportCollector',
    'given',
    'when',
    'then',
    'step',
    'transform',
    'after_step',
    'pending',
]
