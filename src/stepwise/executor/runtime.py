import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from ..core.base import RunContext, Status
from ..core.exceptions import Ambiguous, Undefined
from .backtrace import BacktraceFilter
from .snippets import make_snippet
from .step_definitions import StepDefinition, StepDefinitionRegistry, StepDefinitionUsage, StepMatch
from .test_context import TestContext

logger = logging.getLogger(__name__)


class Runtime:
    """
    Per-executor resolution and execution state.

    Caches step matches by name, tracks which definitions were used and which
    steps were undefined, and owns the handler context of the running unit.
    The registry is only read.
    """

    def __init__(self, registry: StepDefinitionRegistry, run_context: Optional[RunContext] = None,
                 backtrace_filter: Optional[BacktraceFilter] = None,
                 context_factory: Callable[..., Any] = TestContext):
        self.registry = registry
        self.run_context = run_context or RunContext()
        self.backtrace_filter = backtrace_filter or BacktraceFilter(
            full_trace=self.run_context.full_trace,
            truncate=self.run_context.truncate_trace,
        )
        self.context_factory = context_factory
        self.context: Any = None

        self._match_cache: Dict[str, Union[StepMatch, Tuple[StepDefinition, ...]]] = {}
        self.invoked: Set[StepDefinitionUsage] = set()
        self.undefined_steps: List[Any] = []

    def begin_unit(self) -> Any:
        """Fresh handler context for the next scenario or outline row"""
        self.context = self.context_factory(runtime=self)
        return self.context

    def step_match(self, step_name: str) -> StepMatch:
        """
        Resolve a step name, remembering the outcome for later lookups

        Raises:
            Undefined: no definition matches
            Ambiguous: more than one definition matches
        """
        cached = self._match_cache.get(step_name)
        if cached is None:
            try:
                cached = self.registry.resolve(step_name)
            except Undefined:
                cached = ()
            except Ambiguous as e:
                cached = tuple(e.definitions)
            self._match_cache[step_name] = cached

        if isinstance(cached, StepMatch):
            self.invoked.add(cached.definition.identity)
            return cached
        if not cached:
            raise Undefined(step_name)
        raise Ambiguous(step_name, cached)

    def step_visited(self, invocation) -> None:
        if invocation.status is Status.UNDEFINED:
            logger.warning(f"Undefined step: {invocation.keyword} {invocation.name}")
            self.undefined_steps.append(invocation)

    def invoke(self, invocation) -> Any:
        """Run the handler of a matched invocation in the current context"""
        context = self.context if self.context is not None else self.begin_unit()
        if hasattr(context, 'set_current_step'):
            context.set_current_step(invocation.step, invocation.multiline_arg)
        return invocation.step_match.invoke(context, invocation.multiline_arg)

    def invoke_nested(self, step_name: str, multiline_arg: Any = None) -> Any:
        """Run a step called from inside another step's handler"""
        try:
            match = self.step_match(step_name)
        except Undefined as e:
            raise e.mark_nested()
        logger.debug(f"Nested step: {step_name}")
        context = self.context if self.context is not None else self.begin_unit()
        return match.invoke(context, multiline_arg)

    def after_step(self, invocation) -> None:
        for hook in self.registry.after_step_hooks:
            hook(self.context, invocation.step)

    def unused_definitions(self) -> List[StepDefinitionUsage]:
        return [usage for usage in self.registry.available_definitions() if usage not in self.invoked]

    def snippets(self) -> List[str]:
        """One snippet per distinct undefined step name"""
        snippets = []
        seen = set()
        for invocation in self.undefined_steps:
            if invocation.name in seen:
                continue
            seen.add(invocation.name)
            snippets.append(make_snippet(invocation.actual_keyword, invocation.name, invocation.multiline_arg))
        return snippets
