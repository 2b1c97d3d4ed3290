import asyncio
import inspect
from typing import Dict, List, Callable, Optional, Any, Sequence, Tuple
from dataclasses import dataclass, field
import logging

from ..core.exceptions import Ambiguous, MissingHandler, Pending, Undefined
from .matchers import (
    Argument,
    PatternLike,
    Transform,
    apply_transforms,
    callable_location,
    compile_pattern,
    extract_arguments,
)

logger = logging.getLogger(__name__)

STEP_KEYWORDS = ('given', 'when', 'then', 'step')


@dataclass(frozen=True)
class StepDefinitionUsage:
    """Identity of a definition, used to track available and invoked steps"""
    pattern_source: str
    location: str


@dataclass(eq=False)
class StepDefinition:
    """Represents a step definition with its pattern and handler"""
    keyword: str  # given, when, then, step
    pattern: Any  # compiled regex
    handler: Callable
    location: str
    description: str = ""
    name: str = ""
    source: str = ""  # pattern as written, before anchoring

    @property
    def pattern_source(self) -> str:
        return self.source or self.pattern.pattern

    @property
    def identity(self) -> StepDefinitionUsage:
        return StepDefinitionUsage(self.pattern_source, self.location)

    def __eq__(self, other):
        if not isinstance(other, StepDefinition):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self):
        return hash(self.identity)

    def arguments_from(self, step_text: str) -> Optional[List[Argument]]:
        return extract_arguments(self.pattern, step_text)

    def invoke(self, context: Any, args: Sequence[Any], multiline_arg: Any = None,
               transforms: Sequence[Transform] = ()) -> Any:
        """Execute the handler with transformed arguments (sync or async)"""
        values = apply_transforms(args, transforms)
        if multiline_arg is not None:
            values.append(multiline_arg)

        result = self.handler(context, *values)
        if inspect.isawaitable(result):
            return asyncio.run(_await(result))
        return result

    def __repr__(self):
        return f"<StepDefinition {self.keyword} {self.pattern_source!r} at {self.location}>"


async def _await(awaitable):
    return await awaitable


@dataclass
class StepMatch:
    """A step name matched against exactly one definition"""
    definition: StepDefinition
    arguments: List[Argument]
    step_name: str
    transforms: Tuple[Transform, ...] = ()

    @property
    def id(self) -> Optional[str]:
        return f"{self.definition.pattern_source} ({self.definition.location})"

    @property
    def args(self) -> List[Optional[str]]:
        return [argument.value for argument in self.arguments]

    def invoke(self, context: Any, multiline_arg: Any = None) -> Any:
        return self.definition.invoke(context, self.args, multiline_arg, self.transforms)

    def format_args(self, fmt: str = "{}") -> str:
        """Step name with every argument wrapped in fmt"""
        result = []
        position = 0
        for argument in self.arguments:
            if argument.value is None or argument.start < position:
                continue
            result.append(self.step_name[position:argument.start])
            result.append(fmt.format(argument.value))
            position = argument.end
        result.append(self.step_name[position:])
        return "".join(result)


@dataclass
class NoStepMatch:
    """Placeholder for a step that could not be matched"""
    step_name: str
    arguments: List[Argument] = field(default_factory=list)
    definition: Optional[StepDefinition] = None

    @property
    def id(self) -> Optional[str]:
        return None

    @property
    def args(self) -> list:
        return []

    def invoke(self, context: Any, multiline_arg: Any = None) -> Any:
        raise Undefined(self.step_name)

    def format_args(self, fmt: str = "{}") -> str:
        return self.step_name


class StepDefinitionRegistry:
    """Registry for step definitions, transforms and after-step hooks"""

    def __init__(self, ignore_case: bool = False):
        self.definitions: List[StepDefinition] = []
        self.transforms: List[Transform] = []
        self.after_step_hooks: List[Callable] = []
        self.ignore_case = ignore_case

    def register(self, pattern: PatternLike, handler: Any = None, on: Any = None,
                 keyword: str = 'step', description: str = "",
                 on_factory: Optional[Callable[[Any], Any]] = None) -> StepDefinition:
        """
        Add a step definition to the registry

        Args:
            pattern: Regex source or compiled pattern
            handler: Callable taking (context, *args), or the name of a method
                to call on the bound target
            on: Target object for a method name, used as is even when it is
                callable. Defaults to the context itself.
            keyword: given, when, then or step (informational)
            description: Free text shown by list_definitions
            on_factory: Callable receiving the context and returning the
                target for a method name. Cannot be combined with on.

        Returns:
            The new StepDefinition
        """
        if handler is None:
            raise MissingHandler()

        keyword = keyword.lower()
        if keyword not in STEP_KEYWORDS:
            raise ValueError(f"Unknown step keyword: {keyword}")

        if isinstance(handler, str):
            if on is not None and on_factory is not None:
                raise ValueError("Pass either on or on_factory, not both")
            # method-name handlers are identified by the line that registered them
            caller = inspect.currentframe().f_back
            location = f"{caller.f_code.co_filename}:{caller.f_lineno}"
            handler_name = handler
            handler = _bound_target_handler(handler, on, on_factory)
        elif callable(handler):
            location = callable_location(handler)
            handler_name = getattr(handler, '__name__', repr(handler))
        else:
            raise MissingHandler(f"Step handler must be callable or a method name, got {handler!r}")

        compiled = compile_pattern(pattern, self.ignore_case)
        definition = StepDefinition(
            keyword=keyword,
            pattern=compiled,
            handler=handler,
            location=location,
            description=description,
            name=handler_name,
            source=pattern if isinstance(pattern, str) else compiled.pattern,
        )

        self.definitions.append(definition)
        logger.debug(f"Registered step: {keyword} {definition.pattern_source}")
        return definition

    def given(self, pattern: PatternLike, description: str = ""):
        """Decorator for Given steps"""

        def decorator(func):
            self.register(pattern, func, keyword='given', description=description)
            return func

        return decorator

    def when(self, pattern: PatternLike, description: str = ""):
        """Decorator for When steps"""

        def decorator(func):
            self.register(pattern, func, keyword='when', description=description)
            return func

        return decorator

    def then(self, pattern: PatternLike, description: str = ""):
        """Decorator for Then steps"""

        def decorator(func):
            self.register(pattern, func, keyword='then', description=description)
            return func

        return decorator

    def step(self, pattern: PatternLike, description: str = ""):
        """Decorator for any step type"""

        def decorator(func):
            self.register(pattern, func, keyword='step', description=description)
            return func

        return decorator

    def transform(self, pattern: PatternLike):
        """Decorator registering a value transform for matching arguments"""

        def decorator(func):
            self.add_transform(pattern, func)
            return func

        return decorator

    def add_transform(self, pattern: PatternLike, func: Callable) -> Transform:
        transform = Transform(pattern, func)
        self.transforms.append(transform)
        logger.debug(f"Registered transform: {transform.pattern_source}")
        return transform

    def after_step(self, func: Callable) -> Callable:
        """Decorator registering a hook run after every passing step"""
        self.after_step_hooks.append(func)
        return func

    def match_all(self, step_text: str) -> List[Tuple[StepDefinition, List[Argument]]]:
        """Every distinct definition matching the text, in registration order"""
        matches = []
        seen = set()
        for definition in self.definitions:
            if definition.identity in seen:
                continue
            arguments = definition.arguments_from(step_text)
            if arguments is not None:
                seen.add(definition.identity)
                matches.append((definition, arguments))
        return matches

    def resolve(self, step_text: str) -> StepMatch:
        """
        Find the single definition matching the step text

        Raises:
            Undefined: no definition matches
            Ambiguous: more than one definition matches
        """
        matches = self.match_all(step_text)

        if not matches:
            logger.debug(f"No step definition found for: {step_text}")
            raise Undefined(step_text)

        if len(matches) > 1:
            logger.debug(f"{len(matches)} step definitions match: {step_text}")
            raise Ambiguous(step_text, [definition for definition, _ in matches])

        definition, arguments = matches[0]
        logger.debug(f"Found matching step definition: {definition.pattern_source}")
        return StepMatch(definition, arguments, step_text, tuple(self.transforms))

    def available_definitions(self) -> List[StepDefinitionUsage]:
        """Identities of all registered definitions, without duplicates"""
        seen = []
        for definition in self.definitions:
            if definition.identity not in seen:
                seen.append(definition.identity)
        return seen

    def list_definitions(self) -> List[Dict[str, str]]:
        """List all registered step definitions"""
        return [
            {
                'keyword': defn.keyword,
                'pattern': defn.pattern_source,
                'description': defn.description,
                'function': defn.name,
                'location': defn.location,
            }
            for defn in self.definitions
        ]

    def clear(self):
        """Clear all registered definitions, transforms and hooks"""
        self.definitions.clear()
        self.transforms.clear()
        self.after_step_hooks.clear()

    def register_from_module(self, module) -> int:
        """Register all marked step definitions and transforms from a module"""
        count = 0
        for name, obj in inspect.getmembers(module):
            for step_info in getattr(obj, '_step_definitions', None) or []:
                self.register(
                    step_info['pattern'],
                    obj,
                    keyword=step_info['keyword'],
                    description=step_info.get('description', ''),
                )
                count += 1
            for pattern in getattr(obj, '_step_transforms', None) or []:
                self.add_transform(pattern, obj)
            if getattr(obj, '_after_step_hook', False):
                self.after_step(obj)
        logger.debug(f"Registered {count} step definitions from {getattr(module, '__name__', module)}")
        return count


def _bound_target_handler(method_name: str, on: Any = None,
                          on_factory: Optional[Callable[[Any], Any]] = None) -> Callable:
    """Handler calling a named method on an explicitly captured target"""
    if on_factory is not None:
        resolve_target = on_factory
    elif on is None:
        def resolve_target(context):
            return context
    else:
        def resolve_target(context):
            return on

    def handler(context, *args):
        target = resolve_target(context)
        method = getattr(target, method_name, None)
        if method is None:
            raise AttributeError(f"{type(target).__name__} has no method '{method_name}'")
        return method(*args)

    handler.__name__ = method_name
    return handler


def pending(message: str = "TODO"):
    """Mark the calling step as not implemented yet"""
    raise Pending(message)


# Utility decorators for marking functions as step definitions
def _mark(keyword: str, pattern: PatternLike, description: str):

    def decorator(func):
        marks = list(getattr(func, '_step_definitions', None) or [])
        marks.append({
            'keyword': keyword,
            'pattern': pattern,
            'description': description
        })
        func._step_definitions = marks
        return func

    return decorator


def given(pattern: PatternLike, description: str = ""):
    """Mark function as a Given step"""
    return _mark('given', pattern, description)


def when(pattern: PatternLike, description: str = ""):
    """Mark function as a When step"""
    return _mark('when', pattern, description)


def then(pattern: PatternLike, description: str = ""):
    """Mark function as a Then step"""
    return _mark('then', pattern, description)


def step(pattern: PatternLike, description: str = ""):
    """Mark function as a step usable with any keyword"""
    return _mark('step', pattern, description)


def transform(pattern: PatternLike):
    """Mark function as an argument transform"""

    def decorator(func):
        func._step_transforms = list(getattr(func, '_step_transforms', None) or []) + [pattern]
        return func

    return decorator


def after_step(func):
    """Mark function as an after-step hook"""
    func._after_step_hook = True
    return func
