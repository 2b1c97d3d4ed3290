import types

import pytest
from stepwise.core import Ambiguous, MissingHandler, Pending, Undefined
from stepwise.executor import StepDefinitionRegistry, NoStepMatch, TestContext
from stepwise.executor import step_definitions as steps_module


class Calculator:
    def __init__(self):
        self.total = 0

    def add(self, value):
        self.total += int(value)
        return self.total


class Greeter:
    def __init__(self, name):
        self.name = name

    def greet(self):
        return f"hello from {self.name}"


class CallableCalculator(Calculator):
    def __call__(self, context):
        raise AssertionError("target must not be called")


class TestStepDefinitionRegistry:
    """Test StepDefinitionRegistry"""

    @pytest.fixture
    def registry(self):
        return StepDefinitionRegistry()

    def test_register_step_definition(self, registry):
        """Test registering step definitions"""

        @registry.given(r'I have (\d+) items')
        def given_items(context, count):
            context.items = int(count)

        definitions = registry.list_definitions()
        assert len(definitions) == 1
        assert definitions[0]['keyword'] == 'given'
        assert definitions[0]['function'] == 'given_items'
        assert definitions[0]['pattern'] == r'I have (\d+) items'
        assert definitions[0]['location'].startswith(__file__)

    def test_missing_handler(self, registry):
        with pytest.raises(MissingHandler):
            registry.register(r"a step")

    def test_unknown_keyword(self, registry):
        with pytest.raises(ValueError):
            registry.register(r"a step", lambda context: None, keyword='whenever')

    def test_resolve_single_match(self, registry):
        @registry.when(r'I click the "([^"]*)" button')
        def click_button(context, button_name):
            return button_name

        match = registry.resolve('I click the "Login" button')
        assert match.definition.name == 'click_button'
        assert match.args == ["Login"]
        assert match.invoke(TestContext()) == "Login"

    def test_resolve_undefined(self, registry):
        with pytest.raises(Undefined) as exc_info:
            registry.resolve("nothing matches this")
        assert exc_info.value.step_name == "nothing matches this"
        assert exc_info.value.nested is False

    def test_resolve_ambiguous(self, registry):
        """Two distinct matching definitions are ambiguous"""

        @registry.given(r"there are (\d+) cucumbers")
        def exact(context, count):
            pass

        @registry.given(r"there are (.*) cucumbers")
        def loose(context, count):
            pass

        with pytest.raises(Ambiguous) as exc_info:
            registry.resolve("there are 5 cucumbers")

        assert [d.name for d in exc_info.value.definitions] == ["exact", "loose"]
        assert r"there are (\d+) cucumbers at" in str(exc_info.value)

    def test_alternation_does_not_match_longer_text(self, registry):
        @registry.given(r"I am happy|I am glad")
        def happy(context):
            return "happy"

        @registry.given(r"I am happy about (.*)")
        def happy_about(context, topic):
            return topic

        assert registry.resolve("I am happy about the weather").definition.name == "happy_about"
        assert registry.resolve("I am glad").definition.name == "happy"

    def test_duplicate_registration_collapses(self, registry):
        """Registering the same definition twice is not ambiguous"""

        def handler(context):
            return "ok"

        registry.register("a step", handler)
        registry.register("a step", handler)

        assert registry.resolve("a step").invoke(TestContext()) == "ok"
        assert len(registry.available_definitions()) == 1

    def test_same_decorator_stacked(self, registry):
        @registry.given('I am on the home page')
        @registry.when('I navigate to the home page')
        def navigate_home(context):
            pass

        assert registry.resolve('I am on the home page').definition.keyword == 'given'
        assert registry.resolve('I navigate to the home page').definition.keyword == 'when'

    def test_multiline_arg_passed_last(self, registry):
        received = {}

        @registry.then(r"the (\w+) table is:")
        def check_table(context, name, table):
            received['name'] = name
            received['table'] = table

        registry.resolve("the fruit table is:").invoke(TestContext(), "TABLE")
        assert received == {'name': 'fruit', 'table': 'TABLE'}

    def test_transforms_applied(self, registry):
        registry.add_transform(r"\d+", int)

        @registry.given(r"there are (\d+) cucumbers")
        def cucumbers(context, count):
            return count

        assert registry.resolve("there are 12 cucumbers").invoke(TestContext()) == 12

    def test_transform_decorator(self, registry):
        @registry.transform(r"(yes|no)")
        def to_bool(value):
            return value == "yes"

        @registry.given(r"the answer is (yes|no)")
        def answer(context, value):
            return value

        assert registry.resolve("the answer is no").invoke(TestContext()) is False

    def test_async_handler(self, registry):
        @registry.step(r"I wait for (\d+)")
        async def wait_for(context, value):
            return f"waited {value}"

        assert registry.resolve("I wait for 3").invoke(TestContext()) == "waited 3"

    def test_format_args(self, registry):
        registry.register(r'I buy (\d+) "([^"]*)"', lambda context, n, item: None)
        match = registry.resolve('I buy 2 "kiwis"')
        assert match.format_args("[{}]") == 'I buy [2] "[kiwis]"'

    def test_clear(self, registry):
        registry.register("a step", lambda context: None)
        registry.add_transform(r"\d+", int)
        registry.after_step(lambda context, step: None)
        registry.clear()

        assert registry.definitions == []
        assert registry.transforms == []
        assert registry.after_step_hooks == []


class TestBoundTargetHandlers:
    """Test method-name handlers with an explicit target"""

    @pytest.fixture
    def registry(self):
        return StepDefinitionRegistry()

    def test_explicit_object_target(self, registry):
        calculator = Calculator()
        registry.register(r"I add (\d+)", "add", on=calculator)

        registry.resolve("I add 3").invoke(TestContext())
        registry.resolve("I add 4").invoke(TestContext())
        assert calculator.total == 7

    def test_same_method_on_different_targets_is_ambiguous(self, registry):
        registry.register(r"someone greets", "greet", on=Greeter("Alice"))
        registry.register(r"someone greets", "greet", on=Greeter("Bob"))

        with pytest.raises(Ambiguous) as exc_info:
            registry.resolve("someone greets")
        assert len(exc_info.value.definitions) == 2

    def test_location_is_registration_line(self, registry):
        definition = registry.register(r"someone greets", "greet", on=Greeter("Alice"))
        filename, _, line = definition.location.rpartition(":")
        assert filename == __file__
        assert int(line) > 0

    def test_same_registration_line_collapses(self, registry):
        for _ in range(2):
            registry.register(r"someone greets", "greet", on=Greeter("Alice"))

        assert registry.resolve("someone greets").invoke(TestContext()) == "hello from Alice"

    def test_callable_target_used_as_is(self, registry):
        calculator = CallableCalculator()
        registry.register(r"I add (\d+)", "add", on=calculator)

        registry.resolve("I add 2").invoke(TestContext())
        assert calculator.total == 2

    def test_on_and_on_factory_exclusive(self, registry):
        with pytest.raises(ValueError):
            registry.register(r"I add (\d+)", "add", on=Calculator(),
                              on_factory=lambda context: context.calculator)

    def test_target_from_context(self, registry):
        registry.register(r"I add (\d+)", "add", on_factory=lambda context: context.calculator)

        context = TestContext()
        context.calculator = Calculator()
        registry.resolve("I add 5").invoke(context)
        assert context.calculator.total == 5

    def test_context_is_default_target(self, registry):
        registry.register(r"I store (\w+)", "remember")

        context = TestContext()
        context.remember = lambda value: context.test_data.update(value=value)
        registry.resolve("I store kiwi").invoke(context)
        assert context.test_data == {'value': 'kiwi'}

    def test_missing_method(self, registry):
        registry.register(r"I add (\d+)", "subtract", on=Calculator())
        with pytest.raises(AttributeError):
            registry.resolve("I add 1").invoke(TestContext())


class TestModuleMarkers:
    """Test marker decorators picked up by register_from_module"""

    def test_register_from_module(self):
        module = types.ModuleType("fake_steps")

        @steps_module.given(r"a (\w+) basket")
        @steps_module.then(r"the basket is (\w+)")
        def basket(context, value):
            return value

        @steps_module.transform(r"\d+")
        def number(value):
            return int(value)

        @steps_module.after_step
        def hook(context, step):
            pass

        module.basket = basket
        module.number = number
        module.hook = hook

        registry = StepDefinitionRegistry()
        count = registry.register_from_module(module)

        assert count == 2
        assert {d['keyword'] for d in registry.list_definitions()} == {'given', 'then'}
        assert len(registry.transforms) == 1
        assert registry.after_step_hooks == [hook]

    def test_pending_helper(self):
        with pytest.raises(Pending) as exc_info:
            steps_module.pending("not yet")
        assert str(exc_info.value) == "not yet"


class TestNoStepMatch:
    """Test the undefined placeholder match"""

    def test_invoke_raises_undefined(self):
        match = NoStepMatch("a missing step")
        assert match.id is None
        assert match.args == []
        with pytest.raises(Undefined):
            match.invoke(TestContext())
