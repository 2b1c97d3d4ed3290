import pytest
from stepwise.bdd import Location, Step, Table
from stepwise.core import Ambiguous, RunContext, Status, Undefined
from stepwise.executor import (
    Runtime,
    StepCollection,
    StepDefinitionRegistry,
    StepInvocation,
    pending,
)
from stepwise.executor.backtrace import ENGINE_DIR

FEATURE_FILE = "features/cucumbers.feature"


def make_step(name, keyword="Given", line=3, multiline_arg=None):
    return Step(keyword, name, Location(FEATURE_FILE, line), multiline_arg)


def collection_of(*steps):
    return StepCollection.build(steps)


class TestStepInvocation:
    """Test the lifecycle of a single step invocation"""

    @pytest.fixture
    def calls(self):
        return []

    @pytest.fixture
    def registry(self, calls):
        registry = StepDefinitionRegistry()

        @registry.given(r"there are (\d+) cucumbers")
        def cucumbers(context, count):
            calls.append(("cucumbers", count))
            context.cucumbers = int(count)

        @registry.when(r"I eat (\d+) cucumbers")
        def eat(context, count):
            calls.append(("eat", count))
            context.cucumbers -= int(count)

        @registry.then(r"I should have (\d+) cucumbers")
        def should_have(context, count):
            calls.append(("should_have", count))
            assert context.cucumbers == int(count)

        @registry.step(r"it explodes")
        def explode(context):
            calls.append(("explode",))
            raise RuntimeError("boom")

        @registry.step(r"it is not written yet")
        def not_written(context):
            pending("later")

        return registry

    @pytest.fixture
    def run_context(self):
        return RunContext()

    @pytest.fixture
    def runtime(self, registry, run_context):
        return Runtime(registry, run_context)

    def test_passing_steps(self, runtime, run_context, calls):
        collection = collection_of(
            make_step("there are 12 cucumbers"),
            make_step("I eat 5 cucumbers", "When"),
            make_step("I should have 7 cucumbers", "Then"),
        )
        runtime.begin_unit()
        for invocation in collection:
            invocation.invoke(runtime, run_context)

        assert collection.statuses == [Status.PASSED] * 3
        assert collection.status is Status.PASSED
        assert [c[0] for c in calls] == ["cucumbers", "eat", "should_have"]

    def test_initial_status_is_skipped(self):
        invocation = StepInvocation(make_step("anything"))
        assert invocation.status is Status.SKIPPED
        assert invocation.step_match is None

    def test_handler_runs_at_most_once(self, runtime, run_context, calls):
        invocation = collection_of(make_step("there are 3 cucumbers"))[0]
        invocation.invoke(runtime, run_context)
        invocation.invoke(runtime, run_context)

        assert calls == [("cucumbers", "3")]
        assert invocation.status is Status.PASSED

    def test_failing_handler(self, runtime, run_context):
        invocation = collection_of(make_step("it explodes"))[0]
        invocation.invoke(runtime, run_context)

        assert invocation.status is Status.FAILED
        assert isinstance(invocation.exception, RuntimeError)
        result = invocation.step_result()
        assert result.failure is not None
        assert result.failure.message == "boom"
        assert result.failure.error_type == "RuntimeError"

    def test_undefined_step(self, runtime, run_context, calls):
        """An undefined step never runs a handler and is not reported by default"""
        invocation = collection_of(make_step("a missing step"))[0]
        invocation.invoke(runtime, run_context)

        assert invocation.status is Status.UNDEFINED
        assert isinstance(invocation.exception, Undefined)
        assert calls == []
        assert invocation.reported_failure is None
        assert invocation.step_result().match_id is None
        # the trace is only the step location
        assert invocation.failure.trace == [f"{FEATURE_FILE}:3:in `Given a missing step'"]

    def test_undefined_reported_when_strict(self, registry):
        run_context = RunContext(strict=True)
        runtime = Runtime(registry, run_context)
        invocation = collection_of(make_step("a missing step"))[0]
        invocation.invoke(runtime, run_context)

        assert invocation.status is Status.UNDEFINED
        assert invocation.reported_failure is not None

    def test_nested_undefined_always_reported(self, registry, runtime, run_context):
        @registry.step(r"I delegate")
        def delegate(context):
            context.step("an inner step nobody wrote")

        invocation = collection_of(make_step("I delegate"))[0]
        runtime.begin_unit()
        invocation.invoke(runtime, run_context)

        assert invocation.status is Status.UNDEFINED
        assert invocation.exception.nested is True
        assert invocation.reported_failure is not None

    def test_nested_step_runs(self, registry, runtime, run_context, calls):
        @registry.step(r"I have a salad")
        def salad(context):
            context.step("there are 2 cucumbers")

        invocation = collection_of(make_step("I have a salad"))[0]
        runtime.begin_unit()
        invocation.invoke(runtime, run_context)

        assert invocation.status is Status.PASSED
        assert calls == [("cucumbers", "2")]

    def test_ambiguous_step(self, registry, runtime, run_context, calls):
        """An ambiguous step fails without running either handler"""

        @registry.given(r"there are (.*) cucumbers")
        def loose(context, count):
            calls.append(("loose", count))

        invocation = collection_of(make_step("there are 4 cucumbers"))[0]
        invocation.invoke(runtime, run_context)

        assert invocation.status is Status.FAILED
        assert isinstance(invocation.exception, Ambiguous)
        assert calls == []
        assert invocation.reported_failure is not None

    def test_pending_step(self, runtime, run_context):
        invocation = collection_of(make_step("it is not written yet"))[0]
        invocation.invoke(runtime, run_context)

        assert invocation.status is Status.PENDING
        assert invocation.failure.message == "later"

    def test_table_mismatch_keeps_diff(self, registry, runtime, run_context):
        @registry.then(r"the basket contains:")
        def basket(context, table):
            table.diff([["fruit"], ["apple"], ["kiwi"]])

        expected = Table.from_raw([["fruit"], ["apple"], ["pear"]])
        invocation = collection_of(make_step("the basket contains:", "Then", multiline_arg=expected))[0]
        invocation.invoke(runtime, run_context)

        assert invocation.status is Status.FAILED
        shown = invocation.step_result().multiline_arg
        assert shown is invocation.different_table
        assert shown.rows == (("", "apple"), ("-", "pear"), ("+", "kiwi"))

    def test_later_steps_skipped_after_failure(self, runtime, run_context, calls):
        collection = collection_of(
            make_step("there are 12 cucumbers"),
            make_step("it explodes", "When"),
            make_step("I eat 5 cucumbers", "When"),
            make_step("a missing step", "Then"),
        )
        runtime.begin_unit()
        for invocation in collection:
            invocation.invoke(runtime, run_context)

        assert collection.statuses == [Status.PASSED, Status.FAILED, Status.SKIPPED, Status.UNDEFINED]
        assert collection.status is Status.FAILED
        assert [c[0] for c in calls] == ["cucumbers", "explode"]
        # matching still happens for the skipped step
        assert collection[2].step_match.id is not None

    def test_dry_run(self, registry, calls):
        run_context = RunContext(dry_run=True)
        runtime = Runtime(registry, run_context)
        collection = collection_of(make_step("there are 12 cucumbers"), make_step("a missing step"))
        for invocation in collection:
            invocation.invoke(runtime, run_context)

        assert calls == []
        assert collection.statuses == [Status.SKIPPED, Status.UNDEFINED]
        assert collection[0].step_match is not None

    def test_quit_requested(self, runtime, run_context, calls):
        run_context.request_quit()
        invocation = collection_of(make_step("there are 12 cucumbers"))[0]
        invocation.invoke(runtime, run_context)

        assert invocation.step_match is None
        assert invocation.status is Status.SKIPPED
        assert calls == []

    def test_skip_invoke(self, runtime, run_context, calls):
        invocation = collection_of(make_step("there are 12 cucumbers"))[0]
        invocation.skip_invoke()
        invocation.invoke(runtime, run_context)

        assert calls == []
        assert invocation.status is Status.SKIPPED

    def test_transform_failure_fails_step(self, registry, runtime, run_context):
        """A raising transform is a handler failure, not a lookup failure"""
        registry.add_transform(r"\d+", lambda value: 1 / 0)
        invocation = collection_of(make_step("there are 3 cucumbers"))[0]
        invocation.invoke(runtime, run_context)

        assert invocation.status is Status.FAILED
        assert isinstance(invocation.exception, ZeroDivisionError)
        assert invocation.step_match.id is not None

    def test_after_step_hooks(self, registry, runtime, run_context):
        seen = []
        registry.after_step(lambda context, step: seen.append(step.name))

        invocation = collection_of(make_step("there are 3 cucumbers"))[0]
        runtime.begin_unit()
        invocation.invoke(runtime, run_context)

        assert seen == ["there are 3 cucumbers"]

    def test_failing_after_step_hook(self, registry, runtime, run_context):
        def hook(context, step):
            raise ValueError("hook broke")

        registry.after_step(hook)
        invocation = collection_of(make_step("there are 3 cucumbers"))[0]
        invocation.invoke(runtime, run_context)

        assert invocation.status is Status.FAILED
        assert invocation.failure.message == "hook broke"

    def test_failed_status_never_downgraded(self):
        invocation = StepInvocation(make_step("anything"))
        invocation._set_status(Status.FAILED)
        invocation._set_status(Status.PASSED)
        assert invocation.status is Status.FAILED


class TestFailureTrace:
    """Test the diagnostic trace attached to failures"""

    @pytest.fixture
    def registry(self):
        registry = StepDefinitionRegistry()

        @registry.step(r"it explodes")
        def explode(context):
            raise RuntimeError("boom")

        return registry

    def test_engine_frames_removed(self, registry):
        run_context = RunContext()
        runtime = Runtime(registry, run_context)
        invocation = collection_of(make_step("it explodes", line=9))[0]
        invocation.invoke(runtime, run_context)

        frames = invocation.failure.frames
        assert not any(ENGINE_DIR in frame.filename for frame in frames)
        assert any(frame.name == "explode" for frame in frames)
        assert invocation.failure.trace[-1] == f"{FEATURE_FILE}:9:in `Given it explodes'"

    def test_full_trace_keeps_engine_frames(self, registry):
        run_context = RunContext(full_trace=True)
        runtime = Runtime(registry, run_context)
        invocation = collection_of(make_step("it explodes"))[0]
        invocation.invoke(runtime, run_context)

        assert any(frame.filename.endswith("step_definitions.py") for frame in invocation.failure.frames)

    def test_filtering_never_changes_status(self, registry):
        statuses = []
        for full_trace in (False, True):
            run_context = RunContext(full_trace=full_trace)
            runtime = Runtime(registry, run_context)
            invocation = collection_of(make_step("it explodes"))[0]
            invocation.invoke(runtime, run_context)
            statuses.append(invocation.status)

        assert statuses == [Status.FAILED, Status.FAILED]

    def test_truncated_trace(self, registry):
        run_context = RunContext(truncate_trace=True)
        runtime = Runtime(registry, run_context)
        invocation = collection_of(make_step("it explodes", line=9))[0]
        invocation.invoke(runtime, run_context)

        assert invocation.failure.trace[-1] == f"{FEATURE_FILE}:9"
        assert all(":in `" not in line for line in invocation.failure.trace)


class TestStepCollection:
    """Test step collection helpers"""

    def test_actual_keyword(self):
        collection = collection_of(
            make_step("a", "Given"),
            make_step("b", "And"),
            make_step("c", "But"),
            make_step("d", "When"),
            make_step("e", "And"),
            make_step("f", "*"),
        )
        assert [i.actual_keyword for i in collection] == ["Given", "Given", "Given", "When", "When", "Given"]

    def test_leading_and_keeps_keyword(self):
        collection = collection_of(make_step("a", "And"))
        assert collection[0].actual_keyword == "And"

    def test_background_steps_first(self):
        collection = StepCollection.build([make_step("main")], [make_step("setup")])
        assert [i.name for i in collection] == ["setup", "main"]
        assert [i.background for i in collection] == [True, False]

    def test_invocation_belongs_to_one_collection(self):
        invocation = StepInvocation(make_step("a"))
        StepCollection([invocation])
        with pytest.raises(ValueError):
            StepCollection([invocation])

    def test_empty_collection_passes(self):
        assert StepCollection([]).status is Status.PASSED

    def test_skip_invoke_all(self):
        collection = collection_of(make_step("a"), make_step("b"))
        collection.skip_invoke()
        assert all(i.attempted for i in collection)
