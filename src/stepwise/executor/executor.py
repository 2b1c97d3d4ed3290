import importlib.util
import os
import sys
from typing import Dict, List, Any, Iterable, Optional, Sequence, Tuple, Union
from pathlib import Path
from datetime import datetime
import logging
from dataclasses import dataclass, field, fields

from ..bdd.model import Feature, Location, Scenario, ScenarioOutline
from ..bdd.parser import parse_feature_file
from ..core.base import Reporter, RunContext, Status, worst_status
from ..core.exceptions import StepModuleError
from .backtrace import BacktraceFilter, DEFAULT_FILTER_PATTERNS
from .outline import OutlineExpander, OutlineRow
from .report_collector import ReportCollector
from .runtime import Runtime
from .step_definitions import StepDefinitionRegistry
from .step_invocation import StepCollection

logger = logging.getLogger(__name__)

TRUTHY = ('1', 'true', 'yes', 'on')


@dataclass
class ExecutorConfig:
    """Configuration for Test Executor"""
    dry_run: bool = False
    strict: bool = False
    full_trace: bool = False
    truncate_trace: bool = False
    ignore_case: bool = False
    backtrace_patterns: List[str] = field(default_factory=list)
    output_dir: str = "test-results"
    report_formats: List[str] = field(default_factory=lambda: ["json"])
    tags: List[str] = field(default_factory=list)
    step_paths: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "ExecutorConfig":
        """Build from a dict, ignoring keys that are not config fields"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in config.items() if k in known})

    def apply_environment(self, environ: Optional[Dict[str, str]] = None) -> "ExecutorConfig":
        """Overlay STEPWISE_* environment toggles"""
        environ = os.environ if environ is None else environ
        if environ.get('STEPWISE_TRUNCATE_OUTPUT', '').lower() in TRUTHY:
            self.truncate_trace = True
        if environ.get('STEPWISE_FULL_TRACE', '').lower() in TRUTHY:
            self.full_trace = True
        return self

    def run_context(self) -> RunContext:
        return RunContext(
            dry_run=self.dry_run,
            strict=self.strict,
            full_trace=self.full_trace,
            truncate_trace=self.truncate_trace,
        )


@dataclass
class ExecutionUnit:
    """A scenario or a single outline row, ready to run"""
    name: str
    element: Union[Scenario, ScenarioOutline]
    collection: StepCollection
    location: Location
    tags: Tuple[str, ...] = ()
    row: Optional[OutlineRow] = None

    @property
    def keyword(self) -> str:
        return self.element.keyword

    @property
    def status(self) -> Status:
        return self.collection.status


class TestExecutor:
    """
    Executes BDD feature files against registered step definitions
    """
    __test__ = False  # not a pytest test class

    def __init__(self, config: Optional[Union[Dict, ExecutorConfig]] = None,
                 registry: Optional[StepDefinitionRegistry] = None,
                 reporters: Optional[Sequence[Reporter]] = None):
        if isinstance(config, dict):
            self.config = ExecutorConfig.from_dict(config)
        else:
            self.config = config or ExecutorConfig()
        self.config.apply_environment()

        self.run_context = self.config.run_context()
        self.step_registry = registry or StepDefinitionRegistry(ignore_case=self.config.ignore_case)
        self.backtrace_filter = BacktraceFilter(
            patterns=DEFAULT_FILTER_PATTERNS + list(self.config.backtrace_patterns),
            full_trace=self.config.full_trace,
            truncate=self.config.truncate_trace,
        )
        self.runtime = Runtime(self.step_registry, self.run_context, self.backtrace_filter)
        self.expander = OutlineExpander()
        self.report_collector = ReportCollector(self.config.output_dir)
        self.reporters: List[Reporter] = [self.report_collector] + list(reporters or [])

        for step_path in self.config.step_paths:
            self.load_steps(step_path)

    def load_steps(self, path: Union[str, Path]) -> int:
        """Import step definition modules from a file or directory"""
        path = Path(path)
        if not path.exists():
            raise StepModuleError(f"Step definition path not found: {path}")

        files = sorted(path.glob('**/*.py')) if path.is_dir() else [path]
        count = 0
        for step_file in files:
            module = self._import_step_module(step_file)
            count += self.step_registry.register_from_module(module)

        logger.info(f"Registered {count} step definitions from {path}")
        return count

    def _import_step_module(self, step_file: Path):
        module_name = f"stepwise_steps_{step_file.stem}_{abs(hash(str(step_file.resolve())))}"
        if module_name in sys.modules:
            return sys.modules[module_name]

        spec = importlib.util.spec_from_file_location(module_name, step_file)
        if spec is None or spec.loader is None:
            raise StepModuleError(f"Cannot load step module: {step_file}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            del sys.modules[module_name]
            raise StepModuleError(f"Failed to import step module {step_file}: {e}") from e
        return module

    def request_quit(self) -> None:
        self.run_context.request_quit()

    def build_units(self, feature: Feature) -> List[ExecutionUnit]:
        """
        Build every executable unit of a feature before any step runs

        Raises:
            MissingExamples: a scenario outline has no Examples section
        """
        units = []
        for element in feature.elements:
            tags = feature.tags + element.tags
            if isinstance(element, ScenarioOutline):
                for row in self.expander.expand(element):
                    row_tags = feature.tags + row.tags
                    if self._should_run_scenario(row_tags):
                        units.append(ExecutionUnit(
                            name=row.name,
                            element=element,
                            collection=row.collection,
                            location=row.location,
                            tags=row_tags,
                            row=row,
                        ))
            elif self._should_run_scenario(tags):
                background_steps = element.background.steps if element.background else ()
                units.append(ExecutionUnit(
                    name=element.name,
                    element=element,
                    collection=StepCollection.build(element.steps, background_steps),
                    location=element.location,
                    tags=tags,
                ))
        return units

    def execute_feature(self, feature_path: Union[str, Path]) -> Dict[str, Any]:
        """Execute a single feature file"""
        feature = parse_feature_file(feature_path)
        return self.run_feature(feature)

    def run_feature(self, feature: Feature) -> Dict[str, Any]:
        """Execute a parsed feature and return its result dict"""
        units = self.build_units(feature)

        self._emit('feature_started', feature)
        statuses = []
        for unit in units:
            if self.run_context.wants_to_quit:
                break
            statuses.append(self._run_unit(unit))
        status = worst_status(statuses)
        self._emit('feature_finished', feature, status)

        logger.info(f"Feature '{feature.name}': {status}")
        return self.report_collector.features[-1]

    def _run_unit(self, unit: ExecutionUnit) -> Status:
        logger.info(f"Running {unit.keyword}: {unit.name}")
        self.runtime.begin_unit()
        self._emit('unit_started', unit)

        for invocation in unit.collection:
            if self.run_context.wants_to_quit:
                break
            invocation.invoke(self.runtime, self.run_context)
            result = invocation.step_result()
            if result.status is Status.FAILED and result.failure is not None:
                logger.error(f"Step failed: {invocation.keyword} {invocation.name}: {result.failure.message}")
            self._emit('step_finished', result)

        status = unit.status
        self._emit('unit_finished', unit, status)
        return status

    def _emit(self, event: str, *args) -> None:
        for reporter in self.reporters:
            getattr(reporter, event)(*args)

    def _should_run_scenario(self, tags: Iterable[str]) -> bool:
        """
        Check the scenario tags against the configured tag filter

        "@tag" requires the tag, "~@tag" excludes it. Every expression must hold.
        """
        tags = {tag.lstrip('@') for tag in tags}
        for expression in self.config.tags:
            expression = expression.strip()
            if expression.startswith('~'):
                if expression[1:].lstrip('@') in tags:
                    return False
            elif expression.lstrip('@') not in tags:
                return False
        return True

    def execute(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute feature files

        Args:
            input_data: Dict with 'feature_path' or 'feature_dir'

        Returns:
            Execution results
        """
        feature_path = input_data.get('feature_path')
        feature_dir = input_data.get('feature_dir', 'features/')

        if feature_path:
            return self.execute_paths([feature_path])
        return self.execute_paths([feature_dir])

    def execute_directory(self, feature_dir: Union[str, Path]) -> Dict[str, Any]:
        """Execute all feature files in a directory"""
        feature_dir = Path(feature_dir)

        if not feature_dir.exists():
            raise FileNotFoundError(f"Feature directory not found: {feature_dir}")

        return self.execute_paths([feature_dir])

    def execute_paths(self, paths: Iterable[Union[str, Path]], generate_reports: bool = True) -> Dict[str, Any]:
        """Execute every feature file found under the given paths"""
        start_time = datetime.now().isoformat()

        for feature_file in self._collect_feature_files(paths):
            if self.run_context.wants_to_quit:
                break
            logger.info(f"Executing feature: {feature_file}")
            self.execute_feature(feature_file)

        results = self.report_collector.results(
            strict=self.config.strict,
            snippets=self.runtime.snippets(),
            start_time=start_time,
        )

        if generate_reports:
            for report_format in self.config.report_formats:
                self.report_collector.generate_report(results, report_format)

        return results

    def _collect_feature_files(self, paths: Iterable[Union[str, Path]]) -> List[Path]:
        feature_files = []
        for path in paths:
            path = Path(path)
            if path.is_dir():
                feature_files.extend(sorted(path.glob('**/*.feature')))
            elif path.exists():
                feature_files.append(path)
            else:
                raise FileNotFoundError(f"Feature path not found: {path}")
        return feature_files

    def unused_step_definitions(self) -> List[Dict[str, str]]:
        return [
            {'pattern': usage.pattern_source, 'location': usage.location}
            for usage in self.runtime.unused_definitions()
        ]
