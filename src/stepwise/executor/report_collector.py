import json
from pathlib import Path
from datetime import datetime
from typing import Dict, List, Any, Optional
import logging
from jinja2 import Template

from ..core.base import Reporter, Status

logger = logging.getLogger(__name__)

JUNIT_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<testsuites name="stepwise" time="{{ duration }}" tests="{{ total_tests }}" failures="{{ failures }}">
    {% for feature in features %}
    <testsuite name="{{ feature.feature|e }}" tests="{{ feature.scenarios|length }}" failures="{{ feature.failures }}" time="{{ feature.duration }}">
        {% for scenario in feature.scenarios %}
        <testcase classname="{{ feature.feature|replace(' ', '_')|e }}" name="{{ scenario.name|e }}" time="{{ scenario.duration }}">
            {% if scenario.status == 'failed' %}
            <failure message="{{ scenario.error|default('Test failed')|e }}">
                {% for step in scenario.steps %}
                {% if step.status == 'failed' %}
                {{ step.keyword|e }} {{ step.name|e }}
                Error: {{ step.error|default('')|e }}
                {% for line in step.trace|default([]) %}
                  {{ line|e }}
                {% endfor %}
                {% endif %}
                {% endfor %}
            </failure>
            {% elif scenario.status in ('skipped', 'undefined', 'pending') %}
            <skipped message="{{ scenario.status }}"/>
            {% endif %}
        </testcase>
        {% endfor %}
    </testsuite>
    {% endfor %}
</testsuites>
"""


class ReportCollector(Reporter):
    """Collects execution events into result dicts and writes reports"""

    def __init__(self, output_dir: str = "test-results"):
        self.output_dir = Path(output_dir)
        self.features: List[Dict[str, Any]] = []
        self._feature: Optional[Dict[str, Any]] = None
        self._scenario: Optional[Dict[str, Any]] = None

    def feature_started(self, feature) -> None:
        self._feature = {
            'feature': feature.name,
            'file': feature.filename,
            'tags': list(feature.tags),
            'scenarios': [],
            'start_time': datetime.now().isoformat(),
            'status': Status.PASSED.value,
        }

    def unit_started(self, unit) -> None:
        self._scenario = {
            'name': unit.name,
            'keyword': unit.keyword,
            'location': str(unit.location),
            'tags': list(unit.tags),
            'outline': unit.row.outline.name if unit.row is not None else None,
            'steps': [],
            'start_time': datetime.now().isoformat(),
        }

    def step_finished(self, result) -> None:
        self._scenario['steps'].append(result.to_dict())

    def unit_finished(self, unit, status: Status) -> None:
        scenario = self._scenario
        scenario['status'] = status.value
        scenario['end_time'] = datetime.now().isoformat()
        if unit.row is not None:
            scenario['cells'] = dict(zip(unit.row.headings, unit.row.cells))
            scenario['cell_statuses'] = [cell.value for cell in unit.row.cell_statuses]

        errors = [step['error'] for step in scenario['steps'] if step.get('error')]
        if errors:
            scenario['error'] = errors[0]

        self._feature['scenarios'].append(scenario)
        self._scenario = None

    def feature_finished(self, feature, status: Optional[Status] = None) -> None:
        self._feature['status'] = (status or Status.PASSED).value
        self._feature['end_time'] = datetime.now().isoformat()
        self.features.append(self._feature)
        self._feature = None

    def results(self, strict: bool = False, snippets: Optional[List[str]] = None,
                start_time: Optional[str] = None) -> Dict[str, Any]:
        """All collected features with a summary"""
        summary = self.summarize(self.features, strict)
        return {
            'features': self.features,
            'summary': summary,
            'success': summary['success'],
            'snippets': list(snippets or []),
            'start_time': start_time or datetime.now().isoformat(),
            'end_time': datetime.now().isoformat(),
        }

    @staticmethod
    def summarize(features: List[Dict[str, Any]], strict: bool = False) -> Dict[str, Any]:
        """
        Count scenarios and steps by status

        undefined and pending steps only make the run unsuccessful in strict mode
        """
        scenarios = {status.value: 0 for status in Status}
        steps = {status.value: 0 for status in Status}
        for feature in features:
            for scenario in feature.get('scenarios', []):
                scenarios[scenario['status']] += 1
                for step in scenario.get('steps', []):
                    steps[step['status']] += 1

        success = scenarios[Status.FAILED.value] == 0
        if strict and (steps[Status.UNDEFINED.value] or steps[Status.PENDING.value]):
            success = False

        return {
            'total': sum(scenarios.values()),
            'passed': scenarios[Status.PASSED.value],
            'failed': scenarios[Status.FAILED.value],
            'skipped': scenarios[Status.SKIPPED.value],
            'undefined': scenarios[Status.UNDEFINED.value],
            'pending': scenarios[Status.PENDING.value],
            'steps': steps,
            'success': success,
        }

    def generate_report(self, results: Dict[str, Any], format: str = "json") -> str:
        """
        Generate test report in specified format

        Args:
            results: Test execution results
            format: Report format (json, junit)

        Returns:
            Path to generated report
        """
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        self.output_dir.mkdir(parents=True, exist_ok=True)

        if format == "json":
            return self._generate_json_report(results, timestamp)
        elif format == "junit":
            return self._generate_junit_report(results, timestamp)
        else:
            raise ValueError(f"Unsupported report format: {format}")

    def _generate_json_report(self, results: Dict[str, Any], timestamp: str) -> str:
        """Generate JSON report"""
        report_path = self.output_dir / f"report_{timestamp}.json"

        with open(report_path, 'w') as f:
            json.dump(results, f, indent=2)

        logger.info(f"JSON report generated: {report_path}")
        return str(report_path)

    def _generate_junit_report(self, results: Dict[str, Any], timestamp: str) -> str:
        """Generate JUnit XML report"""
        features = results.get('features', [])
        total_tests = sum(len(f.get('scenarios', [])) for f in features)
        failures = sum(1 for f in features
                       for s in f.get('scenarios', [])
                       if s.get('status') == 'failed')

        # Calculate durations
        for feature in features:
            feature['failures'] = sum(1 for s in feature.get('scenarios', [])
                                      if s.get('status') == 'failed')
            feature['duration'] = _duration(feature)
            for scenario in feature.get('scenarios', []):
                scenario['duration'] = _duration(scenario)

        template = Template(JUNIT_TEMPLATE)
        junit_content = template.render(
            duration=_duration(results),
            total_tests=total_tests,
            failures=failures,
            features=features
        )

        report_path = self.output_dir / f"report_{timestamp}.xml"
        with open(report_path, 'w') as f:
            f.write(junit_content)

        logger.info(f"JUnit report generated: {report_path}")
        return str(report_path)


def _duration(item: Dict[str, Any]) -> float:
    if item.get('start_time') and item.get('end_time'):
        start = datetime.fromisoformat(item['start_time'])
        end = datetime.fromisoformat(item['end_time'])
        return (end - start).total_seconds()
    return 0
