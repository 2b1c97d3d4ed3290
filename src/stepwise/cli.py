import click
import logging
from pathlib import Path
from typing import Any, Dict, Tuple

from .core import ConfigManager, StepwiseError
from .executor import TestExecutor, ExecutorConfig
from . import __version__

logger = logging.getLogger(__name__)


@click.group()
@click.option('--config', '-c', type=click.Path(), help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, config, verbose):
    """stepwise - run BDD feature files against step definitions"""
    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Load configuration
    config_path = Path(config) if config else None
    ctx.obj = ConfigManager(config_path)


def _executor_config(config: ConfigManager, steps: Tuple[str, ...], **overrides) -> ExecutorConfig:
    values: Dict[str, Any] = dict(config.get_module_config('executor'))
    values['step_paths'] = list(steps) or list(config.get('general.step_paths', []))
    for key, value in overrides.items():
        if value is not None:
            values[key] = value
    return ExecutorConfig.from_dict(values)


def _existing(paths):
    return [p for p in paths if Path(p).exists()]


@cli.command()
def version():
    """Show version information"""
    click.echo(f"stepwise v{__version__}")


@cli.command()
@click.argument('paths', nargs=-1)
@click.option('-s', '--steps', multiple=True, type=click.Path(exists=True),
              help='Step definition file or directory (repeatable)')
@click.option('-n', '--dry-run', is_flag=True, default=None, help='Match steps without running them')
@click.option('--strict', is_flag=True, default=None, help='Fail the run on undefined or pending steps')
@click.option('--full-trace', is_flag=True, default=None, help='Show full diagnostic traces')
@click.option('--truncate', is_flag=True, default=None, help='Strip function names from trace lines')
@click.option('-t', '--tags', help='Tag filter (comma-separated, ~@tag to exclude)')
@click.option('-f', '--format', 'formats', multiple=True, type=click.Choice(['json', 'junit']),
              help='Report format (repeatable)')
@click.option('-o', '--output-dir', help='Report output directory')
@click.pass_obj
def run(config, paths, steps, dry_run, strict, full_trace, truncate, tags, formats, output_dir):
    """
    Execute feature files

    Examples:
        stepwise run features/
        stepwise run login.feature -s features/steps --strict
        stepwise run features/ -t @smoke,~@wip -f junit
    """
    executor_config = _executor_config(
        config, steps,
        dry_run=dry_run,
        strict=strict,
        full_trace=full_trace,
        truncate_trace=truncate,
        tags=[t.strip() for t in tags.split(',')] if tags else None,
        report_formats=list(formats) or None,
        output_dir=output_dir,
    )
    executor_config.step_paths = _existing(executor_config.step_paths)

    try:
        executor = TestExecutor(executor_config)
        results = executor.execute_paths(paths or ['features/'])
    except (StepwiseError, FileNotFoundError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(2)

    # Display summary
    summary = results['summary']
    click.echo("\nTest Execution Summary:")
    click.echo(f"  Scenarios: {summary['total']}")
    click.echo(f"  Passed: {summary['passed']}")
    click.echo(f"  Failed: {summary['failed']}")
    click.echo(f"  Skipped: {summary['skipped']}")
    steps_summary = summary['steps']
    click.echo(f"  Undefined steps: {steps_summary['undefined']}")
    click.echo(f"  Pending steps: {steps_summary['pending']}")

    # Display failed scenarios
    if summary['failed'] > 0:
        click.echo("\nFailed Scenarios:")
        for feature in results['features']:
            for scenario in feature.get('scenarios', []):
                if scenario['status'] == 'failed':
                    click.echo(f"  - {scenario['name']} ({scenario['location']})")
                    if 'error' in scenario:
                        click.echo(f"    Error: {scenario['error']}")

    if results['snippets']:
        click.echo("\nYou can implement step definitions for undefined steps with these snippets:\n")
        for snippet in results['snippets']:
            click.echo(snippet)

    raise SystemExit(0 if results['success'] else 1)


@cli.command('steps')
@click.option('-s', '--steps', multiple=True, type=click.Path(exists=True),
              help='Step definition file or directory (repeatable)')
@click.pass_obj
def list_steps(config, steps):
    """List all available step definitions"""
    executor_config = _executor_config(config, steps)
    executor_config.step_paths = _existing(executor_config.step_paths)
    try:
        executor = TestExecutor(executor_config)
    except StepwiseError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(2)

    definitions = executor.step_registry.list_definitions()

    click.echo("Available Step Definitions:")
    click.echo("=" * 60)

    # Group by keyword
    grouped = {}
    for defn in definitions:
        grouped.setdefault(defn['keyword'].upper(), []).append(defn)

    for keyword in ['GIVEN', 'WHEN', 'THEN', 'STEP']:
        if keyword in grouped:
            click.echo(f"\n{keyword} Steps:")
            click.echo("-" * 40)
            for defn in grouped[keyword]:
                click.echo(f"  {defn['pattern']}  # {defn['location']}")
                if defn.get('description'):
                    click.echo(f"    {defn['description']}")


@cli.command()
@click.argument('paths', nargs=-1)
@click.option('-s', '--steps', multiple=True, type=click.Path(exists=True),
              help='Step definition file or directory (repeatable)')
@click.pass_obj
def usage(config, paths, steps):
    """List step definitions no feature step uses"""
    executor_config = _executor_config(config, steps, dry_run=True, report_formats=[])
    executor_config.step_paths = _existing(executor_config.step_paths)

    try:
        executor = TestExecutor(executor_config)
        executor.execute_paths(paths or ['features/'], generate_reports=False)
    except (StepwiseError, FileNotFoundError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(2)

    unused = executor.unused_step_definitions()
    if not unused:
        click.echo("All step definitions are used")
        return

    click.echo(f"Unused step definitions ({len(unused)}):")
    for usage_entry in unused:
        click.echo(f"  {usage_entry['pattern']}  # {usage_entry['location']}")


def main():
    """Main entry point"""
    cli()


if __name__ == "__main__":
    main()
