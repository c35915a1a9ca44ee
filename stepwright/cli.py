"""
CLI interface for stepwright.

Provides commands to initialize configuration, run job files and inspect
stored runs.

Job files are JSON or YAML JobDefinitions. Runs are executed in-process
through the Dispatcher and persisted to the configured FileRunStore, so
`status` and `runs` can inspect them later.
"""

import dataclasses

import click
from rich.markup import escape
from rich.table import Table

from stepwright import __version__


def _require_config(ctx):
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'stepwright init' to create a configuration file.", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _build_dispatcher(config):
    """Wire store, handlers, executor, orchestrator and dispatcher from config."""
    from stepwright.analytics import JsonlAnalyticsSink, LoggingAnalyticsSink
    from stepwright.dispatcher import Dispatcher
    from stepwright.handlers import HandlerRegistry
    from stepwright.orchestrator import JobOrchestrator
    from stepwright.run_store import FileRunStore
    from stepwright.step_executor import StepExecutor

    store = FileRunStore(config.store_dir)
    registry = HandlerRegistry.create_default(cost_per_1k_tokens=config.ai_cost_per_1k_tokens)
    executor = StepExecutor(registry, config.timeout_policy())
    if config.analytics_path:
        analytics = JsonlAnalyticsSink(config.analytics_path)
    else:
        analytics = LoggingAnalyticsSink()
    orchestrator = JobOrchestrator(
        store,
        executor,
        analytics=analytics,
        terminal_write_attempts=config.terminal_write_attempts,
        terminal_write_backoff=config.terminal_write_backoff,
    )
    return Dispatcher(store, orchestrator, max_workers=config.max_workers)


def _open_store(config):
    from stepwright.run_store import FileRunStore

    return FileRunStore(config.store_dir)


def _status_marker(status: str) -> str:
    return {"completed": "✓", "failed": "✗", "running": "…"}.get(status, "·")


def _print_run(run) -> None:
    from stepwright.utils import console

    console.print(f"Run:      {run.run_id}")
    console.print(f"Job:      {escape(run.job_id)} ({run.job_type})")
    console.print(f"Owner:    {run.owner_id}")
    if run.subject_id:
        console.print(f"Subject:  {run.subject_id}")
    console.print(f"Status:   {_status_marker(run.status.value)} {run.status.value}"
                  + (" (dry run)" if run.dry_run else ""))
    console.print(f"Progress: {run.completed_steps}/{run.total_steps} steps ({run.progress_percent}%)")
    if not run.is_terminal:
        console.print(f"ETA:      ~{run.estimated_seconds_remaining():.0f}s")
    console.print(f"Tokens:   {run.ledger.tokens}  Cost: {run.ledger.cost}")
    if run.error_message:
        console.print(f"Error:    {run.error_message}", markup=False)

    if run.step_log:
        table = Table(show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Type")
        table.add_column("Action")
        table.add_column("Status")
        table.add_column("Summary / Error")
        for entry in run.step_log:
            table.add_row(
                str(entry.step_index),
                entry.type,
                escape(entry.action),
                entry.status.value,
                escape(entry.error or entry.summary or ""),
            )
        console.print(table)


@click.group()
@click.version_option(version=__version__, prog_name="stepwright")
@click.pass_context
def main(ctx):
    """
    stepwright - Step-by-step job runner.

    Run jobs defined as JSON/YAML files and track their runs.
    """
    from stepwright.config import load_config
    from stepwright.utils import setup_logging

    ctx.ensure_object(dict)
    try:
        config = load_config()
    except Exception as e:
        # init does not need a config; other commands report the error
        ctx.obj["config_error"] = str(e)
        return
    ctx.obj["config"] = config
    setup_logging(log_file=config.log_file, log_level=config.log_level, log_format=config.log_format)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize stepwright configuration."""
    from stepwright.config import ConfigError, write_default_config

    try:
        cfg_path = write_default_config(force=force)
    except ConfigError as e:
        click.echo(f"{e}. Use --force to overwrite.", err=True)
        raise SystemExit(1)
    click.echo(f"Initialized stepwright config at {cfg_path}")


@main.command("run")
@click.argument("job_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--dry-run", is_flag=True, help="Simulate every step instead of executing it")
@click.option("--no-wait", is_flag=True, help="Print the run id without the final report")
@click.pass_context
def run(ctx, job_file: str, dry_run: bool, no_wait: bool):
    """
    Run a job file.

    JOB_FILE is a JSON or YAML job definition.

    Examples:

        stepwright run jobs/deploy.yaml

        stepwright run jobs/deploy.yaml --dry-run
    """
    from stepwright.errors import JobValidationError
    from stepwright.jobs import load_job_file
    from stepwright.schemas import RunStatus

    config = _require_config(ctx)

    try:
        job = load_job_file(job_file)
    except JobValidationError as e:
        click.echo(f"✗ Invalid job file: {e}", err=True)
        raise SystemExit(1)

    if dry_run:
        job = dataclasses.replace(job, dry_run=True)
        click.echo("=" * 50)
        click.echo("=== DRY RUN MODE === (steps are simulated)")
        click.echo("=" * 50)

    with _build_dispatcher(config) as dispatcher:
        receipt = dispatcher.submit(job)
        click.echo(f"Run {receipt.run_id} {receipt.status}")
        if no_wait:
            return
        finished = dispatcher.wait(receipt.run_id)

    _print_run(finished)
    if finished.status != RunStatus.COMPLETED:
        raise SystemExit(1)


@main.command("status")
@click.argument("run_id")
@click.pass_context
def status(ctx, run_id: str):
    """Show a run's status and step log."""
    from stepwright.errors import RunNotFoundError

    config = _require_config(ctx)
    try:
        found = _open_store(config).get(run_id)
    except RunNotFoundError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)
    _print_run(found)


@main.command("runs")
@click.option("--owner", "owner_id", default=None, help="Only runs of this owner")
@click.option("--limit", default=20, show_default=True, help="Maximum runs to list")
@click.pass_context
def runs(ctx, owner_id, limit: int):
    """List recent runs, newest first."""
    from stepwright.utils import console

    config = _require_config(ctx)
    found = _open_store(config).list_runs(owner_id=owner_id, limit=limit)
    if not found:
        click.echo("No runs found.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Run ID", no_wrap=True)
    table.add_column("Job")
    table.add_column("Owner")
    table.add_column("Status")
    table.add_column("Steps", justify="right")
    table.add_column("Created")
    for r in found:
        table.add_row(
            r.run_id,
            escape(r.job_id),
            r.owner_id,
            f"{_status_marker(r.status.value)} {r.status.value}",
            f"{r.completed_steps}/{r.total_steps}",
            r.created_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


if __name__ == "__main__":
    main()
