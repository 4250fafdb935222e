"""Command line entrypoint for the lead sync job."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from threading import Event
from typing import List, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, ScheduleConfig, ScheduleType, SourceDescriptor
from .engine import SyncRunResult
from .infra import MongoManager
from .logging_conf import available_source_logs, configure_logging, log_dir, tail_log
from .orchestrator import SyncOrchestrator
from .scheduler import APSchedulerAdapter

app = typer.Typer(
    help="Lead sync: merge new leads from every source datastore into the CRM.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Inspect log files.",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    scheduler: APSchedulerAdapter
    orchestrator: SyncOrchestrator
    storage: MongoManager


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    config = repository.load()
    storage = MongoManager(timeout_ms=config.timeout_ms)
    scheduler = APSchedulerAdapter()
    orchestrator = SyncOrchestrator(config=config, storage=storage, scheduler=scheduler)
    return AppState(
        repository=repository,
        scheduler=scheduler,
        orchestrator=orchestrator,
        storage=storage,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _format_schedule(schedule: ScheduleConfig) -> str:
    if schedule.type is ScheduleType.CRON:
        return f"cron ({schedule.value}, {schedule.timezone})"
    return f"{schedule.description} ({schedule.timezone})"


def _select_sources(state: AppState, tags: Sequence[str] | None) -> list[SourceDescriptor] | None:
    if not tags:
        return None
    config = state.orchestrator.config
    selected = []
    for tag in tags:
        try:
            selected.append(config.get_source(tag))
        except KeyError:
            known = ", ".join(source.source_tag for source in config.sources)
            console.print(f"Unknown source `{tag}`. Configured sources: {known}", style="red")
            raise typer.Exit(code=1) from None
    return selected


def _render_sources_table(sources: Sequence[SourceDescriptor]) -> Table:
    table = Table(title=f"Sources · {len(sources)} configured", box=box.SIMPLE_HEAD)
    table.add_column("Tag", style="cyan", no_wrap=True)
    table.add_column("Database", style="magenta")
    table.add_column("Collection", style="green")
    table.add_column("Timestamp", style="yellow")
    for source in sources:
        table.add_row(
            source.source_tag,
            source.connection.database,
            source.collection_name,
            f"{source.timestamp_field} ({source.timestamp_kind.value})",
        )
    return table


def _render_result_table(result: SyncRunResult) -> Table:
    cutoff = result.cutoff.isoformat() if result.cutoff else "full backfill"
    table = Table(title=f"Sync results · since {cutoff}", box=box.SIMPLE_HEAD)
    table.add_column("Source", style="cyan")
    table.add_column("Created", style="green", justify="right")
    table.add_column("Skipped", style="dim", justify="right")
    for tag, count in result.counts.items():
        table.add_row(tag, str(count), str(result.skipped.get(tag, 0)))
    return table


def _wait_for_shutdown() -> None:
    Event().wait()


app.add_typer(log_app, name="log", help="List or show log files.")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.", is_flag=True),
) -> None:
    ctx.obj = build_state(verbose)


@app.command("sources", help="List configured sources and the schedule.")
def sources_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    config = state.orchestrator.config
    console.print(_render_sources_table(config.sources))
    console.print(f"Schedule: {_format_schedule(config.schedule)}", style="dim")


@app.command("run", help="Run one sync pass now.")
def run(
    ctx: typer.Context,
    source: Optional[List[str]] = typer.Option(
        None, "--source", "-s", help="Limit the run to these source tags."
    ),
    full: bool = typer.Option(
        False, "--full", help="Copy every existing record instead of today's only.", is_flag=True
    ),
    quiet: bool = typer.Option(False, "--quiet", help="Print a one-line summary.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    selected = _select_sources(state, source)
    result = state.orchestrator.run_once(selected, full=full)
    if quiet:
        counts = ", ".join(f"{tag} {count}" for tag, count in result.counts.items())
        console.print(f"Sync finished: {counts}; errors {len(result.errors)}")
    else:
        console.print(_render_result_table(result))
        for error in result.errors:
            console.print(error, style="red")
    if result.errors:
        raise typer.Exit(code=1)


@app.command("probe", help="Check that every source answers a small read.")
def probe(
    ctx: typer.Context,
    limit: int = typer.Option(10, "--limit", help="Documents to read per source."),
) -> None:
    state = _get_state(ctx)
    report = state.orchestrator.probe_sources(limit=limit)
    table = Table(title="Source probe", box=box.SIMPLE_HEAD)
    table.add_column("Source", style="cyan")
    table.add_column("Documents", style="green", overflow="fold")
    failed = False
    for tag, value in report.items():
        if isinstance(value, str):
            failed = True
        table.add_row(tag, str(value))
    console.print(table)
    if failed:
        raise typer.Exit(code=1)


@app.command("serve", help="Start the scheduler and run syncs until interrupted.")
def serve(
    ctx: typer.Context,
    run_now: bool = typer.Option(
        False, "--run-now", help="Run one pass before the first scheduled run.", is_flag=True
    ),
) -> None:
    state = _get_state(ctx)
    if run_now:
        state.orchestrator.run_once()
    state.orchestrator.register_schedule()
    console.print(
        f"Scheduler running: {_format_schedule(state.orchestrator.config.schedule)}", style="green"
    )
    try:
        _wait_for_shutdown()
    except KeyboardInterrupt:
        console.print("Stopping scheduler…", style="yellow")
    finally:
        state.scheduler.shutdown()
        state.storage.close_all()


@log_app.command("list", help="List per-source log files.")
def log_list() -> None:
    logs = list(available_source_logs())
    if not logs:
        console.print("No source logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the last lines of a log file.")
def log_show(
    source: Optional[str] = typer.Option(None, "--source", help="Source tag (global log if empty)."),
    tail: int = typer.Option(100, "--tail", help="Number of lines to show."),
) -> None:
    base_dir: Path = log_dir()
    path = base_dir / "sources" / f"{source}.log" if source else base_dir / "sync.log"
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
