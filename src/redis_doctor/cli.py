"""redis-doctor CLI - read-only health diagnostics for Redis.

Modes:
- single run (default): analyze once, exit 2 on critical, 1 on warning, else 0
- --watch SECONDS: re-analyze on an interval until Ctrl+C, exit 0
- --compare FILE: diff against a previous --json export

Per project patterns:
- typer command with typer.Option declarations
- asyncio.run() to drive the async core from the sync command
- rich Console for human output, plain JSON on stdout for automation
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from redis_doctor.adapter import (
    ConnectionTarget,
    Credentials,
    RedisAdapter,
    connect_with_retry,
    parse_target,
)
from redis_doctor.analyzer import AnalysisOutcome, Analyzer, build_outcome, exit_code
from redis_doctor.comparison import Snapshot, try_load_snapshot
from redis_doctor.config import (
    Settings,
    find_config_file,
    load_config,
    resolve_connection,
)
from redis_doctor.exceptions import ConnectionFailedError
from redis_doctor.prompt import (
    initial_credentials,
    is_interactive,
    prompt_credentials,
    wait_for_enter,
)
from redis_doctor.render import JsonRenderer, RichRenderer
from redis_doctor.watch import WatchLoop

app = typer.Typer(
    name="redis-doctor",
    help="Read-only health diagnostics for Redis",
    add_completion=False,
)

# Spinners, prompts and errors go to stderr; stdout carries the report
err_console = Console(stderr=True)


@dataclass(frozen=True)
class RunOptions:
    """Effective options after merging CLI flags with config defaults."""

    json_output: bool
    sample_size: int
    skip_key_sampling: bool
    insecure: bool
    watch_interval: float
    compare: Path | None


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def _spinner(enabled: bool, message: str):
    return err_console.status(message) if enabled else contextlib.nullcontext()


async def _connect(
    target: ConnectionTarget,
    credentials: Credentials,
    options: RunOptions,
    settings: Settings,
) -> RedisAdapter:
    show_spinner = not options.json_output
    with _spinner(show_spinner, f"Connecting to {target.address}...") as status:

        def on_auth_failure(error: Exception) -> None:
            # Stop the spinner so it does not draw over the prompt
            if status is not None:
                status.stop()

        adapter = await connect_with_retry(
            target,
            credentials,
            prompt_credentials,
            settings,
            insecure=options.insecure,
            on_auth_failure=on_auth_failure,
        )
    if show_spinner:
        err_console.print(f"  [green]✓[/green] Connected to {escape(target.address)}")
    return adapter


async def _analyze_once(
    target: ConnectionTarget,
    credentials: Credentials,
    analyzer: Analyzer,
    baseline: Snapshot | None,
    options: RunOptions,
    settings: Settings,
) -> AnalysisOutcome:
    adapter = await _connect(target, credentials, options, settings)
    try:
        with _spinner(not options.json_output, "Running diagnostics..."):
            report = await analyzer.run(adapter)
    finally:
        await adapter.close()
    return build_outcome(report, baseline)


async def _watch(
    target: ConnectionTarget,
    credentials: Credentials,
    analyzer: Analyzer,
    baseline: Snapshot | None,
    options: RunOptions,
    settings: Settings,
) -> None:
    adapter = await _connect(target, credentials, options, settings)
    renderer = JsonRenderer() if options.json_output else RichRenderer(Console())
    loop = WatchLoop(
        source=adapter,
        analyzer=analyzer,
        renderer=renderer,
        interval_seconds=options.watch_interval,
        baseline=baseline,
    )
    await loop.run()


@app.command()
def analyze(
    target: str = typer.Argument(
        ...,
        help="redis:// or rediss:// URL, or a connection name from .redis-doctor.yaml",
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    scan_count: Optional[int] = typer.Option(
        None, "--scan-count", min=1, help="Number of keys to sample (default: 1000)"
    ),
    no_scan: bool = typer.Option(
        False, "--no-scan", help="Skip key pattern analysis (fastest mode)"
    ),
    insecure: bool = typer.Option(
        False, "--insecure", help="Skip TLS certificate verification"
    ),
    watch: float = typer.Option(
        0.0, "--watch", "-w", min=0.0, help="Re-run analysis every N seconds"
    ),
    compare: Optional[Path] = typer.Option(
        None, "--compare", "-c", help="Compare against a previous --json export"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """
    Analyze a Redis server's memory, performance, connections, key
    patterns and replication.

    Environment variables:
        REDIS_DOCTOR_COMMAND_TIMEOUT: Per-command timeout in seconds
        REDIS_DOCTOR_CONNECT_TIMEOUT: Connection timeout in seconds
        REDIS_DOCTOR_SAMPLE_SIZE: Default number of keys to sample
    """
    configure_logging(verbose)
    settings = Settings()
    config = load_config(find_config_file(settings.config_filename))

    url = resolve_connection(target, config)
    if url is None:
        available = ", ".join(sorted(config.connections)) or "none configured"
        err_console.print(
            f"[red]Unknown connection '{escape(target)}'.[/red] Available: {escape(available)}"
        )
        raise typer.Exit(1)

    defaults = config.defaults
    options = RunOptions(
        json_output=json_output,
        sample_size=scan_count or defaults.scan_count or settings.sample_size,
        skip_key_sampling=no_scan or defaults.no_scan,
        insecure=insecure or defaults.insecure,
        watch_interval=watch,
        compare=compare,
    )

    connection_target = parse_target(url)
    analyzer = Analyzer(
        sample_size=options.sample_size,
        skip_key_sampling=options.skip_key_sampling,
        server_url=connection_target.display_url,
    )
    baseline = try_load_snapshot(options.compare) if options.compare else None
    credentials = initial_credentials(connection_target, interactive=is_interactive())

    try:
        if options.watch_interval > 0:
            asyncio.run(
                _watch(connection_target, credentials, analyzer, baseline, options, settings)
            )
            raise typer.Exit(0)

        outcome = asyncio.run(
            _analyze_once(connection_target, credentials, analyzer, baseline, options, settings)
        )
    except ConnectionFailedError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)

    if options.json_output:
        JsonRenderer().render_report(outcome)
    else:
        renderer = RichRenderer(Console())
        renderer.render_report(outcome)
        if is_interactive():
            wait_for_enter()
        renderer.render_details(outcome.report)

    raise typer.Exit(exit_code(outcome.report))


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
