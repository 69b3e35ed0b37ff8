"""Command-line interface for Fantastic-Probe."""

import logging
import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import SUPPORTED_UPLOAD_TYPES, ProbeConfig, create_sample_config, load_config
from .core.scanner import ScanOrchestrator, ScanReport
from .disc.protocol import PLACEHOLDER_SUFFIX
from .disc.structure import LanguageTagCache
from .error_handling import (
    ConfigurationError,
    check_dependencies,
    check_optional_dependencies,
    graceful_exit,
    handle_error,
)
from .storage.failure_cache import FailureCache
from .upload.dispatcher import UploadDispatcher, UploadSummary

console = Console()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    *,
    verbose: bool = False,
    config: ProbeConfig | None = None,
) -> None:
    """Set up console logging plus the main and error-only log files."""
    debug = verbose or bool(config and config.debug)
    level = logging.DEBUG if debug else logging.INFO

    # Clean up existing handlers first to prevent resource leaks
    cleanup_logging()

    show_path = level == logging.DEBUG
    handlers: list[logging.Handler] = [
        RichHandler(console=console, rich_tracebacks=True, show_path=show_path),
    ]

    if config and config.log_dir:
        config.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

        error_handler = logging.FileHandler(config.error_log_file)
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(error_handler)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True,  # Force reconfiguration of root logger
    )


def cleanup_logging() -> None:
    """Clean up logging handlers to prevent ResourceWarnings."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        if isinstance(handler, logging.FileHandler):
            handler.close()
            root_logger.removeHandler(handler)


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file path",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx: click.Context, config: Path | None, verbose: bool) -> None:
    """Fantastic-Probe - media info for Blu-ray/DVD ISO placeholders."""
    try:
        ctx.ensure_object(dict)
        loaded_config = load_config(config)
        ctx.obj["config"] = loaded_config
        ctx.obj["verbose"] = verbose

        setup_logging(verbose=verbose, config=loaded_config)
    except (OSError, ValueError) as e:
        config_error = ConfigurationError(
            f"Failed to load configuration: {e}",
            config_path=config,
            solution="Run 'fantastic-probe config validate' to check your configuration file",
        )
        console.print(f"[red]Configuration Error:[/red] {config_error}")
        sys.exit(1)


def _run_scan(action: Callable[[], ScanReport]) -> ScanReport:
    """Run a scan action, turning fatal errors into a user message and exit 1."""
    try:
        return action()
    except Exception as e:  # noqa: BLE001
        handle_error(e)
        graceful_exit(1)
        raise


@cli.command()
@click.pass_context
def scan(ctx: click.Context) -> None:
    """Scan for placeholders without media info and process a batch."""
    config: ProbeConfig = ctx.obj["config"]
    config.ensure_directories()
    orchestrator = ScanOrchestrator(config)

    _run_scan(orchestrator.run)


@cli.command()
@click.argument("placeholder", type=click.Path(exists=True, path_type=Path))
@click.pass_context
def process(ctx: click.Context, placeholder: Path) -> None:
    """Process a single .iso.strm placeholder now."""
    config: ProbeConfig = ctx.obj["config"]
    if not placeholder.name.lower().endswith(PLACEHOLDER_SUFFIX):
        console.print(f"[red]Not a {PLACEHOLDER_SUFFIX} file: {placeholder}[/red]")
        sys.exit(1)

    config.ensure_directories()
    orchestrator = ScanOrchestrator(config)
    report = _run_scan(lambda: orchestrator.run_single(placeholder.resolve()))

    if report.lock_held:
        console.print("[yellow]A scan is already running, try again later[/yellow]")
        sys.exit(1)
    if report.failed:
        for path, message in report.failures.items():
            console.print(f"[red]✗[/red] {Path(path).name}: {message}")
        sys.exit(1)
    console.print(f"[green]✓[/green] Processed {placeholder.name}")


@cli.group()
@click.pass_context
def cache(ctx: click.Context) -> None:
    """Failure cache management commands."""


@cache.command("stats")
@click.pass_context
def cache_stats(ctx: click.Context) -> None:
    """Show failure cache statistics and permanently failed files."""
    config: ProbeConfig = ctx.obj["config"]
    failure_cache = FailureCache(config)
    stats = failure_cache.stats()

    console.print("[bold]Failure Cache[/bold]")
    console.print(f"  Files with failures: {stats['total']}")
    console.print(
        f"  Permanently skipped (>= {config.max_retry_count} failures): {stats['permanent']}",
    )

    entries = failure_cache.permanent_failures()
    if not entries:
        return

    table = Table()
    table.add_column("File")
    table.add_column("Failures", justify="right")
    table.add_column("Last Failure")
    table.add_column("Error")
    for entry in entries:
        last = (
            datetime.fromtimestamp(entry.last_failure_time).strftime("%Y-%m-%d %H:%M")
            if entry.last_failure_time
            else "-"
        )
        table.add_row(
            entry.file_path,
            str(entry.failure_count),
            last,
            (entry.last_error_message or "")[:60],
        )
    console.print(table)


@cache.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def cache_clear(ctx: click.Context, yes: bool) -> None:
    """Clear the failure cache and the language tag cache."""
    config: ProbeConfig = ctx.obj["config"]
    if not yes and not click.confirm("Clear all failure records?"):
        return

    removed = FailureCache(config).clear()
    tags = LanguageTagCache(config).clear()
    console.print(
        f"[green]Cleared {removed} failure records and {tags} cached language tags[/green]",
    )


@cache.command("reset")
@click.argument("path", type=click.Path(path_type=Path))
@click.pass_context
def cache_reset(ctx: click.Context, path: Path) -> None:
    """Forget the failures of one placeholder so it is retried."""
    config: ProbeConfig = ctx.obj["config"]
    key = str(path.expanduser().resolve())
    if FailureCache(config).reset(key):
        console.print(f"[green]Reset failure record: {key}[/green]")
    else:
        console.print(f"[yellow]No failure record for {key}[/yellow]")


@cli.group()
@click.pass_context
def upload(ctx: click.Context) -> None:
    """Upload generated files to remote storage."""


def _print_summary(title: str, summary: UploadSummary) -> None:
    console.print(f"\n[bold]{title}[/bold]")
    console.print(f"  [green]✓[/green] Succeeded: {summary.succeeded}")
    console.print(f"  [red]✗[/red] Failed: {summary.failed}")
    if summary.skipped:
        console.print(f"  ⏭  Already uploaded: {summary.skipped}")


@upload.command("all")
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory to scan (defaults to strm_root)",
)
@click.option("--types", help="Comma separated file types, e.g. json,nfo")
@click.pass_context
def upload_all(ctx: click.Context, root: Path | None, types: str | None) -> None:
    """Upload every matching file that has not been uploaded yet."""
    config: ProbeConfig = ctx.obj["config"]
    config.ensure_directories()
    file_types = None
    if types:
        file_types = [t.strip().lower() for t in types.split(",") if t.strip()]
        unknown = [t for t in file_types if t not in SUPPORTED_UPLOAD_TYPES]
        if unknown:
            console.print(f"[red]Unsupported file types: {', '.join(unknown)}[/red]")
            sys.exit(1)

    summary = UploadDispatcher(config).upload_all_pending(root, file_types)
    _print_summary("Bulk upload", summary)
    if summary.failed:
        sys.exit(1)


@upload.command("retry")
@click.pass_context
def upload_retry(ctx: click.Context) -> None:
    """Retry every failed upload."""
    config: ProbeConfig = ctx.obj["config"]
    config.ensure_directories()
    summary = UploadDispatcher(config).retry_failed()
    _print_summary("Retry", summary)
    if summary.failed:
        sys.exit(1)


@upload.command("file")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def upload_file(ctx: click.Context, path: Path) -> None:
    """Upload a single file."""
    config: ProbeConfig = ctx.obj["config"]
    config.ensure_directories()
    if UploadDispatcher(config).upload_file(path.resolve()):
        console.print(f"[green]✓[/green] Uploaded {path.name}")
    else:
        console.print(f"[red]✗[/red] Upload failed: {path.name}")
        sys.exit(1)


@upload.command("stats")
@click.pass_context
def upload_stats(ctx: click.Context) -> None:
    """Show upload statistics."""
    config: ProbeConfig = ctx.obj["config"]
    stats = UploadDispatcher(config).stats()

    table = Table()
    table.add_column("Status")
    table.add_column("Count", justify="right")
    for status in ("success", "failed", "pending", "total"):
        table.add_row(status.title(), str(stats.get(status, 0)))
    console.print(table)


@upload.command("cleanup")
@click.option("--days", type=int, default=30, help="Keep successful records this many days")
@click.pass_context
def upload_cleanup(ctx: click.Context, days: int) -> None:
    """Remove old successful upload records."""
    config: ProbeConfig = ctx.obj["config"]
    removed = UploadDispatcher(config).cleanup(days)
    console.print(f"[green]Removed {removed} upload records older than {days} days[/green]")


@cli.group("config")
@click.pass_context
def config_cmd(ctx: click.Context) -> None:
    """Configuration management commands."""


@config_cmd.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current configuration."""
    config: ProbeConfig = ctx.obj["config"]

    table = Table()
    table.add_column("Setting")
    table.add_column("Value")

    table.add_row("STRM Root", str(config.strm_root))
    table.add_row("Cache Directory", str(config.cache_dir))
    table.add_row("Log Directory", str(config.log_dir))
    table.add_row("ffprobe", config.ffprobe_path)
    table.add_row("bd_list_titles", config.bd_list_titles_path)
    table.add_row("ffprobe Timeout", f"{config.ffprobe_timeout}s")
    table.add_row("Max Retries", str(config.max_retry_count))
    table.add_row("Batch Size", str(config.scan_batch_size))
    table.add_row(
        "Upload",
        f"every {config.upload_interval}s ({', '.join(config.upload_file_types)})"
        if config.upload_enabled
        else "Disabled",
    )
    table.add_row("Emby URL", config.emby_url or "Not configured")
    table.add_row("Emby API Key", "***" if config.emby_api_key else "Not configured")

    console.print(table)


@config_cmd.command("validate")
@click.pass_context
def config_validate(ctx: click.Context) -> None:
    """Validate current configuration."""
    config: ProbeConfig = ctx.obj["config"]

    console.print("[bold]Configuration Validation[/bold]")
    errors = []

    if config.strm_root.is_dir():
        console.print(f"[green]✓[/green] STRM root: {config.strm_root}")
    else:
        console.print(f"[red]✗[/red] STRM root not found: {config.strm_root}")
        errors.append("STRM root not found")

    for name, path in [
        ("Cache", config.cache_dir),
        ("Log", config.log_dir),
        ("Lock", config.lock_dir),
    ]:
        try:
            path.mkdir(parents=True, exist_ok=True)
            console.print(f"[green]✓[/green] {name} directory: {path}")
        except OSError as e:
            console.print(f"[red]✗[/red] {name} directory: {e}")
            errors.append(f"{name} directory: {e}")

    for dependency in check_dependencies(config):
        console.print(f"[red]✗[/red] {dependency.message}")
        errors.append(dependency.message)
    for missing in check_optional_dependencies(config):
        console.print(f"[yellow]⚠[/yellow] Optional dependency missing: {missing}")

    if config.emby_enabled and not (config.emby_url and config.emby_api_key):
        console.print("[red]✗[/red] Emby enabled but URL or API key missing")
        errors.append("Emby configuration incomplete")

    if errors:
        console.print(f"\n[red]Found {len(errors)} configuration errors[/red]")
        sys.exit(1)
    else:
        console.print("\n[green]Configuration is valid[/green]")


@config_cmd.command("init")
@click.option(
    "--path",
    "-p",
    type=click.Path(path_type=Path),
    default=Path.home() / ".config" / "fantastic-probe" / "config.toml",
    help="Path for the configuration file",
)
def config_init(path: Path) -> None:
    """Create a sample configuration file."""
    try:
        create_sample_config(path)
        console.print(f"[green]Created sample configuration at {path}[/green]")
        console.print("Please edit the configuration file with your settings.")
    except OSError as e:
        console.print(f"[red]Error creating configuration: {e}[/red]")
        sys.exit(1)


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
