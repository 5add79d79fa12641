"""CLI for the app usage collector using Typer."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from .amounts import format_token_amount
from .config import (
    BACKFILL_POLICIES,
    Config,
    get_default_config_path,
    load_config,
    save_template_config,
    show_config,
)
from .database import init_db
from .extractors.playwright_llm import PlaywrightLLMGateway
from .http_client import close_http_client
from .llm_client import LLMClient
from .scheduler import BoundedScheduler
from .services.backfill_service import BackfillPolicy, BackfillService, BackfillSummary, fetch_app_details
from .services.collection_service import CollectionPipeline, CollectionSummary
from .services.stats_service import StatsReport, build_category_stats
from .services.usage_service import UsageFetchError, fetch_source_usage
from .utils import setup_logging, validate_url

# Load .env from the working directory only
load_dotenv(Path.cwd() / ".env", override=False)

# Load configuration; an invalid file only blocks commands that need it
try:
    _config = load_config()
    _config_error: Optional[str] = None
except (ValueError, yaml.YAMLError) as e:
    _config = Config()
    _config_error = str(e)

# CLI styles
STYLE_HEADER = "bold blue"
STYLE_SUCCESS = "bold green"
STYLE_WARNING = "bold yellow"
STYLE_ERROR = "bold red"
STYLE_MUTED = "dim"

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="appcollector",
    help="App Usage Collector - Collect app usage and metadata from model app listings.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

VerboseOption = Annotated[Optional[bool], typer.Option(help="Verbose output")]
OutputOption = Annotated[
    Optional[Path], typer.Option("--output", "-o", help="Output file path for saving the collected data as JSON")
]
PolicyOption = Annotated[
    Optional[str],
    typer.Option(help=f"Backfill policy: {' | '.join(BACKFILL_POLICIES)}"),
]
ConcurrencyOption = Annotated[
    Optional[int], typer.Option(min=1, help="Maximum pages extracted at the same time")
]


def _configure_logging(verbose: Optional[bool]) -> None:
    """Configure logging based on verbose flag, falling back to config."""
    setup_logging(verbose if verbose is not None else _config.verbose)


def _require_valid_config() -> None:
    """Exit if config.yaml could not be loaded."""
    if _config_error:
        console.print(f"[{STYLE_ERROR}]Invalid configuration: {_config_error}[/{STYLE_ERROR}]")
        console.print("Fix config.yaml or recreate it with 'config init --force'.")
        raise typer.Exit(1)


def _warn_invalid_config() -> None:
    if _config_error:
        console.print(f"[{STYLE_WARNING}]Invalid configuration, showing defaults: {_config_error}[/{STYLE_WARNING}]")


def _build_gateway() -> PlaywrightLLMGateway:
    """Create the browser + LLM extraction gateway from configuration."""
    return PlaywrightLLMGateway(LLMClient(_config.llm), _config.browser)


def _build_scheduler(concurrency: Optional[int]) -> BoundedScheduler:
    return BoundedScheduler(
        limit=concurrency or _config.collect.concurrency,
        mode=_config.collect.scheduler_mode,
    )


def _resolve_policy(policy: Optional[str]) -> BackfillPolicy:
    value = policy or _config.collect.backfill_policy
    try:
        return BackfillPolicy(value)
    except ValueError:
        console.print(
            f"[{STYLE_ERROR}]Invalid policy '{value}'. Use one of: {', '.join(BACKFILL_POLICIES)}[/{STYLE_ERROR}]"
        )
        raise typer.Exit(1)


def _write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    console.print(f"[{STYLE_SUCCESS}]Saved to {path}[/{STYLE_SUCCESS}]")


# ---------------------------------------------------------------------------
# Async workflows
# ---------------------------------------------------------------------------

async def _collect_usage(model: str):
    try:
        return await fetch_source_usage(_build_gateway(), model)
    finally:
        await close_http_client()


async def _collect_app_details(url: str):
    try:
        return await fetch_app_details(_build_gateway(), url)
    finally:
        await close_http_client()


async def _run_batch_collect(policy: BackfillPolicy, concurrency: Optional[int]) -> CollectionSummary:
    db = await init_db(_config.database_url)
    try:
        pipeline = CollectionPipeline(
            db=db,
            gateway=_build_gateway(),
            scheduler=_build_scheduler(concurrency),
            backfill_policy=policy,
            refresh_last_seen=_config.collect.refresh_last_seen,
        )
        return await pipeline.run()
    finally:
        await close_http_client()
        await db.close()


async def _run_batch_apps(policy: BackfillPolicy, concurrency: Optional[int]) -> BackfillSummary:
    db = await init_db(_config.database_url)
    try:
        service = BackfillService(db, _build_gateway(), _build_scheduler(concurrency), policy)
        return await service.run()
    finally:
        await close_http_client()
        await db.close()


async def _load_stats() -> StatsReport | None:
    db = await init_db(_config.database_url)
    try:
        return await build_category_stats(db)
    finally:
        await db.close()


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _print_backfill_summary(summary: BackfillSummary) -> None:
    console.print(f"   - Apps missing metadata: {summary.selected}")
    console.print(f"   - Successfully updated: {summary.updated}")
    if summary.unchanged:
        console.print(f"   - Already complete: {summary.unchanged}")
    style = STYLE_WARNING if summary.failed else STYLE_MUTED
    console.print(f"   - [{style}]Failed: {summary.failed}[/{style}]")


def _print_collection_summary(summary: CollectionSummary) -> None:
    console.print(f"\n[{STYLE_SUCCESS}]Batch collection completed![/{STYLE_SUCCESS}]")
    console.print(f"   - Batch ID: {summary.batch_id}")
    console.print(f"   - Models processed: {summary.sources_processed}")
    if summary.sources_failed:
        console.print(
            f"   - [{STYLE_WARNING}]Models failed: {summary.sources_failed} "
            f"({', '.join(summary.failed_sources)})[/{STYLE_WARNING}]"
        )
    else:
        console.print("   - Models failed: 0")
    console.print(f"   - Total apps collected: {summary.apps_collected}")
    console.print(f"   - Unique apps: {summary.unique_apps}")
    console.print(f"   - New apps added: {summary.new_apps}")
    console.print(f"   - Usage records saved: {summary.history_rows}")
    console.print("   Backfill:")
    if summary.backfill_error:
        console.print(f"   - [{STYLE_ERROR}]Backfill failed: {summary.backfill_error}[/{STYLE_ERROR}]")
    else:
        _print_backfill_summary(summary.backfill)
    console.print(f"   - Duration: {summary.duration:.0f}s")


def _print_stats(report: StatsReport) -> None:
    table = Table(show_lines=False)
    table.add_column("Category", style="cyan")
    table.add_column("Total Tokens", justify="right")
    table.add_column("Percentage", justify="right")
    table.add_column("App Count", justify="right")

    for stats in report.categories:
        table.add_row(
            stats.category,
            format_token_amount(stats.total_tokens),
            f"{stats.percentage:.2f}%",
            str(stats.app_count),
        )

    table.add_section()
    table.add_row(
        "[bold]TOTAL[/bold]",
        f"[bold]{format_token_amount(report.total_tokens)}[/bold]",
        "[bold]100.00%[/bold]",
        f"[bold]{report.total_apps}[/bold]",
    )

    console.print(f"\n[{STYLE_HEADER}]Token Usage Statistics - Batch #{report.batch_id}[/{STYLE_HEADER}]")
    console.print(f"[{STYLE_MUTED}]Collected at: {report.collected_at:%Y-%m-%d %H:%M:%S}[/{STYLE_MUTED}]\n")
    console.print(table)
    console.print(f"\n[{STYLE_MUTED}]Models included: {', '.join(report.models)}[/{STYLE_MUTED}]")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def usage(
    model: Annotated[str, typer.Option("--model", "-m", help="Model name, e.g. anthropic/claude-sonnet-4")],
    output: OutputOption = None,
    verbose: VerboseOption = None,
):
    """
    Collect app usage data for one model.

    Prints the apps listed on the model's apps page, or saves them as JSON.
    """
    _configure_logging(verbose)
    _require_valid_config()
    console.print(f"[{STYLE_HEADER}]Collecting usage data for {model}...[/{STYLE_HEADER}]")

    try:
        listing = asyncio.run(_collect_usage(model))
    except UsageFetchError as e:
        console.print(f"[{STYLE_ERROR}]Error occurred: {e}[/{STYLE_ERROR}]")
        raise typer.Exit(1)

    if output:
        _write_json(
            output,
            [{"name": a.name, "url": a.url, "tokens_used": format_token_amount(a.tokens_used)} for a in listing],
        )
        return

    table = Table()
    table.add_column("App", style="cyan")
    table.add_column("URL")
    table.add_column("Tokens Used", justify="right")
    for a in listing:
        table.add_row(a.name, a.url, format_token_amount(a.tokens_used))
    console.print(table)
    console.print(f"[{STYLE_SUCCESS}]Collected {len(listing)} apps[/{STYLE_SUCCESS}]")


@app.command()
def apps(
    url: Annotated[str, typer.Option("--url", "-u", help="App URL to get details for (e.g., https://cline.bot/)")],
    output: OutputOption = None,
    verbose: VerboseOption = None,
):
    """
    Collect details for one app.

    Reads the app's name and description from its aggregator page and
    categorizes the app from its own website.
    """
    _configure_logging(verbose)
    _require_valid_config()

    if not validate_url(url):
        console.print(f"[{STYLE_ERROR}]Invalid URL: {url}[/{STYLE_ERROR}]")
        raise typer.Exit(1)

    console.print(f"[{STYLE_HEADER}]Collecting details for {url}...[/{STYLE_HEADER}]")
    details = asyncio.run(_collect_app_details(url))

    for error in details.errors:
        console.print(f"[{STYLE_WARNING}]{error}[/{STYLE_WARNING}]")
    if details.name is None and details.category is None:
        console.print(f"[{STYLE_ERROR}]No details could be collected.[/{STYLE_ERROR}]")
        raise typer.Exit(1)

    if output:
        _write_json(output, details.to_dict())
        return

    console.print(f"  name: {details.name or '(unknown)'}")
    console.print(f"  description: {details.description or '(unknown)'}")
    console.print(f"  category: {details.category or '(unknown)'}")


@app.command("batch-collect")
def batch_collect(
    policy: PolicyOption = None,
    concurrency: ConcurrencyOption = None,
    verbose: VerboseOption = None,
):
    """
    Run a full batch collection.

    Seeds the model catalog, collects every model's app listing, stores new
    apps and the usage history of this batch, then backfills missing metadata.
    """
    _configure_logging(verbose)
    _require_valid_config()
    backfill_policy = _resolve_policy(policy)

    console.print(f"[{STYLE_HEADER}]Starting batch collection process...[/{STYLE_HEADER}]")
    try:
        summary = asyncio.run(_run_batch_collect(backfill_policy, concurrency))
    except Exception as e:
        logger.debug("Batch collection failed", exc_info=True)
        console.print(f"[{STYLE_ERROR}]Batch collection failed: {e}[/{STYLE_ERROR}]")
        raise typer.Exit(1)

    _print_collection_summary(summary)


@app.command("batch-apps")
def batch_apps(
    policy: PolicyOption = None,
    concurrency: ConcurrencyOption = None,
    verbose: VerboseOption = None,
):
    """
    Backfill missing app metadata.

    Processes stored apps that still lack a category (and, with the combined
    policy, a description).
    """
    _configure_logging(verbose)
    _require_valid_config()
    backfill_policy = _resolve_policy(policy)

    console.print(f"[{STYLE_HEADER}]Starting batch apps metadata update ({backfill_policy.value})...[/{STYLE_HEADER}]")
    try:
        summary = asyncio.run(_run_batch_apps(backfill_policy, concurrency))
    except Exception as e:
        logger.debug("Batch apps update failed", exc_info=True)
        console.print(f"[{STYLE_ERROR}]Batch apps metadata update failed: {e}[/{STYLE_ERROR}]")
        raise typer.Exit(1)

    if summary.selected == 0:
        console.print(f"[{STYLE_SUCCESS}]All apps already have complete metadata. Nothing to update.[/{STYLE_SUCCESS}]")
        return

    console.print(f"\n[{STYLE_SUCCESS}]Batch apps metadata update completed![/{STYLE_SUCCESS}]")
    _print_backfill_summary(summary)
    console.print(f"   - Duration: {summary.duration:.0f}s")


@app.command()
def stats(verbose: VerboseOption = None):
    """
    Show token usage by app category for the latest batch.
    """
    _configure_logging(verbose)
    _require_valid_config()

    report = asyncio.run(_load_stats())
    if report is None:
        console.print(f"[{STYLE_WARNING}]No collection batches found. Run 'batch-collect' first.[/{STYLE_WARNING}]")
        return
    if not report.categories:
        console.print(f"[{STYLE_WARNING}]No usage data found for the latest batch.[/{STYLE_WARNING}]")
        return

    _print_stats(report)


# Config subcommand group
config_app = typer.Typer(help="Configuration management commands.")
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show():
    """
    Show current configuration.

    Displays all current settings including values from config file,
    environment variables, and defaults.
    """
    config_path = get_default_config_path()
    console.print(f"[{STYLE_HEADER}]Config file: {config_path}[/{STYLE_HEADER}]")
    if config_path.exists():
        console.print(f"[{STYLE_SUCCESS}]  (exists)[/{STYLE_SUCCESS}]")
    else:
        console.print(f"[{STYLE_WARNING}]  (not found - using defaults)[/{STYLE_WARNING}]")
    _warn_invalid_config()
    console.print()
    console.print(show_config(_config))


@config_app.command("init")
def config_init(
    force: Annotated[bool, typer.Option("--force", "-f", help="Overwrite existing config")] = False,
):
    """
    Initialize configuration file.

    Creates a template config.yaml in the current directory with
    commented defaults that you can customize.
    """
    config_path = get_default_config_path()

    if config_path.exists() and not force:
        console.print(f"[{STYLE_WARNING}]Config file already exists: {config_path}[/{STYLE_WARNING}]")
        console.print("Use --force to overwrite.")
        raise typer.Exit(1)

    saved_path = save_template_config(config_path)
    console.print(f"[{STYLE_SUCCESS}]Config file created: {saved_path}[/{STYLE_SUCCESS}]")
    console.print("\nEdit this file to customize your settings.")


@config_app.command("path")
def config_path():
    """
    Show the config file path.

    Prints the path where the config file should be located.
    """
    config_path = get_default_config_path()
    console.print(str(config_path))


if __name__ == "__main__":
    app()
