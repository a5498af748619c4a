"""Command line interface for the newsdesk pipeline."""

import asyncio
import logging
import sys
from datetime import datetime

import click

# Import heavy dependencies lazily within command functions so the CLI
# module stays cheap to import, for example when only checking command
# registration.

logger = logging.getLogger(__name__)


def _parse_date(ctx, param, value):
    if value is None:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise click.BadParameter("expected YYYY-MM-DD")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug mode")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """Newsdesk curation pipeline CLI.

    Ingests feeds, scores and deduplicates items, generates fact-checked
    articles and selects the day's top stories.
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    # Set up logging before any other logging calls
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(level=log_level, force=True)
    logger.debug("Debug mode enabled")


@cli.command()
@click.option(
    "--date",
    "cycle_date",
    callback=_parse_date,
    help="Cycle date as YYYY-MM-DD (defaults to today)",
)
@click.pass_context
def run(ctx: click.Context, cycle_date) -> None:
    """Run one full cycle: archive, ingest, score, dedup, generate, select."""

    from newsdesk.core.orchestrator import CycleOrchestrator
    from newsdesk.models.settings import Settings

    settings = Settings(debug=ctx.obj.get("debug", False))
    if not settings.openrouter_api_key:
        logger.error("❌ OPENROUTER_API_KEY is required to run a cycle")
        sys.exit(1)

    try:
        orchestrator = CycleOrchestrator.from_settings(settings)
        report = asyncio.run(orchestrator.run_cycle(cycle_date))
    except Exception as e:
        logger.error(f"❌ Cycle failed: {e}")
        if ctx.obj.get("debug"):
            raise
        sys.exit(1)

    click.echo(f"\n📰 Cycle {report.cycle_date} - {report.status.value}")
    for stage in report.stages:
        click.echo(f"  {stage.summary()}")
    click.echo(f"  Active articles: {report.active_articles}")
    if report.subject_line:
        click.echo(f"  Subject: {report.subject_line}")
    if report.archive_error:
        click.echo(f"  ⚠️ Archive skipped: {report.archive_error}")


@cli.command()
@click.argument("cycle_id", type=int)
@click.option("--reason", default="manual", help="Reason recorded with the archive")
@click.pass_context
def archive(ctx: click.Context, cycle_id: int, reason: str) -> None:
    """Archive a cycle's articles, items and ratings without clearing them."""
    from newsdesk.core.archive import ArchiveService
    from newsdesk.core.errors import ArchiveError
    from newsdesk.core.store import Store
    from newsdesk.models.settings import Settings

    settings = Settings()
    store = Store(settings.database_path)
    store.init_schema()

    try:
        result = ArchiveService(store).archive_cycle(cycle_id, reason)
    except ArchiveError as e:
        click.echo(f"❌ {e}")
        if ctx.obj.get("debug"):
            raise
        sys.exit(1)

    click.echo(
        f"📦 Archived {result.articles} articles, {result.items} items, "
        f"{result.ratings} ratings"
    )
    if result.ratings_skipped:
        click.echo("⚠️ Rating archive table missing - ratings were not archived")


@cli.command("archive-stats")
def archive_stats() -> None:
    """Show totals across the archive tables."""
    from newsdesk.core.archive import ArchiveService
    from newsdesk.core.store import Store
    from newsdesk.models.settings import Settings

    store = Store(Settings().database_path)
    store.init_schema()
    stats = ArchiveService(store).get_archive_stats()

    click.echo("\n📦 Archive")
    click.echo(f"  Articles: {stats['total_articles']}")
    click.echo(f"  Items: {stats['total_items']}")
    click.echo(f"  Cycles: {stats['cycles']}")
    for reason, count in stats["by_reason"].items():
        click.echo(f"  - {reason}: {count}")


@cli.command("init-db")
def init_db() -> None:
    """Create the database schema and seed feeds and criteria."""
    from newsdesk.core.orchestrator import CycleOrchestrator
    from newsdesk.core.scoring import DEFAULT_CRITERIA
    from newsdesk.core.store import Store
    from newsdesk.models.settings import Settings

    settings = Settings()
    store = Store(settings.database_path)
    store.init_schema()
    CycleOrchestrator.seed_configured_feeds(store, settings)
    if not store.get_criteria():
        for criterion in DEFAULT_CRITERIA:
            store.save_criterion(criterion)

    click.echo(f"✅ Database ready at {settings.database_path}")
    click.echo(f"  Feeds: {len(store.list_feeds())}")
    click.echo(f"  Criteria: {len(store.get_criteria())}")


@cli.command()
@click.option("--add", "add_url", default=None, help="Register a feed URL")
@click.option("--name", default=None, help="Display name for --add")
def feeds(add_url: str, name: str) -> None:
    """List configured feeds and their error counters."""
    from newsdesk.core.store import Store
    from newsdesk.core.utils import is_valid_feed_url
    from newsdesk.models.settings import Settings

    store = Store(Settings().database_path)
    store.init_schema()

    if add_url:
        if not is_valid_feed_url(add_url):
            raise click.BadParameter(f"invalid feed URL: {add_url}")
        feed = store.add_feed(add_url, name)
        click.echo(f"✅ Feed {feed.id}: {feed.name}")

    click.echo("\n📡 Feeds:")
    for feed in store.list_feeds():
        status = "✅" if feed.active else "⏸️"
        errors = f" ({feed.processing_errors} errors)" if feed.processing_errors else ""
        click.echo(f"  {status} {feed.id}. {feed.name}{errors}")
        if feed.last_error:
            click.echo(f"      last error: {feed.last_error}")


@cli.command()
def health() -> None:
    """Check system health and configuration."""
    from newsdesk.clients.ai import AIClient
    from newsdesk.core.errors import StoreError
    from newsdesk.core.store import Store
    from newsdesk.models.settings import Settings

    settings = Settings()
    logger.info("🔍 Checking system health...")

    try:
        store = Store(settings.database_path)
        store.init_schema()
        feed_count = len(store.get_active_feeds())
        logger.info(f"   - Database: ✅ ({feed_count} active feeds)")
    except StoreError as e:
        logger.error(f"   - Database: ❌ {e}")

    if settings.openrouter_api_key:
        client = AIClient(settings.openrouter_api_key, settings=settings)
        status = "✅" if asyncio.run(client.test_connection()) else "❌"
        logger.info(f"   - OpenRouter: {status}")
    else:
        logger.warning("   - OpenRouter: ❌ OPENROUTER_API_KEY not set")

    logger.info(f"   - Slack alerts: {'✅' if settings.slack_webhook_url else '❌'}")
    logger.info(f"   - Image re-hosting: {'✅' if settings.image_storage_url else '❌'}")


@cli.command()
def config() -> None:
    """Display current configuration (without sensitive values)."""
    from newsdesk.models.settings import Settings

    settings = Settings()

    click.echo("\n📋 Newsdesk Configuration\n")
    click.echo(f"Debug Mode: {settings.debug}")
    click.echo(f"Log Level: {settings.log_level}")
    click.echo(f"Database: {settings.database_path}")

    click.echo("\n🔑 Services:")
    services = {
        "OpenRouter": settings.openrouter_api_key,
        "Slack": settings.slack_webhook_url,
        "Image storage": settings.image_storage_url,
    }
    for service, value in services.items():
        click.echo(f"  {service}: {'✅ Configured' if value else '❌ Missing'}")

    click.echo("\n⚙️ Pipeline:")
    click.echo(f"  Ingest window: {settings.ingest_window_hours}h")
    click.echo(
        f"  Scoring batches: {settings.scoring_batch_size} "
        f"every {settings.scoring_batch_delay:g}s"
    )
    click.echo(
        f"  Generation batches: {settings.generation_batch_size} "
        f"every {settings.generation_batch_delay:g}s"
    )
    click.echo(f"  Fact-check threshold: {settings.fact_check_threshold:g}")
    click.echo(f"  Max active articles: {settings.max_active_articles}")

    click.echo(f"\n📡 Seed feeds: {len(settings.feed_urls)} configured")
    for i, url in enumerate(settings.feed_urls, 1):
        click.echo(f"  {i}. {url}")


if __name__ == "__main__":
    cli()
