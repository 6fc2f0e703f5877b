"""Command-line interface for the swap bot."""

import asyncio
import json
import logging
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import click
import structlog
from structlog.stdlib import LoggerFactory

from . import __version__
from .config import config
from .formatter import format_swap
from .health import HealthServer
from .notifiers import BarkNotifier, ConsoleNotifier
from .orchestrator import SwapOrchestrator
from .reconciler import SwapReconciler
from .state_store import StateStore
from .swap_fetcher import SwapFetcher, SwapFetchError

logger = structlog.get_logger()


def configure_logging(level: str = "INFO", log_file: Optional[str] = None):
    """Route structlog through stdlib logging to stderr and an optional rotating file."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_file,
                maxBytes=config.log_max_bytes,
                backupCount=config.log_backup_count,
                encoding="utf-8",
            )
        )
    logging.basicConfig(
        level=level.upper(), format="%(message)s", handlers=handlers, force=True
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _build_reconciler(store: StateStore, dry_run: bool) -> SwapReconciler:
    notifier = ConsoleNotifier() if dry_run else BarkNotifier(store)
    return SwapReconciler(store=store, fetcher=SwapFetcher(), notifier=notifier)


@click.group()
@click.version_option(version=__version__)
@click.option("--state-file", default=None, help="Path of the JSON state file")
@click.option("--log-level", default=None, help="Override the configured log level")
@click.pass_context
def cli(ctx, state_file: Optional[str], log_level: Optional[str]):
    """uniBTC Swap Bot - Push alerts for uniBTC/WBTC pool swaps."""
    configure_logging(log_level or config.log_level, config.log_file)
    ctx.obj = {"state_file": state_file or config.state_file}


@cli.command()
@click.option(
    "--interval",
    default=config.poll_interval,
    type=float,
    help="Interval in seconds between passes",
)
@click.option("--dry-run", is_flag=True, help="Print messages instead of pushing them")
@click.pass_context
def watch(ctx, interval: float, dry_run: bool):
    """Poll for new swaps and push alerts until interrupted."""
    logger.info("Starting swap bot", version=__version__, dry_run=dry_run)

    async def run():
        store = StateStore(ctx.obj["state_file"])
        store.load()

        orchestrator = SwapOrchestrator(
            reconciler=_build_reconciler(store, dry_run),
            store=store,
            poll_interval=interval,
            health_server=HealthServer() if config.enable_health_server else None,
        )

        loop = asyncio.get_running_loop()

        def signal_handler(sig):
            logger.info("Received signal, shutting down", signal=sig)
            loop.create_task(orchestrator.stop())

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

        try:
            await orchestrator.start()
        except Exception as e:
            logger.error("Fatal error", error=str(e), exc_info=True)
            sys.exit(1)

    asyncio.run(run())


@cli.command("poll-once")
@click.option("--dry-run", is_flag=True, help="Print messages instead of pushing them")
@click.pass_context
def poll_once(ctx, dry_run: bool):
    """Run a single reconciliation pass."""

    async def run():
        store = StateStore(ctx.obj["state_file"])
        store.load()
        reconciler = _build_reconciler(store, dry_run)
        try:
            return await reconciler.run_once()
        finally:
            await reconciler.fetcher.close()
            await reconciler.notifier.close()

    result = asyncio.run(run())
    click.echo(f"Status: {result.status.value}")
    click.echo(f"  Fetched: {result.fetched}")
    click.echo(f"  New: {result.candidates}")
    click.echo(f"  Notified: {result.notified}")
    click.echo(f"  Skipped (unformattable): {result.skipped_unformattable}")
    if result.last_block_number:
        click.echo(f"  Last block: {result.last_block_number}")


@cli.command()
@click.option("--since-block", required=True, type=int, help="Exclusive lower block bound")
@click.option("--limit", default=10, help="Number of swaps to show")
def preview(since_block: int, limit: int):
    """Show formatted swaps without sending or checkpointing anything."""

    async def run():
        fetcher = SwapFetcher()
        try:
            return await fetcher.fetch_new_swaps(since_block)
        finally:
            await fetcher.close()

    try:
        swaps = asyncio.run(run())
    except SwapFetchError as e:
        raise click.ClickException(str(e))

    if not swaps:
        click.echo("No swaps found")
        return

    for swap in swaps[:limit]:
        message = format_swap(swap) or "<unformattable>"
        click.echo(f"[{swap.block_number}] {swap.transaction_hash}")
        click.echo(f"  {message}")


@cli.command("show-state")
@click.pass_context
def show_state(ctx):
    """Print the persisted targets and checkpoint."""
    store = StateStore(ctx.obj["state_file"])
    state = store.load()
    click.echo(json.dumps(state.model_dump(mode="json", by_alias=True), indent=2))


@cli.command("set-block")
@click.argument("block_number")
@click.pass_context
def set_block(ctx, block_number: str):
    """Move the checkpoint to BLOCK_NUMBER."""
    store = StateStore(ctx.obj["state_file"])
    store.load()
    try:
        store.set_last_block_number(block_number)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="BLOCK_NUMBER")
    store.save()
    click.echo(f"Checkpoint set to block {block_number}")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
