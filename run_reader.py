#!/usr/bin/env python3
"""
run_reader.py - CLI entrypoint for the block reader.

Usage:
    python run_reader.py --chain bsc
    python run_reader.py --chain bsc --rpc https://bsc-rpc.publicnode.com --duration 60
    python run_reader.py --chain ethereum --from-block 21000000 --no-json-logs
"""

import asyncio
import signal
import sys
from datetime import datetime
from pathlib import Path

import click

from chains.multinode import MultinodeProvider
from config.settings import ChainSettings, load_chain_settings
from core.constants import EventKind
from core.exceptions import MeshError
from core.logging import get_logger, set_global_context, setup_logging
from core.models import BlockRecord
from ingestion.block_reader import BlockReader
from ingestion.checkpoint import FileCheckpointStore

logger = get_logger("reader.cli")


class ReaderSession:
    """Session tracker for the summary printed on exit."""

    def __init__(self, chain: str):
        self.chain = chain
        self.started_at = datetime.now()
        self.blocks = 0
        self.transactions = 0
        self.errors = 0
        self.first_block: int | None = None
        self.last_block: int | None = None

    def on_block(self, block: BlockRecord) -> None:
        self.blocks += 1
        self.transactions += block.tx_count
        if self.first_block is None:
            self.first_block = block.number
        self.last_block = block.number

    def on_error(self, error: Exception) -> None:
        self.errors += 1

    def get_summary(self) -> dict:
        elapsed = datetime.now() - self.started_at
        return {
            "chain": self.chain,
            "elapsed_seconds": int(elapsed.total_seconds()),
            "blocks": self.blocks,
            "transactions": self.transactions,
            "errors": self.errors,
            "first_block": self.first_block,
            "last_block": self.last_block,
        }


async def run_reader(
    settings: ChainSettings,
    session: ReaderSession,
    checkpoint_path: Path,
    from_block: int | None,
    duration_seconds: int | None,
) -> dict:
    """
    Run the reader until a signal arrives or the duration elapses.

    Returns:
        Provider endpoint statistics
    """
    provider = MultinodeProvider.from_urls(
        settings.rpc_urls,
        chain_id=settings.chain_id,
        settings=settings.provider,
    )
    reader = BlockReader(provider, FileCheckpointStore(checkpoint_path), settings.reader)
    reader.on(EventKind.NEW_BLOCK, session.on_block)
    reader.on(EventKind.ERROR, session.on_error)

    if from_block is not None:
        reader.reset_to_block(from_block)

    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt
            pass

    reader.start()
    try:
        await asyncio.wait_for(stop_requested.wait(), timeout=duration_seconds)
        logger.info("Shutdown requested")
    except asyncio.TimeoutError:
        logger.info("Duration limit reached")
    finally:
        reader.stop()
        await reader.wait_closed()
        stats = provider.get_stats_summary()
        await provider.close()

    return stats


@click.command()
@click.option(
    "--chain",
    "-c",
    default="bsc",
    help="Chain key from config/chains.yaml",
)
@click.option(
    "--rpc",
    "rpc_urls",
    multiple=True,
    help="RPC endpoint, in priority order (repeatable; overrides config)",
)
@click.option(
    "--checkpoint",
    "-k",
    default="data/checkpoints/{chain}.txt",
    help="Checkpoint file ({chain} is substituted)",
)
@click.option(
    "--from-block",
    default=None,
    type=int,
    help="Reset the cursor to this block before starting",
)
@click.option(
    "--duration",
    "-d",
    default=None,
    type=int,
    help="Run duration in seconds (default: until interrupted)",
)
@click.option(
    "--log-level",
    "-l",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Log level",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON log format",
)
def main(
    chain: str,
    rpc_urls: tuple[str, ...],
    checkpoint: str,
    from_block: int | None,
    duration: int | None,
    log_level: str,
    json_logs: bool,
) -> None:
    """
    Stream blocks from a chain through the multinode provider.
    """
    setup_logging(level=log_level, json_output=json_logs)
    set_global_context(service="block-reader", chain=chain)

    try:
        settings = load_chain_settings(chain)
    except MeshError as e:
        if not rpc_urls:
            raise click.ClickException(str(e))
        settings = ChainSettings(chain_key=chain, chain_id=None, rpc_urls=list(rpc_urls))

    if rpc_urls:
        settings.rpc_urls = list(rpc_urls)

    checkpoint_path = Path(checkpoint.format(chain=chain))
    session = ReaderSession(chain)

    logger.info(
        "Starting block reader",
        extra={
            "context": {
                "chain": chain,
                "endpoints": len(settings.rpc_urls),
                "checkpoint": str(checkpoint_path),
                "duration_seconds": duration,
            }
        },
    )

    endpoint_stats: dict = {}
    try:
        endpoint_stats = asyncio.run(
            run_reader(settings, session, checkpoint_path, from_block, duration)
        )
    except KeyboardInterrupt:
        logger.info("Block reader interrupted")
    except Exception as e:
        logger.error(
            f"Block reader error: {e}",
            extra={"context": {"error": str(e)}},
            exc_info=True,
        )
        sys.exit(1)

    summary = session.get_summary()
    logger.info("Block reader stopped", extra={"context": summary})

    click.echo("\n" + "=" * 60)
    click.echo("BLOCK READER SESSION SUMMARY")
    click.echo("=" * 60)
    click.echo(f"Chain: {summary['chain']}")
    click.echo(f"Duration: {summary['elapsed_seconds']} seconds")
    click.echo(f"Blocks: {summary['blocks']} ({summary['first_block']} .. {summary['last_block']})")
    click.echo(f"Transactions: {summary['transactions']}")
    click.echo(f"Errors: {summary['errors']}")
    for url, stats in endpoint_stats.items():
        click.echo(
            f"  {url}: {stats['total_requests']} req, "
            f"{stats['success_rate'] * 100:.1f}% ok, {stats['avg_latency_ms']}ms avg"
        )
    click.echo("=" * 60)


if __name__ == "__main__":
    main()
