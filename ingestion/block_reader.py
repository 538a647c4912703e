"""
ingestion/block_reader.py - Ordered, checkpointed block stream.

BlockReader follows the chain head through any ChainClient (normally a
MultinodeProvider) and publishes:
- new_block: BlockRecord with its normalized transactions
- new_transaction: TransactionRecord, deduplicated by hash
- error: the exception from a failed iteration (the reader keeps going)

Each iteration takes one height snapshot, fetches the missing range in
parallel batches, and emits strictly in block order from a pending buffer.
The cursor (next expected block) only advances by one per emitted block.

Restart recovery:
- no checkpoint: start after the current height (that block is skipped)
- checkpoint more than reread_blocks behind: jump to height - reread_blocks
- otherwise: resume at checkpoint + 1
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Any, Optional

from chains.interfaces import ChainClient
from config.settings import ReaderSettings
from core.constants import (
    RECENT_BLOCKS_CAP,
    RECENT_TRANSACTIONS_CAP,
    DEFAULT_TX_STATUS_TIMEOUT_MS,
    DeliveryMode,
    ErrorCode,
    EventKind,
)
from core.exceptions import MeshError, RPCError
from core.logging import get_logger
from core.models import BlockRecord, TransactionRecord, parse_quantity
from core.time import format_block_time
from ingestion.checkpoint import CheckpointStore
from ingestion.events import EventBus, Handler, Subscription
from ingestion.recency import RecentSet

logger = get_logger(__name__)


@dataclass
class ReaderStats:
    """Counters for monitoring."""
    iterations: int = 0
    blocks_emitted: int = 0
    transactions_emitted: int = 0
    blocks_dropped: int = 0
    errors: int = 0
    restarts: int = 0


class BlockReader:
    """
    Long-running block ingestion task.

    Usage:
        reader = BlockReader(provider, FileCheckpointStore("block.txt"))
        reader.on(EventKind.NEW_BLOCK, handle_block)
        reader.start()
        ...
        reader.stop()
        await reader.wait_closed()
    """

    def __init__(
        self,
        provider: ChainClient,
        checkpoint: CheckpointStore,
        settings: ReaderSettings | None = None,
        events: EventBus | None = None,
    ):
        if provider is None:
            raise ValueError("BlockReader requires a provider instance")
        if checkpoint is None:
            raise ValueError("BlockReader requires a checkpoint store")

        self.provider = provider
        self.checkpoint = checkpoint
        self.settings = settings or ReaderSettings()
        self.events = events or EventBus()
        self.stats = ReaderStats()

        self._expected_block = 0
        self._initialized = False
        self._recent_blocks: RecentSet[int] = RecentSet(RECENT_BLOCKS_CAP)
        self._recent_transactions: RecentSet[str] = RecentSet(RECENT_TRANSACTIONS_CAP)
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def on(self, kind: EventKind | str, handler: Handler) -> Subscription:
        """Register a handler for new_block, new_transaction or error."""
        return self.events.subscribe(kind, handler)

    def off(self, subscription: Subscription) -> bool:
        return self.events.unsubscribe(subscription)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """
        Schedule the supervised reader task on the running event loop.

        Calling start() on a running reader returns the existing task.
        """
        if self.running:
            return self._task

        self._stop_event.clear()
        self._task = asyncio.get_running_loop().create_task(
            self._supervise(), name="block-reader"
        )
        return self._task

    def stop(self) -> None:
        """
        Request shutdown and detach all listeners.

        The task exits at its next stop check; a block fetch already in
        flight is not cancelled. Use wait_closed() to wait for exit.
        """
        self._stop_event.set()
        self.events.clear()
        logger.info(
            "BlockReader stopped",
            extra={"context": {"next_block": self._expected_block}},
        )

    async def wait_closed(self) -> None:
        if self._task is not None:
            await self._task

    async def _supervise(self) -> None:
        """
        Keep the reader loop alive until stop().

        Iteration errors are handled inside _run(). Anything escaping it
        (e.g. a failed startup height query) is reported and the loop is
        restarted after loop_delay_ms.
        """
        while not self._stop_event.is_set():
            try:
                await self._run()
            except Exception as e:
                self.stats.restarts += 1
                self._report_error(e)
                await self._sleep(self.settings.loop_delay_s)

    async def _run(self) -> None:
        if not self._initialized:
            await self.initialize()

        while not self._stop_event.is_set():
            try:
                await self.read_once()
            except Exception as e:
                self._report_error(e)
            await self._sleep(self.settings.loop_delay_s)

    async def _sleep(self, seconds: float) -> None:
        """Sleep, waking early on stop()."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _report_error(self, error: Exception) -> None:
        self.stats.errors += 1
        code = error.code.value if isinstance(error, MeshError) else ErrorCode.UNKNOWN.value
        logger.error(
            f"BlockReader error: {error}",
            extra={
                "context": {
                    "error_code": code,
                    "next_block": self._expected_block,
                }
            },
        )
        self.events.emit(EventKind.ERROR, error)

    # =========================================================================
    # CURSOR
    # =========================================================================

    @property
    def current_block_number(self) -> int:
        """Next block number the reader will emit."""
        return self._expected_block

    def get_current_block_number(self) -> int:
        return self._expected_block

    async def initialize(self) -> int:
        """
        Load the checkpoint and position the cursor.

        Returns:
            Next block number to emit

        Raises:
            AllNodesFailedError: If the current height cannot be fetched
            CheckpointError: If the store cannot be read or written
        """
        height = await self.provider.get_block_number()
        last_processed = self.checkpoint.load()
        reread = self.settings.reread_blocks

        if last_processed is None:
            start = height
            self.checkpoint.save(start)
            logger.info(
                "No checkpoint, starting at chain head",
                extra={"context": {"height": height}},
            )
        elif height - last_processed > reread:
            start = height - reread
            self.checkpoint.save(start)
            logger.warning(
                f"Checkpoint {last_processed} is {height - last_processed} blocks behind, "
                f"skipping to {start}",
                extra={
                    "context": {
                        "checkpoint": last_processed,
                        "height": height,
                        "skipped": start - last_processed,
                    }
                },
            )
        else:
            start = last_processed

        self._expected_block = start + 1
        self._initialized = True
        logger.info(
            f"Last processed block: {start}",
            extra={"context": {"next_block": self._expected_block, "height": height}},
        )
        return self._expected_block

    def reset_to_block(self, block_number: int) -> None:
        """
        Make block_number the next block to emit, persisting immediately.

        The checkpoint stores block_number - 1 so a restart resumes at
        block_number too.
        """
        self.checkpoint.save(block_number - 1)
        self._expected_block = block_number
        self._initialized = True
        logger.info(
            f"BlockReader reset to block {block_number}",
            extra={"context": {"next_block": block_number}},
        )

    # =========================================================================
    # ITERATION
    # =========================================================================

    async def read_once(self) -> int:
        """
        Run one ingestion iteration.

        Returns:
            Number of blocks emitted
        """
        if not self._initialized:
            await self.initialize()

        self.stats.iterations += 1

        # Snapshot; chain growth during this iteration waits for the next one
        reported_head = await self.provider.get_block_number()
        head = max(reported_head, self._expected_block)

        batch_size = self.settings.max_parallel_blocks
        next_block = self._expected_block
        pending: dict[int, dict[str, Any]] = {}
        emitted = 0

        while next_block <= head and not self._stop_event.is_set():
            batch = list(range(next_block, min(next_block + batch_size, head + 1)))
            next_block = batch[-1] + 1

            fetched = await asyncio.gather(*(
                self.fetch_block(n, beyond_head=n > reported_head) for n in batch
            ))
            for number, raw in zip(batch, fetched):
                if raw is None:
                    self.stats.blocks_dropped += 1
                else:
                    pending[number] = raw

            emitted += await self._drain(pending)

            if self._expected_block < next_block:
                # A block in this batch is missing; retry from the cursor next iteration
                logger.debug(
                    f"Gap at block {self._expected_block}, deferring to next iteration",
                    extra={
                        "context": {
                            "next_block": self._expected_block,
                            "buffered": sorted(pending),
                        }
                    },
                )
                break

        return emitted

    async def _drain(self, pending: dict[int, dict[str, Any]]) -> int:
        """Emit contiguous blocks starting at the cursor."""
        emitted = 0
        while self._expected_block in pending and not self._stop_event.is_set():
            number = self._expected_block
            raw = pending.pop(number)
            block = await self.process_block(raw)
            self._deliver(number, block)
            emitted += 1
        return emitted

    def _deliver(self, number: int, block: BlockRecord) -> None:
        at_most_once = self.settings.delivery == DeliveryMode.AT_MOST_ONCE

        if at_most_once:
            self.checkpoint.save(number)

        new_transactions = [
            tx for tx in block.transactions
            if self._recent_transactions.add(tx.hash)
        ]
        for tx in new_transactions:
            self.events.emit(EventKind.NEW_TRANSACTION, tx)
        self.events.emit(EventKind.NEW_BLOCK, block)

        if not at_most_once:
            self.checkpoint.save(number)

        self._expected_block = number + 1
        self.stats.blocks_emitted += 1
        self.stats.transactions_emitted += len(new_transactions)

    async def fetch_block(self, block_number: int, beyond_head: bool = False) -> Optional[dict[str, Any]]:
        """
        Fetch a block with full transactions, retrying on errors and
        responses without a hash.

        Args:
            beyond_head: Block is past the consensus head, so it may simply
                not be mined yet; misses are logged at DEBUG

        Returns:
            Raw block, or None once max_attempts are used up
        """
        max_attempts = self.settings.max_attempts
        miss_level = logging.DEBUG if beyond_head else logging.WARNING

        for attempt in range(1, max_attempts + 1):
            try:
                raw = await self.provider.get_block(block_number, True)
                if raw and raw.get("hash"):
                    reported = parse_quantity(raw.get("number"), default=None)
                    if reported is None or reported == block_number:
                        return raw
                    reason = f"node returned block {reported}"
                else:
                    reason = "block has no hash"
            except Exception as e:
                reason = str(e)

            logger.log(
                miss_level,
                f"Error getting block {block_number} (attempt {attempt}): {reason}",
                extra={"context": {"block_number": block_number, "attempt": attempt}},
            )
            if attempt < max_attempts:
                await asyncio.sleep(self.settings.retry_delay_s)

        logger.log(
            miss_level,
            f"Block {block_number} unavailable after {max_attempts} attempts",
            extra={
                "context": {
                    "block_number": block_number,
                    "error_code": ErrorCode.READER_BLOCK_UNAVAILABLE.value,
                }
            },
        )
        return None

    async def process_block(self, raw: dict[str, Any]) -> BlockRecord:
        """
        Normalize a raw block.

        Embedded transaction objects are used directly; bare hashes are
        fetched one by one and dropped on failure. Position order is kept.
        """
        entries = raw.get("transactions") or []
        tx_objects = await asyncio.gather(*(self._resolve_transaction(e) for e in entries))

        transactions = []
        for tx in tx_objects:
            if tx is None:
                continue
            try:
                transactions.append(TransactionRecord.from_rpc(tx))
            except RPCError as e:
                logger.warning(
                    f"Dropping malformed transaction: {e}",
                    extra={"context": {"tx_hash": tx.get("hash")}},
                )

        block = BlockRecord.from_rpc(raw, transactions)

        if self._recent_blocks.add(block.number):
            logger.info(
                f"{block.source} {format_block_time(block.timestamp)} {block.number} "
                f"transactions: {block.tx_count}",
                extra={
                    "context": {
                        "block_number": block.number,
                        "tx_count": block.tx_count,
                        "dropped_txs": len(entries) - block.tx_count,
                    }
                },
            )
        return block

    async def _resolve_transaction(self, entry: Any) -> Optional[dict[str, Any]]:
        if isinstance(entry, dict):
            return entry
        try:
            tx = await self.provider.get_transaction(entry)
        except Exception as e:
            logger.debug(
                f"Dropping transaction {entry}: {e}",
                extra={"context": {"tx_hash": entry}},
            )
            return None
        return tx or None

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def check_transaction_status(
        self,
        tx_hash: str,
        timeout_ms: int = DEFAULT_TX_STATUS_TIMEOUT_MS,
    ) -> bool:
        """
        Wait for a transaction to be mined.

        Returns:
            True if the receipt reports success (status 1); False on
            revert, timeout or any RPC failure
        """
        try:
            receipt = await self.provider.wait_for_transaction(tx_hash, 1, timeout_ms)
        except Exception as e:
            logger.warning(
                f"Error checking transaction {tx_hash}: {e}",
                extra={"context": {"tx_hash": tx_hash}},
            )
            return False
        return bool(receipt) and parse_quantity(receipt.get("status"), default=0) == 1

    def get_stats(self) -> dict:
        return {**asdict(self.stats), "next_block": self._expected_block}
