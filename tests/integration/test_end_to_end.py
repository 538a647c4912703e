# PATH: tests/integration/test_end_to_end.py
"""
End-to-end: BlockReader over a MultinodeProvider with unhealthy endpoints.

Endpoint pool, in priority order:
- hung: answers every call after 1s (always past the fan-out timeouts)
- lagging: two blocks behind the tip
- healthy: at the tip
"""

import asyncio

import pytest

from conftest import ChainEndpoint
from chains.multinode import MultinodeProvider
from config.settings import ProviderSettings, ReaderSettings
from core.constants import EventKind
from ingestion.block_reader import BlockReader
from ingestion.checkpoint import FileCheckpointStore

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


PROVIDER_SETTINGS = ProviderSettings(head_timeout_ms=50, block_timeout_ms=200, consensus_window=5)
READER_SETTINGS = ReaderSettings(
    max_attempts=2,
    retry_delay_ms=0,
    max_parallel_blocks=4,
    reread_blocks=10,
    loop_delay_ms=20,
)


def make_pool(tip: int = 200):
    hung = ChainEndpoint("http://hung", height=tip, delay=1.0)
    lagging = ChainEndpoint("http://lagging", height=tip - 2)
    healthy = ChainEndpoint("http://healthy", height=tip)
    return hung, lagging, healthy


async def run_until(reader: BlockReader, predicate, timeout: float = 5.0) -> None:
    reader.start()
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    try:
        while not predicate():
            assert loop.time() < deadline, "reader did not make progress in time"
            await asyncio.sleep(0.01)
    finally:
        reader.stop()
        await asyncio.wait_for(reader.wait_closed(), timeout=5.0)


async def test_height_survives_unhealthy_endpoints():
    provider = MultinodeProvider(list(make_pool()), PROVIDER_SETTINGS)

    heights = [await provider.get_block_number() for _ in range(3)]

    assert heights == [200, 200, 200]


async def test_reader_emits_contiguous_blocks(tmp_path):
    hung, lagging, healthy = make_pool()
    provider = MultinodeProvider([hung, lagging, healthy], PROVIDER_SETTINGS)
    store = FileCheckpointStore(tmp_path / "checkpoint.txt")
    store.save(190)

    reader = BlockReader(provider, store, READER_SETTINGS)
    blocks = []
    errors = []
    reader.on(EventKind.NEW_BLOCK, lambda b: blocks.append(b.number))
    reader.on(EventKind.ERROR, errors.append)

    await run_until(reader, lambda: len(blocks) >= 10)

    assert blocks[:10] == list(range(191, 201))
    assert store.load() >= 200
    assert errors == []
    # blocks above the lagging node's tip came from the healthy node
    assert 200 in healthy.block_requests


async def test_restart_resumes_from_checkpoint(tmp_path):
    path = tmp_path / "checkpoint.txt"
    FileCheckpointStore(path).save(195)

    provider = MultinodeProvider(list(make_pool()), PROVIDER_SETTINGS)
    first = BlockReader(provider, FileCheckpointStore(path), READER_SETTINGS)
    seen_first = []
    first.on(EventKind.NEW_BLOCK, lambda b: seen_first.append(b.number))
    await run_until(first, lambda: len(seen_first) >= 3)

    resumed_at = FileCheckpointStore(path).load() + 1

    hung, lagging, healthy = make_pool(tip=205)
    second = BlockReader(
        MultinodeProvider([hung, lagging, healthy], PROVIDER_SETTINGS),
        FileCheckpointStore(path),
        READER_SETTINGS,
    )
    seen_second = []
    second.on(EventKind.NEW_BLOCK, lambda b: seen_second.append(b.number))
    await run_until(second, lambda: seen_second and seen_second[-1] >= 205)

    assert seen_second[0] == resumed_at
    assert seen_second == list(range(resumed_at, 206))
    assert seen_first == list(range(196, 196 + len(seen_first)))


async def test_all_endpoints_down_reports_errors(tmp_path):
    endpoints = [
        ChainEndpoint("http://a", fail_methods=["get_block_number"]),
        ChainEndpoint("http://b", delay=1.0),
    ]
    provider = MultinodeProvider(endpoints, PROVIDER_SETTINGS)
    reader = BlockReader(provider, FileCheckpointStore(tmp_path / "checkpoint.txt"), READER_SETTINGS)
    errors = []
    reader.on(EventKind.ERROR, errors.append)

    await run_until(reader, lambda: len(errors) >= 2)

    assert reader.current_block_number == 0
    assert reader.stats.restarts >= 2
