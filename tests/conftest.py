# PATH: tests/conftest.py
"""
Pytest configuration and fixtures.

Fake endpoints implement the ChainClient surface in memory so fan-out,
consensus and reader behavior can be tested without a network.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Iterable, Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.exceptions import RPCError  # noqa: E402
from core.models import FeeData  # noqa: E402


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


def block_hash(number: int) -> str:
    return "0x" + hex(number)[2:].zfill(64)


def tx_hash(block_number: int, index: int) -> str:
    return "0x" + f"{block_number:032x}{index:032x}"


def make_tx(block_number: int, index: int, eip1559: bool = True) -> dict:
    """Raw transaction object as returned by eth_getBlockByNumber(n, true)."""
    tx = {
        "hash": tx_hash(block_number, index),
        "blockNumber": hex(block_number),
        "blockHash": block_hash(block_number),
        "transactionIndex": hex(index),
        "type": "0x2" if eip1559 else "0x0",
        "from": "0x" + "11" * 20,
        "to": "0x" + "22" * 20,
        "nonce": hex(index),
        "gas": hex(21000),
        "input": "0x",
        "value": hex(10**18),
        "chainId": "0x38",
    }
    if eip1559:
        tx["maxFeePerGas"] = hex(3 * 10**9)
        tx["maxPriorityFeePerGas"] = hex(10**9)
    else:
        tx["gasPrice"] = hex(5 * 10**9)
    return tx


def make_block(number: int, tx_count: int = 2, full: bool = True) -> dict:
    """Raw block; full=False lists transaction hashes only."""
    txs = [make_tx(number, i) for i in range(tx_count)]
    return {
        "number": hex(number),
        "hash": block_hash(number),
        "parentHash": block_hash(number - 1),
        "timestamp": hex(1_700_000_000 + number * 3),
        "transactions": txs if full else [tx["hash"] for tx in txs],
    }


class FakeEndpoint:
    """
    In-memory ChainClient.

    heights: a single int, or a sequence consumed one per call (the last
    value repeats). delay: seconds before every answer. fail: raise on
    every call; fail_methods: raise only for these method names.
    """

    def __init__(
        self,
        url: str,
        heights: int | Iterable[int] = 0,
        delay: float = 0.0,
        fail: bool = False,
        fail_methods: Iterable[str] = (),
        blocks: Optional[dict] = None,
        transactions: Optional[dict] = None,
        receipts: Optional[dict] = None,
        logs: Optional[list] = None,
        balance: int = 0,
        call_result: str = "0x",
    ):
        self.url = url
        self._heights = [heights] if isinstance(heights, int) else list(heights)
        self.delay = delay
        self.fail = fail
        self.fail_methods = set(fail_methods)
        self.blocks = blocks or {}
        self.transactions = transactions or {}
        self.receipts = receipts or {}
        self.logs = logs if logs is not None else []
        self.balance = balance
        self.call_result = call_result
        self.calls: list[tuple[str, Any]] = []
        self.closed = False

    async def _enter(self, method: str, arg: Any = None) -> None:
        self.calls.append((method, arg))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail or method in self.fail_methods:
            raise RPCError(f"{self.url} failed {method}")

    async def get_block_number(self) -> int:
        await self._enter("get_block_number")
        if len(self._heights) > 1:
            return self._heights.pop(0)
        return self._heights[0]

    async def get_block(self, block_id, include_transactions=False):
        await self._enter("get_block", block_id)
        return self.blocks.get(block_id)

    async def get_transaction(self, tx_hash):
        await self._enter("get_transaction", tx_hash)
        return self.transactions.get(tx_hash)

    async def get_transaction_receipt(self, tx_hash):
        await self._enter("get_transaction_receipt", tx_hash)
        return self.receipts.get(tx_hash)

    async def wait_for_transaction(self, tx_hash, confirmations=1, timeout_ms=None):
        await self._enter("wait_for_transaction", tx_hash)
        return self.receipts.get(tx_hash)

    async def get_balance(self, address, block_tag="latest"):
        await self._enter("get_balance", address)
        return self.balance

    async def get_fee_data(self):
        await self._enter("get_fee_data")
        return FeeData(gas_price=5 * 10**9)

    async def call(self, transaction, block_tag="latest"):
        await self._enter("call", transaction)
        return self.call_result

    async def multicall(self, calls, multicall_address=None):
        await self._enter("multicall", multicall_address)
        return []

    async def get_logs(self, log_filter):
        await self._enter("get_logs", log_filter)
        return list(self.logs)

    async def send(self, method, params=None):
        await self._enter("send", method)
        return {"method": method, "url": self.url}

    async def close(self):
        self.closed = True


class ChainEndpoint(FakeEndpoint):
    """
    Endpoint serving a synthetic chain: every block up to `height` exists.

    missing: block numbers that never exist.
    flaky: block number -> number of calls that fail before it succeeds.
    full: serve transaction objects (True) or hashes only (False).
    """

    def __init__(
        self,
        url: str = "http://chain",
        height: int = 100,
        tx_count: int = 2,
        full: bool = True,
        missing: Iterable[int] = (),
        flaky: Optional[dict] = None,
        **kwargs,
    ):
        super().__init__(url, heights=height, **kwargs)
        self.height = height
        self.tx_count = tx_count
        self.full = full
        self.missing = set(missing)
        self.flaky = dict(flaky or {})
        self.block_requests: list[int] = []

    async def get_block_number(self) -> int:
        await self._enter("get_block_number")
        return self.height

    async def get_block(self, block_id, include_transactions=False):
        await self._enter("get_block", block_id)
        self.block_requests.append(block_id)
        if self.flaky.get(block_id, 0) > 0:
            self.flaky[block_id] -= 1
            raise RPCError(f"transient failure for block {block_id}")
        if block_id in self.missing or block_id > self.height:
            return None
        return make_block(block_id, self.tx_count, self.full)

    async def get_transaction(self, tx_hash):
        await self._enter("get_transaction", tx_hash)
        if tx_hash in self.transactions:
            return self.transactions[tx_hash]
        block_number = int(tx_hash[2:34], 16)
        index = int(tx_hash[34:], 16)
        return make_tx(block_number, index)


@pytest.fixture
def endpoint_factory():
    """Factory for FakeEndpoint instances."""
    return FakeEndpoint


@pytest.fixture
def chain_factory():
    """Factory for ChainEndpoint instances."""
    return ChainEndpoint
