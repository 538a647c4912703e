"""
chains/multinode.py - Resilient multi-endpoint RPC facade.

Executes every request across all configured nodes in parallel and returns
the most reliable result:
- Block number: consensus over all heights, never decreasing
- Point queries: first validated result by configured endpoint order
- Logs: longest result set, failed nodes count as empty

Satisfies chains.interfaces.ChainClient, so it is a drop-in for a
single-endpoint RPCProvider wherever callers depend on the protocol.
"""

from typing import Any, Optional, Sequence

from chains.consensus import ConsensusHeightSelector
from chains.fanout import FailurePolicy, FanOutExecutor, all_failed
from chains.interfaces import BlockId, BlockTag, ChainClient
from chains.multicall import MulticallCall, MulticallResult
from chains.providers import RPCProvider
from config.settings import ProviderSettings
from core.exceptions import ConfigError
from core.logging import get_logger
from core.models import FeeData

logger = get_logger(__name__)


def has_hash(result: Any) -> bool:
    return bool(result) and bool(result.get("hash"))


def has_status(result: Any) -> bool:
    return bool(result) and "status" in result


class MultinodeProvider:
    """
    ChainClient backed by a fixed, ordered pool of endpoints.

    Endpoint order is priority: when several endpoints answer, the earliest
    configured one wins even if a later one answered sooner.
    """

    def __init__(
        self,
        endpoints: Sequence[ChainClient],
        settings: ProviderSettings | None = None,
    ):
        if not endpoints:
            raise ConfigError("rpc endpoints must be a non-empty list")

        self.settings = settings or ProviderSettings()
        self._endpoints: tuple[ChainClient, ...] = tuple(endpoints)
        self._executor = FanOutExecutor(self._endpoints)
        self._consensus = ConsensusHeightSelector(self.settings.consensus_window)
        self.url = ",".join(getattr(e, "url", repr(e)) for e in self._endpoints)

    @classmethod
    def from_urls(
        cls,
        rpc_urls: Sequence[str],
        chain_id: int | None = None,
        settings: ProviderSettings | None = None,
    ) -> "MultinodeProvider":
        """
        Build one RPCProvider per URL.

        Raises:
            ConfigError: If rpc_urls is empty
        """
        if not rpc_urls:
            raise ConfigError("rpc_urls must be a non-empty list")

        settings = settings or ProviderSettings()
        # Transport timeout is a backstop; the fan-out timeout is what callers see.
        transport_timeout_s = max(settings.log_timeout_s, 1.0)
        endpoints = [
            RPCProvider(url, chain_id=chain_id, timeout_seconds=transport_timeout_s)
            for url in rpc_urls
        ]
        logger.info(
            "Multinode provider created",
            extra={"context": {"endpoints": len(endpoints), "chain_id": chain_id}},
        )
        return cls(endpoints, settings)

    @property
    def endpoints(self) -> tuple[ChainClient, ...]:
        return self._endpoints

    async def close(self) -> None:
        """Close every endpoint that holds a connection pool."""
        for endpoint in self._endpoints:
            close = getattr(endpoint, "close", None)
            if close is not None:
                await close()

    # =========================================================================
    # HEIGHT
    # =========================================================================

    async def get_block_number(self) -> int:
        """
        Consensus block number across all endpoints.

        Uses the short head timeout. Failed or slow endpoints contribute
        nothing; the result never decreases between calls.

        Raises:
            AllNodesFailedError: If no endpoint returned a height
        """
        outcomes = await self._executor.gather(
            lambda p: p.get_block_number(),
            self.settings.head_timeout_s,
            label="get_block_number",
        )
        heights = [o.value for o in outcomes if o.ok]
        if not heights:
            raise all_failed("get_block_number", outcomes)
        height = self._consensus.select(heights)

        logger.debug(
            f"Consensus head {height}",
            extra={"context": {"observations": heights, "height": height}},
        )
        return height

    def get_last_head(self) -> int:
        """Latest consensus block number returned by this provider."""
        return self._consensus.last_height

    # =========================================================================
    # POINT QUERIES (first validated result by endpoint order)
    # =========================================================================

    async def _first(self, operation, label: str, validate=None, timeout_s: float | None = None):
        return await self._executor.first(
            operation,
            timeout_s if timeout_s is not None else self.settings.block_timeout_s,
            validate=validate,
            label=label,
        )

    async def get_block(
        self,
        block_id: BlockId,
        include_transactions: bool = False,
    ) -> Optional[dict[str, Any]]:
        """Block by number, tag or hash; a result without a hash is rejected."""
        return await self._first(
            lambda p: p.get_block(block_id, include_transactions),
            "get_block",
            validate=has_hash,
        )

    async def get_transaction(self, tx_hash: str) -> Optional[dict[str, Any]]:
        return await self._first(
            lambda p: p.get_transaction(tx_hash),
            "get_transaction",
            validate=has_hash,
        )

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict[str, Any]]:
        return await self._first(
            lambda p: p.get_transaction_receipt(tx_hash),
            "get_transaction_receipt",
            validate=has_status,
        )

    async def wait_for_transaction(
        self,
        tx_hash: str,
        confirmations: int = 1,
        timeout_ms: Optional[int] = None,
    ) -> Optional[dict[str, Any]]:
        """
        Wait on every endpoint; the fan-out deadline is the larger of the
        block timeout and timeout_ms.
        """
        deadline_ms = max(self.settings.block_timeout_ms, timeout_ms or 0)
        return await self._first(
            lambda p: p.wait_for_transaction(tx_hash, confirmations, timeout_ms),
            "wait_for_transaction",
            validate=has_status,
            timeout_s=deadline_ms / 1000,
        )

    async def get_balance(self, address: str, block_tag: BlockTag = "latest") -> int:
        return await self._first(
            lambda p: p.get_balance(address, block_tag),
            "get_balance",
        )

    async def get_fee_data(self) -> FeeData:
        return await self._first(lambda p: p.get_fee_data(), "get_fee_data")

    async def call(self, transaction: dict[str, Any], block_tag: BlockTag = "latest") -> str:
        """Read-only eth_call."""
        return await self._first(
            lambda p: p.call(transaction, block_tag),
            "call",
        )

    async def multicall(
        self,
        calls: Sequence[MulticallCall],
        multicall_address: Optional[str] = None,
    ) -> list[MulticallResult]:
        """
        Batched read-only calls via the configured Multicall3 contract.

        Individual call failures are reported per result (success=False),
        not raised.
        """
        address = multicall_address or self.settings.multicall_address
        return await self._first(
            lambda p: p.multicall(calls, address),
            "multicall",
        )

    async def send(self, method: str, params: Optional[list] = None) -> Any:
        """Raw JSON-RPC request."""
        return await self._first(lambda p: p.send(method, params), method)

    # =========================================================================
    # LOGS (longest result wins)
    # =========================================================================

    async def get_logs(self, log_filter: dict[str, Any]) -> list[dict[str, Any]]:
        """
        Logs matching the filter.

        Nodes enforce different range / count limits, so the response with
        the most logs is taken. Ties go to the earliest endpoint. Failed
        endpoints count as empty; if all fail the result is [].
        """
        results = await self._executor.collect(
            lambda p: p.get_logs(log_filter),
            self.settings.log_timeout_s,
            policy=FailurePolicy.DEGRADE_TO_EMPTY,
            empty=list,
            label="get_logs",
        )

        best: list[dict[str, Any]] = results[0]
        for candidate in results[1:]:
            if len(candidate) > len(best):
                best = candidate
        return best

    # =========================================================================
    # MONITORING
    # =========================================================================

    def get_stats_summary(self) -> dict:
        """Per-endpoint statistics, for endpoints that track them."""
        summary = {}
        for endpoint in self._endpoints:
            stats = getattr(endpoint, "stats", None)
            if stats is not None:
                summary[endpoint.url] = stats.to_dict()
        return summary
