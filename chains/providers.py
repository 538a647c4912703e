"""
chains/providers.py - Single-endpoint JSON-RPC client.

Each RPCProvider talks to one node over a pooled httpx client, bounds every
request with a timeout and records per-endpoint latency.

One RPCProvider is one Endpoint of a MultinodeProvider. It never retries or
fails over on its own; errors propagate to the caller as typed exceptions.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import httpx

from chains.interfaces import BlockId, BlockTag
from chains.multicall import (
    MulticallCall,
    MulticallResult,
    decode_try_aggregate,
    encode_try_aggregate,
)
from core.constants import (
    DEFAULT_MULTICALL_ADDRESS,
    DEFAULT_PRIORITY_FEE_WEI,
    DEFAULT_RPC_TIMEOUT_SECONDS,
    ErrorCode,
)
from core.exceptions import RPCError, RPCTimeoutError
from core.logging import get_logger
from core.models import FeeData, parse_quantity, to_quantity
from core.time import now_ms

logger = get_logger(__name__)

TX_HASH_HEX_LENGTH = 66


@dataclass
class RPCStats:
    """Request counters and latency for one endpoint."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: int = 0
    last_error: str | None = None
    last_success_ts: int | None = None

    @property
    def avg_latency_ms(self) -> int:
        if self.successful_requests == 0:
            return 0
        return self.total_latency_ms // self.successful_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    def to_dict(self) -> dict:
        return {
            "total_requests": self.total_requests,
            "success_rate": round(self.success_rate, 3),
            "avg_latency_ms": self.avg_latency_ms,
            "last_error": self.last_error,
        }


@dataclass
class RPCResponse:
    """Decoded JSON-RPC result plus the latency it took."""
    result: Any
    latency_ms: int
    endpoint_used: str


def format_block_tag(block: BlockTag) -> str:
    """Ints become hex quantities; tags ("latest", "safe", ...) pass through."""
    if isinstance(block, int):
        return to_quantity(block)
    return block


def is_block_hash(block_id: BlockId) -> bool:
    return (
        isinstance(block_id, str)
        and block_id.startswith("0x")
        and len(block_id) == TX_HASH_HEX_LENGTH
    )


class RPCProvider:
    """
    JSON-RPC client bound to a single endpoint.

    Tracks statistics for monitoring. Satisfies chains.interfaces.ChainClient.
    """

    def __init__(
        self,
        url: str,
        chain_id: int | None = None,
        timeout_seconds: float = DEFAULT_RPC_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.chain_id = chain_id
        self.timeout_seconds = timeout_seconds
        self.stats = RPCStats(url=url)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._request_id = 0

    def __repr__(self) -> str:
        return f"RPCProvider({self.url!r})"

    async def _get_client(self) -> httpx.AsyncClient:
        """Lazily open the pooled client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=10),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Release pooled connections."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def request(
        self,
        method: str,
        params: list | None = None,
    ) -> RPCResponse:
        """
        Send one JSON-RPC call and update stats.

        Args:
            method: JSON-RPC method, e.g. "eth_getBlockByNumber"
            params: Positional params, already hex-encoded

        Returns:
            RPCResponse carrying the result member and latency

        Raises:
            RPCTimeoutError: On HTTP timeout
            RPCError: On JSON-RPC error, transport failure or malformed payload
        """
        client = await self._get_client()
        self.stats.total_requests += 1

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": self._next_request_id(),
        }

        start_ms = now_ms()

        try:
            resp = await client.post(self.url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.TimeoutException as e:
            latency_ms = now_ms() - start_ms
            self._record_failure(f"Timeout after {latency_ms}ms")
            raise RPCTimeoutError(
                f"RPC timeout after {latency_ms}ms",
                details={"url": self.url, "method": method},
            ) from e
        except asyncio.CancelledError:
            # Fan-out deadline passed while the request was in flight
            self._record_failure(f"Cancelled after {now_ms() - start_ms}ms")
            raise
        except httpx.HTTPError as e:
            self._record_failure(str(e))
            raise RPCError(
                f"Transport error: {e}",
                details={"url": self.url, "method": method},
            ) from e
        except ValueError as e:
            self._record_failure(f"Invalid JSON: {e}")
            raise RPCError(
                "Invalid JSON in RPC response",
                details={"url": self.url, "method": method},
                code=ErrorCode.INFRA_BAD_RESPONSE,
            ) from e

        latency_ms = now_ms() - start_ms

        if not isinstance(body, dict):
            self._record_failure("Unexpected response shape")
            raise RPCError(
                "Unexpected RPC response shape",
                details={"url": self.url, "method": method},
                code=ErrorCode.INFRA_BAD_RESPONSE,
            )

        if "error" in body:
            error = body["error"]
            error_msg = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            self._record_failure(error_msg)
            logger.debug(
                f"RPC error from {self.url}: {error_msg}",
                extra={"context": {"url": self.url, "method": method}},
            )
            raise RPCError(
                f"RPC error: {error_msg}",
                details={"url": self.url, "method": method, "error": error},
            )

        self.stats.successful_requests += 1
        self.stats.total_latency_ms += latency_ms
        self.stats.last_success_ts = now_ms()

        return RPCResponse(
            result=body.get("result"),
            latency_ms=latency_ms,
            endpoint_used=self.url,
        )

    def _record_failure(self, error: str) -> None:
        self.stats.failed_requests += 1
        self.stats.last_error = error

    # =========================================================================
    # QUERY SURFACE
    # =========================================================================

    async def send(self, method: str, params: Optional[list] = None) -> Any:
        """Raw JSON-RPC call; returns the result member."""
        response = await self.request(method, params)
        return response.result

    async def send_required(self, method: str, params: Optional[list] = None) -> Any:
        """
        Like send, for methods where null is not a valid answer.

        Raises:
            RPCError: INFRA_BAD_RESPONSE if the node returned null
        """
        result = await self.send(method, params)
        if result is None:
            raise RPCError(
                f"{method} returned null",
                details={"url": self.url, "method": method},
                code=ErrorCode.INFRA_BAD_RESPONSE,
            )
        return result

    async def get_chain_id(self) -> int:
        """eth_chainId as an int."""
        return parse_quantity(await self.send_required("eth_chainId"))

    async def get_block_number(self) -> int:
        """Get latest block number."""
        return parse_quantity(await self.send_required("eth_blockNumber"))

    async def get_block(
        self,
        block_id: BlockId,
        include_transactions: bool = False,
    ) -> Optional[dict[str, Any]]:
        """
        Get a block by number, tag or hash.

        Returns None when the node does not know the block yet.
        """
        if is_block_hash(block_id):
            return await self.send("eth_getBlockByHash", [block_id, include_transactions])
        return await self.send(
            "eth_getBlockByNumber",
            [format_block_tag(block_id), include_transactions],
        )

    async def get_transaction(self, tx_hash: str) -> Optional[dict[str, Any]]:
        return await self.send("eth_getTransactionByHash", [tx_hash])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict[str, Any]]:
        return await self.send("eth_getTransactionReceipt", [tx_hash])

    async def wait_for_transaction(
        self,
        tx_hash: str,
        confirmations: int = 1,
        timeout_ms: Optional[int] = None,
        poll_interval_ms: int = 1000,
    ) -> Optional[dict[str, Any]]:
        """
        Wait until a transaction is mined with enough confirmations.

        confirmations=0 returns the current receipt (None if not mined).

        Raises:
            RPCTimeoutError: If timeout_ms elapses first
        """
        if confirmations == 0:
            return await self.get_transaction_receipt(tx_hash)

        deadline = time.monotonic() + timeout_ms / 1000 if timeout_ms else None

        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt and receipt.get("blockNumber") is not None:
                if confirmations <= 1:
                    return receipt
                head = await self.get_block_number()
                mined_at = parse_quantity(receipt["blockNumber"])
                if head - mined_at + 1 >= confirmations:
                    return receipt

            if deadline is not None and time.monotonic() >= deadline:
                raise RPCTimeoutError(
                    f"Timed out waiting for {tx_hash}",
                    details={
                        "url": self.url,
                        "tx_hash": tx_hash,
                        "confirmations": confirmations,
                        "timeout_ms": timeout_ms,
                    },
                )
            await asyncio.sleep(poll_interval_ms / 1000)

    async def get_balance(self, address: str, block_tag: BlockTag = "latest") -> int:
        """Get account balance in wei."""
        return parse_quantity(
            await self.send_required("eth_getBalance", [address, format_block_tag(block_tag)])
        )

    async def get_gas_price(self) -> int:
        """Get current gas price in wei."""
        return parse_quantity(await self.send_required("eth_gasPrice"))

    async def get_fee_data(self) -> FeeData:
        """
        Get current fee data.

        max_fee_per_gas = 2 * baseFeePerGas + priority fee. Chains without
        baseFeePerGas get legacy gas_price only.
        """
        gas_price, latest = await asyncio.gather(
            self.get_gas_price(),
            self.get_block("latest", False),
        )

        base_fee = parse_quantity((latest or {}).get("baseFeePerGas"), default=None)
        if base_fee is None:
            return FeeData(gas_price=gas_price)

        try:
            priority_fee = parse_quantity(await self.send_required("eth_maxPriorityFeePerGas"))
        except RPCError:
            priority_fee = DEFAULT_PRIORITY_FEE_WEI

        return FeeData(
            gas_price=gas_price,
            max_fee_per_gas=base_fee * 2 + priority_fee,
            max_priority_fee_per_gas=priority_fee,
        )

    async def call(self, transaction: dict[str, Any], block_tag: BlockTag = "latest") -> str:
        """
        Make eth_call.

        Args:
            transaction: Call object ({"to": ..., "data": ...})
            block_tag: Block number or tag

        Returns:
            Hex-encoded return data
        """
        return await self.send_required("eth_call", [transaction, format_block_tag(block_tag)])

    async def multicall(
        self,
        calls: Sequence[MulticallCall],
        multicall_address: Optional[str] = None,
    ) -> list[MulticallResult]:
        """Batch read-only calls through Multicall3.tryAggregate(false, calls)."""
        data = encode_try_aggregate(list(calls), require_success=False)
        result = await self.call({
            "to": multicall_address or DEFAULT_MULTICALL_ADDRESS,
            "data": data,
        })
        return decode_try_aggregate(result)

    async def get_logs(self, log_filter: dict[str, Any]) -> list[dict[str, Any]]:
        """eth_getLogs; integer fromBlock/toBlock are hex-encoded."""
        params = dict(log_filter)
        for key in ("fromBlock", "toBlock"):
            if key in params:
                params[key] = format_block_tag(params[key])
        return await self.send("eth_getLogs", [params]) or []

    def get_stats_summary(self) -> dict:
        """Statistics summary for this endpoint."""
        return {self.url: self.stats.to_dict()}
