"""
chains/interfaces.py - Read-side client contract.

Both the single-endpoint RPCProvider and the MultinodeProvider satisfy
ChainClient, so consumers (BlockReader, scripts) depend on this protocol
instead of a concrete client class.

Block, transaction, receipt and log payloads are the raw JSON-RPC objects
(hex quantities); normalization happens in core.models.
"""

from typing import Any, Optional, Protocol, Sequence, Union, runtime_checkable

from chains.multicall import MulticallCall, MulticallResult
from core.models import FeeData

BlockId = Union[int, str]
BlockTag = Union[int, str]


@runtime_checkable
class ChainClient(Protocol):
    """Query surface shared by single- and multi-endpoint clients."""

    url: str

    async def get_block_number(self) -> int:
        ...

    async def get_block(
        self,
        block_id: BlockId,
        include_transactions: bool = False,
    ) -> Optional[dict[str, Any]]:
        ...

    async def get_transaction(self, tx_hash: str) -> Optional[dict[str, Any]]:
        ...

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict[str, Any]]:
        ...

    async def wait_for_transaction(
        self,
        tx_hash: str,
        confirmations: int = 1,
        timeout_ms: Optional[int] = None,
    ) -> Optional[dict[str, Any]]:
        ...

    async def get_balance(self, address: str, block_tag: BlockTag = "latest") -> int:
        ...

    async def get_fee_data(self) -> FeeData:
        ...

    async def call(self, transaction: dict[str, Any], block_tag: BlockTag = "latest") -> str:
        ...

    async def multicall(
        self,
        calls: Sequence[MulticallCall],
        multicall_address: Optional[str] = None,
    ) -> list[MulticallResult]:
        ...

    async def get_logs(self, log_filter: dict[str, Any]) -> list[dict[str, Any]]:
        ...

    async def send(self, method: str, params: Optional[list] = None) -> Any:
        ...
