# PATH: core/models.py
"""
Core data models.

Normalized records built from raw JSON-RPC payloads:
- TransactionRecord: one transaction, legacy or EIP-1559 pricing
- BlockRecord: one block with its ordered transactions
- FeeData: current fee suggestion

Quantities arrive hex-encoded ("0x1a") from the wire; in-memory values are
ints (wei / gas units). to_dict() renders wei amounts as strings so JSON
consumers never see lossy floats.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.constants import BLOCK_SOURCE_READER, TX_SOURCE_BLOCK, ErrorCode
from core.exceptions import RPCError


def parse_quantity(value: Any, default: Optional[int] = 0) -> Optional[int]:
    """
    Parse a JSON-RPC quantity.

    Accepts hex strings ("0x1a"), decimal strings, ints and None.
    Returns default for None / empty.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            if value.startswith(("0x", "0X")):
                return int(value, 16) if len(value) > 2 else 0
            return int(value)
        except ValueError:
            raise RPCError(
                f"Invalid quantity: {value!r}",
                details={"value": value},
                code=ErrorCode.INFRA_BAD_RESPONSE,
            )
    raise RPCError(
        f"Unsupported quantity type: {type(value).__name__}",
        details={"value": repr(value)},
        code=ErrorCode.INFRA_BAD_RESPONSE,
    )


def to_quantity(value: int) -> str:
    """Encode an int as a JSON-RPC quantity."""
    return hex(value)


@dataclass
class TransactionRecord:
    """Normalized transaction."""
    hash: str
    from_address: str
    to: Optional[str]  # None for contract creation
    nonce: int
    value: int
    chain_id: int
    block_number: Optional[int] = None
    block_hash: Optional[str] = None
    index: int = 0
    type: int = 0
    gas_limit: int = 0
    # Legacy pricing
    gas_price: Optional[int] = None
    # EIP-1559 pricing
    max_priority_fee_per_gas: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    data: str = "0x"
    source: str = TX_SOURCE_BLOCK

    @property
    def is_contract_creation(self) -> bool:
        return self.to is None

    @property
    def is_eip1559(self) -> bool:
        return self.max_fee_per_gas is not None

    @classmethod
    def from_rpc(cls, raw: Dict[str, Any], source: str = TX_SOURCE_BLOCK) -> "TransactionRecord":
        """
        Build from an eth_getTransactionByHash / full-block transaction object.

        Missing fields fall back to zero values; "input" and "data",
        "gas" and "gasLimit", "transactionIndex" and "index" are accepted.
        """
        index = raw.get("transactionIndex", raw.get("index"))
        return cls(
            hash=raw.get("hash") or "",
            block_number=parse_quantity(raw.get("blockNumber"), default=None),
            block_hash=raw.get("blockHash") or None,
            index=parse_quantity(index),
            type=parse_quantity(raw.get("type")),
            to=raw.get("to") or None,
            from_address=raw.get("from") or "",
            nonce=parse_quantity(raw.get("nonce")),
            gas_limit=parse_quantity(raw.get("gas", raw.get("gasLimit"))),
            gas_price=parse_quantity(raw.get("gasPrice"), default=None),
            max_priority_fee_per_gas=parse_quantity(raw.get("maxPriorityFeePerGas"), default=None),
            max_fee_per_gas=parse_quantity(raw.get("maxFeePerGas"), default=None),
            data=raw.get("input", raw.get("data")) or "0x",
            value=parse_quantity(raw.get("value")),
            chain_id=parse_quantity(raw.get("chainId")),
            source=source,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "block_number": self.block_number,
            "block_hash": self.block_hash,
            "index": self.index,
            "type": self.type,
            "from": self.from_address,
            "to": self.to,
            "nonce": self.nonce,
            "gas_limit": self.gas_limit,
            "gas_price": str(self.gas_price) if self.gas_price is not None else None,
            "max_priority_fee_per_gas": (
                str(self.max_priority_fee_per_gas)
                if self.max_priority_fee_per_gas is not None else None
            ),
            "max_fee_per_gas": str(self.max_fee_per_gas) if self.max_fee_per_gas is not None else None,
            "data": self.data,
            "value": str(self.value),
            "chain_id": self.chain_id,
            "source": self.source,
        }


@dataclass
class BlockRecord:
    """Normalized block. Always built from a single endpoint's response."""
    number: int
    hash: str
    timestamp: int
    parent_hash: Optional[str] = None
    transactions: List[TransactionRecord] = field(default_factory=list)
    source: str = BLOCK_SOURCE_READER

    @property
    def tx_count(self) -> int:
        return len(self.transactions)

    @classmethod
    def from_rpc(
        cls,
        raw: Dict[str, Any],
        transactions: Optional[List[TransactionRecord]] = None,
    ) -> "BlockRecord":
        """Build from an eth_getBlockBy* result; transactions are normalized separately."""
        if not raw or not raw.get("hash"):
            raise RPCError(
                "Block payload has no hash",
                details={"block": raw.get("number") if raw else None},
                code=ErrorCode.INFRA_BAD_RESPONSE,
            )
        return cls(
            number=parse_quantity(raw.get("number")),
            hash=raw["hash"],
            parent_hash=raw.get("parentHash"),
            timestamp=parse_quantity(raw.get("timestamp")),
            transactions=list(transactions or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "number": self.number,
            "hash": self.hash,
            "parent_hash": self.parent_hash,
            "timestamp": self.timestamp,
            "transactions": [tx.to_dict() for tx in self.transactions],
        }


@dataclass
class FeeData:
    """Fee suggestion. 1559 fields are None on legacy chains."""
    gas_price: Optional[int]
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gas_price": str(self.gas_price) if self.gas_price is not None else None,
            "max_fee_per_gas": str(self.max_fee_per_gas) if self.max_fee_per_gas is not None else None,
            "max_priority_fee_per_gas": (
                str(self.max_priority_fee_per_gas)
                if self.max_priority_fee_per_gas is not None else None
            ),
        }
