"""
chains/multicall.py - Multicall3 tryAggregate encoding.

Batched read-only calls go through the Multicall3 helper contract:

    function tryAggregate(bool requireSuccess, (address target, bytes callData)[] calls)
        returns ((bool success, bytes returnData)[])

ABI layout is written out by hand (head/tail encoding, 32-byte words).
"""

from dataclasses import dataclass

from core.constants import ErrorCode
from core.exceptions import RPCError

# keccak256("tryAggregate(bool,(address,bytes)[])")[:4]
SELECTOR_TRY_AGGREGATE = "bce38bd7"

WORD_HEX = 64  # 32 bytes


@dataclass(frozen=True)
class MulticallCall:
    """Single call inside a batch."""
    target: str
    call_data: str


@dataclass(frozen=True)
class MulticallResult:
    """Per-call result of tryAggregate."""
    success: bool
    return_data: str


def _word(value: int) -> str:
    return hex(value)[2:].zfill(WORD_HEX)


def _strip_0x(data: str) -> str:
    return data[2:] if data.startswith(("0x", "0X")) else data


def _encode_bytes(data: str) -> str:
    """Length word followed by data right-padded to a word boundary."""
    raw = _strip_0x(data).lower()
    if len(raw) % 2:
        raise ValueError(f"Odd-length hex data: {data!r}")
    length = len(raw) // 2
    padded_len = ((len(raw) + WORD_HEX - 1) // WORD_HEX) * WORD_HEX
    return _word(length) + raw.ljust(padded_len, "0")


def _encode_call(call: MulticallCall) -> str:
    """(address, bytes) tuple: address word, offset to bytes (0x40), bytes."""
    address = _strip_0x(call.target).lower()
    if len(address) != 40:
        raise ValueError(f"Invalid target address: {call.target!r}")
    return address.zfill(WORD_HEX) + _word(0x40) + _encode_bytes(call.call_data)


def encode_try_aggregate(calls: list[MulticallCall], require_success: bool = False) -> str:
    """
    Encode tryAggregate calldata.

    Layout:
        selector
        bool requireSuccess
        offset to calls array (0x40)
        calls.length
        offsets of each tuple, relative to the first offset word
        tuples
    """
    encoded_calls = [_encode_call(call) for call in calls]

    offsets = []
    position = len(calls) * 32
    for encoded in encoded_calls:
        offsets.append(_word(position))
        position += len(encoded) // 2

    return (
        f"0x{SELECTOR_TRY_AGGREGATE}"
        f"{_word(1 if require_success else 0)}"
        f"{_word(0x40)}"
        f"{_word(len(calls))}"
        f"{''.join(offsets)}"
        f"{''.join(encoded_calls)}"
    )


def _read_word(data: str, byte_offset: int) -> int:
    start = byte_offset * 2
    chunk = data[start:start + WORD_HEX]
    if len(chunk) != WORD_HEX:
        raise RPCError(
            "Truncated multicall response",
            details={"offset": byte_offset, "length": len(data) // 2},
            code=ErrorCode.INFRA_BAD_RESPONSE,
        )
    return int(chunk, 16)


def decode_try_aggregate(hex_result: str) -> list[MulticallResult]:
    """
    Decode the (bool success, bytes returnData)[] return value.

    Raises:
        RPCError: On empty or malformed data
    """
    if not hex_result or hex_result in ("0x", "0X"):
        raise RPCError(
            "Empty multicall response",
            code=ErrorCode.INFRA_BAD_RESPONSE,
        )

    data = _strip_0x(hex_result)

    array_offset = _read_word(data, 0)
    count = _read_word(data, array_offset)
    heads = array_offset + 32

    results = []
    for i in range(count):
        tuple_offset = heads + _read_word(data, heads + i * 32)
        success = _read_word(data, tuple_offset) != 0
        bytes_offset = tuple_offset + _read_word(data, tuple_offset + 32)
        length = _read_word(data, bytes_offset)
        start = (bytes_offset + 32) * 2
        payload = data[start:start + length * 2]
        if len(payload) != length * 2:
            raise RPCError(
                "Truncated multicall return data",
                details={"index": i, "expected_bytes": length},
                code=ErrorCode.INFRA_BAD_RESPONSE,
            )
        results.append(MulticallResult(success=success, return_data="0x" + payload))

    return results
