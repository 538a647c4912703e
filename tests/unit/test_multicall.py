"""
tests/unit/test_multicall.py - Multicall3 tryAggregate encoding tests.
"""

import pytest

from chains.multicall import (
    SELECTOR_TRY_AGGREGATE,
    MulticallCall,
    MulticallResult,
    decode_try_aggregate,
    encode_try_aggregate,
)
from core.constants import ErrorCode
from core.exceptions import RPCError


TARGET_A = "0x" + "11" * 20
TARGET_B = "0x" + "AB" * 20


def w(value: int) -> str:
    return hex(value)[2:].zfill(64)


class TestEncode:

    def test_single_call_layout(self):
        data = encode_try_aggregate([MulticallCall(TARGET_A, "0x12345678")])

        expected = (
            "0x" + SELECTOR_TRY_AGGREGATE
            + w(0)            # requireSuccess
            + w(0x40)         # offset to calls
            + w(1)            # calls.length
            + w(0x20)         # offset of tuple 0
            + ("11" * 20).rjust(64, "0")
            + w(0x40)         # offset to callData within tuple
            + w(4)
            + "12345678".ljust(64, "0")
        )
        assert data == expected

    def test_two_call_offsets(self):
        """Each short tuple is 4 words, so the second starts 0x80 after the first."""
        data = encode_try_aggregate([
            MulticallCall(TARGET_A, "0x01"),
            MulticallCall(TARGET_B, "0x02"),
        ])
        body = data[2 + 8:]
        words = [body[i:i + 64] for i in range(0, len(body), 64)]

        assert int(words[2], 16) == 2
        assert int(words[3], 16) == 0x40
        assert int(words[4], 16) == 0xC0
        # target addresses are lowercased
        assert words[9] == ("ab" * 20).rjust(64, "0")

    def test_require_success_flag(self):
        data = encode_try_aggregate([], require_success=True)
        assert data == "0x" + SELECTOR_TRY_AGGREGATE + w(1) + w(0x40) + w(0)

    def test_long_call_data_padded_to_word(self):
        call_data = "0x" + "ff" * 33
        data = encode_try_aggregate([MulticallCall(TARGET_A, call_data)])
        body = data[2 + 8:]

        assert (len(body) // 2) % 32 == 0
        assert w(33) in body

    def test_invalid_address_rejected(self):
        with pytest.raises(ValueError):
            encode_try_aggregate([MulticallCall("0x1234", "0x")])

    def test_odd_hex_rejected(self):
        with pytest.raises(ValueError):
            encode_try_aggregate([MulticallCall(TARGET_A, "0x123")])


class TestDecode:

    def test_mixed_results(self):
        return_word = "00" * 31 + "2a"
        response = (
            "0x"
            + w(0x20)                               # offset to array
            + w(2)                                  # length
            + w(0x40) + w(0xC0)                     # tuple offsets
            + w(1) + w(0x40) + w(32) + return_word  # (true, 32 bytes)
            + w(0) + w(0x40) + w(0)                 # (false, empty)
        )

        results = decode_try_aggregate(response)

        assert results == [
            MulticallResult(success=True, return_data="0x" + return_word),
            MulticallResult(success=False, return_data="0x"),
        ]

    def test_empty_array(self):
        assert decode_try_aggregate("0x" + w(0x20) + w(0)) == []

    def test_empty_response_raises(self):
        with pytest.raises(RPCError) as exc_info:
            decode_try_aggregate("0x")
        assert exc_info.value.code == ErrorCode.INFRA_BAD_RESPONSE

    def test_truncated_response_raises(self):
        with pytest.raises(RPCError):
            decode_try_aggregate("0x" + w(0x20) + w(1) + w(0x20))

    def test_truncated_return_data_raises(self):
        response = "0x" + w(0x20) + w(1) + w(0x20) + w(1) + w(0x40) + w(32) + "ab"
        with pytest.raises(RPCError):
            decode_try_aggregate(response)
