# PATH: core/constants.py
"""
Constants for the multinode RPC layer and block reader.

Contains enums, defaults, and configuration constants.
"""

from enum import Enum
from typing import Final

# =============================================================================
# PROVIDER DEFAULTS
# =============================================================================

# Fast head polling
DEFAULT_HEAD_TIMEOUT_MS: Final[int] = 500

# Block, transaction, receipt and call requests
DEFAULT_BLOCK_TIMEOUT_MS: Final[int] = 3000

# eth_getLogs gets block timeout * multiplier
DEFAULT_LOG_TIMEOUT_MULTIPLIER: Final[int] = 3

# Allowed deviation from the median height when selecting consensus head
DEFAULT_CONSENSUS_WINDOW: Final[int] = 5

# Multicall3, deployed at the same address on most EVM chains
DEFAULT_MULTICALL_ADDRESS: Final[str] = "0xcA11bde05977b3631167028862bE2a173976CA11"

# Single-endpoint client HTTP timeout
DEFAULT_RPC_TIMEOUT_SECONDS: Final[int] = 10

# Used when eth_maxPriorityFeePerGas is not supported
DEFAULT_PRIORITY_FEE_WEI: Final[int] = 1_000_000_000

# =============================================================================
# READER DEFAULTS
# =============================================================================

DEFAULT_MAX_ATTEMPTS: Final[int] = 3
DEFAULT_RETRY_DELAY_MS: Final[int] = 1000
DEFAULT_MAX_PARALLEL_BLOCKS: Final[int] = 5
DEFAULT_REREAD_BLOCKS: Final[int] = 10
DEFAULT_LOOP_DELAY_MS: Final[int] = 1000

# Recency set caps (log/notification dedup only)
RECENT_BLOCKS_CAP: Final[int] = 100
RECENT_TRANSACTIONS_CAP: Final[int] = 2000

# Source tags on emitted records
BLOCK_SOURCE_READER: Final[str] = "READER"
TX_SOURCE_BLOCK: Final[str] = "block"

# Default timeout for check_transaction_status
DEFAULT_TX_STATUS_TIMEOUT_MS: Final[int] = 10_000


class ErrorCode(str, Enum):
    """Error codes carried by every MeshError."""
    # Infrastructure errors
    INFRA_RPC_ERROR = "INFRA_RPC_ERROR"
    INFRA_TIMEOUT = "INFRA_TIMEOUT"
    INFRA_BAD_RESPONSE = "INFRA_BAD_RESPONSE"
    INFRA_VALIDATION_FAILED = "INFRA_VALIDATION_FAILED"
    INFRA_ALL_NODES_FAILED = "INFRA_ALL_NODES_FAILED"

    # Configuration
    CONFIG_INVALID = "CONFIG_INVALID"

    # Reader
    CHECKPOINT_ERROR = "CHECKPOINT_ERROR"
    READER_BLOCK_UNAVAILABLE = "READER_BLOCK_UNAVAILABLE"

    # Other
    UNKNOWN = "UNKNOWN"


class DeliveryMode(str, Enum):
    """
    When the reader persists the checkpoint relative to announcing a block.

    AT_MOST_ONCE: checkpoint first; a crash before announcement loses the block.
    AT_LEAST_ONCE: announce first; a crash before checkpoint replays the block.
    """
    AT_MOST_ONCE = "AT_MOST_ONCE"
    AT_LEAST_ONCE = "AT_LEAST_ONCE"


class EventKind(str, Enum):
    """Events published by the block reader."""
    NEW_BLOCK = "new_block"
    NEW_TRANSACTION = "new_transaction"
    ERROR = "error"
