"""
core - Core utilities and models.

This package contains:
- constants.py: Defaults, ErrorCode and other enums
- exceptions.py: Typed exceptions with error codes
- models.py: Normalized block / transaction records
- time.py: Time helpers
- logging.py: Structured JSON logging
"""

from core.constants import DeliveryMode, ErrorCode, EventKind
from core.exceptions import (
    AllNodesFailedError,
    CheckpointError,
    ConfigError,
    InfraError,
    MeshError,
    RPCError,
    RPCTimeoutError,
    ValidationError,
)
from core.logging import get_logger, setup_logging
from core.models import BlockRecord, FeeData, TransactionRecord

__all__ = [
    # Constants
    "DeliveryMode",
    "ErrorCode",
    "EventKind",
    # Exceptions
    "AllNodesFailedError",
    "CheckpointError",
    "ConfigError",
    "InfraError",
    "MeshError",
    "RPCError",
    "RPCTimeoutError",
    "ValidationError",
    # Models
    "BlockRecord",
    "FeeData",
    "TransactionRecord",
    # Logging
    "get_logger",
    "setup_logging",
]
