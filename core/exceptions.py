# PATH: core/exceptions.py
"""
Typed exceptions for the multinode RPC layer.

Endpoint-level failures (RPCError, RPCTimeoutError, ValidationError) are
recovered inside a fan-out; AllNodesFailedError is what callers see.
"""

from typing import Optional

from core.constants import ErrorCode


class MeshError(Exception):
    """Base exception."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"


class InfraError(MeshError):
    """Infrastructure-related errors (RPC, timeouts, bad payloads)."""
    pass


class RPCError(InfraError):
    """RPC call failed on one endpoint."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        code: ErrorCode = ErrorCode.INFRA_RPC_ERROR,
    ):
        super().__init__(message, code, details)


class RPCTimeoutError(InfraError):
    """Operation timed out."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.INFRA_TIMEOUT, details)


class ValidationError(InfraError):
    """Endpoint answered, but the result was rejected by the validator."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.INFRA_VALIDATION_FAILED, details)


class AllNodesFailedError(InfraError):
    """No endpoint produced an acceptable result for one logical request."""

    def __init__(
        self,
        operation: str,
        errors: Optional[dict[str, str]] = None,
    ):
        self.operation = operation
        self.errors = errors or {}
        super().__init__(
            f"All RPC nodes failed for {operation}",
            ErrorCode.INFRA_ALL_NODES_FAILED,
            {"operation": operation, "errors": self.errors},
        )


class ConfigError(MeshError):
    """Invalid configuration."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.CONFIG_INVALID, details)


class CheckpointError(MeshError):
    """Checkpoint could not be read or written."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.CHECKPOINT_ERROR, details)
