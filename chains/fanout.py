"""
chains/fanout.py - Parallel request fan-out across endpoints.

Every logical request goes to all endpoints at once, each bounded by its
own timeout. Per-endpoint failures (error, timeout, null result, validator
rejection) are logged and dropped; they never cancel the other endpoints'
requests.
Selection runs only after every endpoint has settled, over results kept in
configured endpoint order, so earlier endpoints win whenever they succeed.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar

from core.exceptions import AllNodesFailedError, ConfigError, RPCTimeoutError, ValidationError
from core.logging import get_logger, log_endpoint_failure
from core.time import now_ms

logger = get_logger(__name__)

T = TypeVar("T")
E = TypeVar("E")

Operation = Callable[[E], Awaitable[T]]
Validator = Callable[[T], bool]


class FailurePolicy(str, Enum):
    """
    How failed endpoints take part in a multi-result call.

    FAIL_FAST: failed endpoints are excluded; no successes raises AllNodesFailedError.
    DEGRADE_TO_EMPTY: failed endpoints contribute the empty value; never raises.
    """
    FAIL_FAST = "FAIL_FAST"
    DEGRADE_TO_EMPTY = "DEGRADE_TO_EMPTY"


@dataclass
class RequestOutcome(Generic[T]):
    """Result of one endpoint invocation."""
    url: str
    value: Optional[T] = None
    error: Optional[BaseException] = None
    latency_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def endpoint_url(endpoint: Any) -> str:
    return getattr(endpoint, "url", None) or repr(endpoint)


class FanOutExecutor(Generic[E]):
    """
    Runs one operation against a fixed, ordered set of endpoints.

    The endpoint list is read-only after construction.
    """

    def __init__(self, endpoints: Sequence[E]):
        if not endpoints:
            raise ConfigError("At least one endpoint is required")
        self._endpoints: tuple[E, ...] = tuple(endpoints)

    @property
    def endpoints(self) -> tuple[E, ...]:
        return self._endpoints

    async def _invoke(
        self,
        endpoint: E,
        operation: Operation,
        timeout_s: float,
        validate: Optional[Validator],
        label: str,
    ) -> RequestOutcome:
        url = endpoint_url(endpoint)
        start_ms = now_ms()
        try:
            value = await asyncio.wait_for(operation(endpoint), timeout=timeout_s)
            if value is None:
                raise ValidationError(
                    "Empty result",
                    details={"url": url, "method": label},
                )
            if validate is not None and not validate(value):
                raise ValidationError(
                    "Validation failed",
                    details={"url": url, "method": label},
                )
            return RequestOutcome(url=url, value=value, latency_ms=now_ms() - start_ms)
        except asyncio.TimeoutError:
            error = RPCTimeoutError(
                "RPC call timeout",
                details={"url": url, "method": label, "timeout_s": timeout_s},
            )
        except ValidationError as e:
            # Node answered; it just has nothing acceptable (e.g. block not mined yet)
            logger.debug(
                f"[RPC REJECT] {url} -> {e}",
                extra={"context": {"url": url, "method": label}},
            )
            return RequestOutcome(url=url, error=e, latency_ms=now_ms() - start_ms)
        except Exception as e:
            error = e

        log_endpoint_failure(logger, url, label, error)
        return RequestOutcome(url=url, error=error, latency_ms=now_ms() - start_ms)

    async def gather(
        self,
        operation: Operation,
        timeout_s: float,
        validate: Optional[Validator] = None,
        label: str = "",
    ) -> list[RequestOutcome]:
        """
        Invoke operation on every endpoint concurrently.

        Returns:
            One outcome per endpoint, in configured order
        """
        return list(await asyncio.gather(*(
            self._invoke(endpoint, operation, timeout_s, validate, label)
            for endpoint in self._endpoints
        )))

    async def first(
        self,
        operation: Operation,
        timeout_s: float,
        validate: Optional[Validator] = None,
        label: str = "",
    ) -> Any:
        """
        First validated success by configured endpoint order.

        Raises:
            AllNodesFailedError: If no endpoint produced an accepted result
        """
        outcomes = await self.gather(operation, timeout_s, validate, label)
        for outcome in outcomes:
            if outcome.ok:
                return outcome.value
        raise all_failed(label, outcomes)

    async def collect(
        self,
        operation: Operation,
        timeout_s: float,
        policy: FailurePolicy = FailurePolicy.FAIL_FAST,
        empty: Optional[Callable[[], Any]] = None,
        validate: Optional[Validator] = None,
        label: str = "",
    ) -> list:
        """
        Per-endpoint values in configured order, under a failure policy.

        Args:
            empty: Factory for the value a failed endpoint contributes
                under DEGRADE_TO_EMPTY (default: list)
        """
        outcomes = await self.gather(operation, timeout_s, validate, label)

        if policy == FailurePolicy.DEGRADE_TO_EMPTY:
            make_empty = empty or list
            return [o.value if o.ok else make_empty() for o in outcomes]

        values = [o.value for o in outcomes if o.ok]
        if not values:
            raise all_failed(label, outcomes)
        return values


def all_failed(label: str, outcomes: Sequence[RequestOutcome]) -> AllNodesFailedError:
    """
    Build the AllNodesFailedError for a request no endpoint satisfied.

    Logged at DEBUG when every endpoint answered but was rejected (null or
    invalid result, e.g. a block not mined yet); at ERROR otherwise.
    """
    errors = {o.url: str(o.error) for o in outcomes if not o.ok}
    only_rejected = all(isinstance(o.error, ValidationError) for o in outcomes if not o.ok)
    level = logging.DEBUG if only_rejected else logging.ERROR
    logger.log(
        level,
        f"All RPC nodes failed for {label}",
        extra={"context": {"method": label, "endpoints": len(outcomes), "rejected_only": only_rejected}},
    )
    return AllNodesFailedError(label, errors)
