"""
config/settings.py - Provider and reader settings.

Defaults match core.constants; per-chain overrides come from the
"provider" and "reader" blocks of config/chains.yaml.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from config import get_chain_config, resolve_endpoint_urls
from core.constants import (
    DEFAULT_BLOCK_TIMEOUT_MS,
    DEFAULT_CONSENSUS_WINDOW,
    DEFAULT_HEAD_TIMEOUT_MS,
    DEFAULT_LOG_TIMEOUT_MULTIPLIER,
    DEFAULT_LOOP_DELAY_MS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_PARALLEL_BLOCKS,
    DEFAULT_MULTICALL_ADDRESS,
    DEFAULT_REREAD_BLOCKS,
    DEFAULT_RETRY_DELAY_MS,
    DeliveryMode,
)
from core.exceptions import ConfigError


def _reject_unknown(cls: type, data: dict[str, Any], section: str) -> None:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(
            f"Unknown {section} settings: {', '.join(unknown)}",
            details={"section": section, "unknown": unknown},
        )


def _require_int(name: str, value: Any, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise ConfigError(
            f"{name} must be an integer >= {minimum}",
            details={"field": name, "value": value},
        )


@dataclass
class ProviderSettings:
    """MultinodeProvider configuration."""

    head_timeout_ms: int = DEFAULT_HEAD_TIMEOUT_MS
    block_timeout_ms: int = DEFAULT_BLOCK_TIMEOUT_MS
    log_timeout_multiplier: int = DEFAULT_LOG_TIMEOUT_MULTIPLIER
    consensus_window: int = DEFAULT_CONSENSUS_WINDOW
    multicall_address: str = DEFAULT_MULTICALL_ADDRESS

    def __post_init__(self):
        _require_int("head_timeout_ms", self.head_timeout_ms, 1)
        _require_int("block_timeout_ms", self.block_timeout_ms, 1)
        _require_int("log_timeout_multiplier", self.log_timeout_multiplier, 1)
        _require_int("consensus_window", self.consensus_window, 0)
        if not isinstance(self.multicall_address, str) or not self.multicall_address.startswith("0x"):
            raise ConfigError(
                "multicall_address must be a 0x-prefixed address",
                details={"value": self.multicall_address},
            )

    @property
    def head_timeout_s(self) -> float:
        return self.head_timeout_ms / 1000

    @property
    def block_timeout_s(self) -> float:
        return self.block_timeout_ms / 1000

    @property
    def log_timeout_s(self) -> float:
        return self.block_timeout_ms * self.log_timeout_multiplier / 1000

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ProviderSettings":
        data = data or {}
        _reject_unknown(cls, data, "provider")
        return cls(**data)


@dataclass
class ReaderSettings:
    """BlockReader configuration."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS
    max_parallel_blocks: int = DEFAULT_MAX_PARALLEL_BLOCKS
    reread_blocks: int = DEFAULT_REREAD_BLOCKS
    loop_delay_ms: int = DEFAULT_LOOP_DELAY_MS
    delivery: DeliveryMode = DeliveryMode.AT_MOST_ONCE

    def __post_init__(self):
        _require_int("max_attempts", self.max_attempts, 1)
        _require_int("retry_delay_ms", self.retry_delay_ms, 0)
        _require_int("max_parallel_blocks", self.max_parallel_blocks, 1)
        _require_int("reread_blocks", self.reread_blocks, 0)
        _require_int("loop_delay_ms", self.loop_delay_ms, 0)
        try:
            self.delivery = DeliveryMode(self.delivery)
        except ValueError:
            raise ConfigError(
                f"Unknown delivery mode: {self.delivery}",
                details={"allowed": [m.value for m in DeliveryMode]},
            )

    @property
    def retry_delay_s(self) -> float:
        return self.retry_delay_ms / 1000

    @property
    def loop_delay_s(self) -> float:
        return self.loop_delay_ms / 1000

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ReaderSettings":
        data = dict(data or {})
        _reject_unknown(cls, data, "reader")
        if isinstance(data.get("delivery"), str):
            data["delivery"] = data["delivery"].upper()
        return cls(**data)


@dataclass
class ChainSettings:
    """Everything needed to start a reader for one chain."""

    chain_key: str
    chain_id: int | None
    rpc_urls: list[str]
    provider: ProviderSettings = field(default_factory=ProviderSettings)
    reader: ReaderSettings = field(default_factory=ReaderSettings)

    def __post_init__(self):
        if not self.rpc_urls:
            raise ConfigError(
                f"No usable RPC endpoints for chain {self.chain_key}",
                details={"chain": self.chain_key},
            )


def load_chain_settings(chain_key: str, config_path: Path | None = None) -> ChainSettings:
    """
    Load settings for one chain from chains.yaml.

    Args:
        chain_key: Chain identifier (e.g., 'bsc')
        config_path: Alternative chains.yaml (default: config/chains.yaml)

    Raises:
        ConfigError: Unknown chain, no endpoints, or invalid values
    """
    try:
        chain = get_chain_config(chain_key, config_path)
    except KeyError as e:
        raise ConfigError(f"Unknown chain: {chain_key}", details={"chain": chain_key}) from e

    return ChainSettings(
        chain_key=chain_key,
        chain_id=chain.get("chain_id"),
        rpc_urls=resolve_endpoint_urls(chain.get("rpc_endpoints") or []),
        provider=ProviderSettings.from_dict(chain.get("provider")),
        reader=ReaderSettings.from_dict(chain.get("reader")),
    )
