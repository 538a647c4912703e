"""
Configuration loading utilities.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv


CONFIG_DIR = Path(__file__).parent

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def load_yaml(filename: str) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        filename: Name of file in config directory, or an absolute path

    Returns:
        Parsed YAML as dict
    """
    filepath = Path(filename)
    if not filepath.is_absolute():
        filepath = CONFIG_DIR / filename
    if not filepath.exists():
        raise FileNotFoundError(f"Config file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_chains(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load chains configuration."""
    if config_path is not None:
        return load_yaml(str(Path(config_path).resolve()))
    return load_yaml("chains.yaml")


def get_chain_config(chain_key: str, config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Get configuration for a specific chain.

    Args:
        chain_key: Chain identifier (e.g., 'bsc')

    Returns:
        Chain configuration dict
    """
    chains = load_chains(config_path)
    if chain_key not in chains:
        raise KeyError(f"Unknown chain: {chain_key}")
    return chains[chain_key]


def resolve_endpoint_urls(urls: List[str]) -> List[str]:
    """
    Resolve ${VAR} placeholders in endpoint URLs from the environment.

    .env is loaded first. URLs referencing an unset variable are dropped
    (e.g. a keyed endpoint when no API key is configured). Order is kept.
    """
    load_dotenv()

    resolved = []
    for url in urls:
        names = _PLACEHOLDER.findall(url)
        if any(not os.getenv(name) for name in names):
            continue
        resolved.append(_PLACEHOLDER.sub(lambda m: os.environ[m.group(1)], url))
    return resolved
