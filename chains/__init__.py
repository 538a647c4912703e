"""
chains - RPC access.

- providers.py: single-endpoint JSON-RPC client
- interfaces.py: ChainClient protocol
- fanout.py: parallel fan-out and result selection
- consensus.py: consensus block height
- multicall.py: Multicall3 encoding
- multinode.py: multi-endpoint facade
"""

from chains.interfaces import ChainClient
from chains.multinode import MultinodeProvider
from chains.providers import RPCProvider

__all__ = ["ChainClient", "MultinodeProvider", "RPCProvider"]
