"""
chains/consensus.py - Consensus chain height from many observations.

Median-based outlier filtering, then the most advanced non-outlier height,
floored by everything returned before (a ratchet).

Example (window=5):
    [811995, 812000, 812001, 812002, 812050]
    median 812001 -> kept {812000, 812001, 812002} -> 812002
"""

from typing import Iterable, Optional

from core.constants import DEFAULT_CONSENSUS_WINDOW
from core.exceptions import AllNodesFailedError, ConfigError


def pick_consensus_height(observations: Iterable[int], window: int) -> Optional[int]:
    """
    Select a trusted height from raw observations, without the ratchet.

    Even-sized inputs use the lower of the two middle values as median.

    Returns:
        Highest observation within [median - window, median + window],
        or None if there are no observations
    """
    ordered = sorted(observations)
    if not ordered:
        return None

    mid = len(ordered) // 2
    median = ordered[mid] if len(ordered) % 2 == 1 else ordered[mid - 1]

    in_window = [n for n in ordered if median - window <= n <= median + window]
    pool = in_window or ordered
    return pool[-1]


class ConsensusHeightSelector:
    """
    Monotonic consensus height.

    select() never returns a value lower than any value it returned before.
    """

    def __init__(self, window: int = DEFAULT_CONSENSUS_WINDOW):
        if window < 0:
            raise ConfigError("Consensus window must be >= 0", details={"window": window})
        self.window = window
        self._last_height = 0

    @property
    def last_height(self) -> int:
        """Highest height returned so far (0 before the first selection)."""
        return self._last_height

    def select(self, observations: Iterable[int]) -> int:
        """
        Reduce successful observations to one height and advance the ratchet.

        Raises:
            AllNodesFailedError: If observations is empty
        """
        picked = pick_consensus_height(observations, self.window)
        if picked is None:
            raise AllNodesFailedError("get_block_number")

        self._last_height = max(picked, self._last_height)
        return self._last_height
