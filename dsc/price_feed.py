"""
price_feed.py - Price feeds for collateral valuation

Classes:
- StaticPriceFeed: a settable USD price for one asset, reported at a fixed
  number of decimals (8 for every feed the engine accepts)

The engine reads a feed through the PriceFeed protocol in core.py; any
object with a `decimals` attribute and a `latest_price()` method works.
"""

from __future__ import annotations
from typing import List, Tuple

from .core import FEED_DECIMALS


class StaticPriceFeed:
    """
    Price feed with a manually updated answer.

    Each call to update_answer() starts a new round; the round history is
    kept for inspection.
    """

    def __init__(self, initial_answer: int, decimals: int = FEED_DECIMALS, description: str = ""):
        """
        Initialize with a starting price.

        Args:
            initial_answer: USD price scaled by 10**decimals (e.g., 2000 * 10**8)
            decimals: Scale of the answer
            description: Label such as "ETH / USD"
        """
        self.decimals = decimals
        self.description = description
        self.rounds: List[int] = []
        self.update_answer(initial_answer)

    @property
    def latest_answer(self) -> int:
        return self.rounds[-1]

    @property
    def round_id(self) -> int:
        return len(self.rounds)

    def latest_price(self) -> Tuple[int, int]:
        """Return (answer, decimals) of the latest round."""
        return self.latest_answer, self.decimals

    def update_answer(self, answer: int) -> None:
        """Publish a new price."""
        self.rounds.append(answer)

    def __repr__(self):
        label = self.description or "price"
        return f"StaticPriceFeed({label}={self.latest_answer}, decimals={self.decimals})"
