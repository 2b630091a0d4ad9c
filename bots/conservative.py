"""
Low (conservative/value) strategy.

IPO bids from the bottom of the ladder with a small slice of cash. In trading
it buys only below the IPO price and takes profit once the price is 15% above it.
"""

import numpy as np

from bots.base import BotPolicy, MarketView, OrderIntent, companies_to_target
from bots.profile import BidStrategy, Personality

TAKE_PROFIT = 0.15


class ConservativePolicy(BotPolicy):
    strategy = BidStrategy.LOW

    def participation_probability(self, personality: Personality) -> float:
        spread = companies_to_target(personality.concentration, 1, 3, 3)
        return (0.4 + 0.2 * personality.risk_tolerance) / spread

    def decide_order(
        self,
        personality: Personality,
        market: MarketView,
        available_cash: float,
        holdings: int,
        rng: np.random.Generator,
    ) -> OrderIntent | None:
        if not self.acts_this_tick(personality, rng):
            return None
        if holdings > 0 and market.current_price >= market.ipo_price * (1 + TAKE_PROFIT):
            shares = max(1, int(holdings * (0.5 + 0.5 * personality.risk_tolerance)))
            return self.sell(market, shares, market.current_price, holdings, "take_profit")
        if market.current_price < market.ipo_price and available_cash > 200:
            shares = int(rng.integers(10, 41))
            return self.buy(market, shares, market.current_price * 1.05, available_cash, "value_buy")
        return None
