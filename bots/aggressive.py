"""
High (aggressive/momentum) strategy.

IPO bids from the upper-middle of the ladder spread across several companies.
In trading it chases positive trends at a premium and dumps on a falling trend.
"""

import numpy as np

from bots.base import BotPolicy, MarketView, OrderIntent, companies_to_target
from bots.profile import BidStrategy, Personality

SELL_TREND = -0.05


class AggressivePolicy(BotPolicy):
    strategy = BidStrategy.HIGH

    def participation_probability(self, personality: Personality) -> float:
        spread = companies_to_target(1.0 - personality.concentration, 2, 4, 4)
        return (0.7 + 0.2 * personality.risk_tolerance) / spread

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
        trend = market.trend
        if trend < SELL_TREND and holdings > 0:
            shares = max(1, holdings // 2)
            return self.sell(market, shares, market.current_price * 0.98, holdings, "momentum_exit")
        if trend >= 0 and available_cash > 100:
            premium = rng.uniform(0.0, 0.05) * personality.bid_multiplier
            shares = int(rng.integers(10, 61))
            price = market.current_price * (1.0 + premium)
            return self.buy(market, shares, price, available_cash, "momentum_buy")
        return None
