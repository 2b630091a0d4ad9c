"""
Default (diversified) strategy.

Mid-ladder IPO bids. Trading follows a blended signal of price trend and a
random rumour term; it acts only on strong signals.
"""

import numpy as np

from bots.base import BotPolicy, MarketView, OrderIntent, companies_to_target
from bots.profile import BidStrategy, Personality

SIGNAL_THRESHOLD = 0.3
RUMOR_RANGE = 0.2


class BalancedPolicy(BotPolicy):
    strategy = BidStrategy.DEFAULT

    def participation_probability(self, personality: Personality) -> float:
        spread = companies_to_target(personality.concentration, 1, 3, 3)
        return (0.6 + 0.2 * personality.risk_tolerance) / spread

    def signal(self, personality: Personality, market: MarketView, rng: np.random.Generator) -> float:
        rumor = rng.uniform(-RUMOR_RANGE, RUMOR_RANGE)
        return market.trend * personality.trend_sensitivity + rumor

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
        signal = self.signal(personality, market, rng)
        if signal > SIGNAL_THRESHOLD:
            shares = int(rng.integers(15, 55))
            price = market.current_price * rng.uniform(1.0, 1.05)
            return self.buy(market, shares, price, available_cash, "bullish")
        if signal < -SIGNAL_THRESHOLD and holdings > 0:
            shares = max(1, int(holdings * personality.risk_tolerance))
            price = market.current_price * rng.uniform(0.95, 1.0)
            return self.sell(market, shares, price, holdings, "bearish")
        return None
