"""
CEO strategy: concentrate on one or two companies and chase control.

IPO bids come from the top of the ladder with 60-90% of cash. During trading
the bot accumulates toward the controlling threshold and holds once it has it.
"""

import math

import numpy as np

from bots.base import BotPolicy, MarketView, OrderIntent, companies_to_target
from bots.profile import BidStrategy, Personality


class CEOPolicy(BotPolicy):
    strategy = BidStrategy.CEO

    def participation_probability(self, personality: Personality) -> float:
        return 1.0 / companies_to_target(personality.concentration, 1, 2, 2)

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
        target = math.ceil(market.ceo_threshold * market.shares_outstanding)
        if holdings >= target:
            return None
        # Only pursue control where a position already exists
        if holdings == 0:
            return None
        premium = rng.uniform(0.0, 0.05) * personality.bid_multiplier
        price = market.current_price * (1.0 + premium)
        shares = min(target - holdings, self.params.max_shares)
        return self.buy(market, shares, price, available_cash, "ceo_accumulate")
