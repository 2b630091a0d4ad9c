"""
Scavenger strategy: structural IPO liquidity.

Scavengers bid on every company at the floor price for a fixed share count so
that total demand always covers the offer. During trading they act as patient
liquidity buyers near the current price, staying under an ownership cap so
they never contest a CEO seat.
"""

import numpy as np

from bots.base import BidIntent, BotPolicy, CompanyView, MarketView, OrderIntent
from bots.profile import BidStrategy, Personality

# Scavengers stay below the 35% CEO threshold
OWNERSHIP_CAP = 0.34


class ScavengerPolicy(BotPolicy):
    strategy = BidStrategy.SCAVENGER

    def participation_probability(self, personality: Personality) -> float:
        return 1.0

    def decide_bid(
        self,
        personality: Personality,
        company: CompanyView,
        available_cash: float,
        holdings: int,
        rng: np.random.Generator,
    ) -> BidIntent | None:
        price = company.floor_price
        shares = min(self.params.max_shares, int(available_cash // price))
        if shares < 1:
            return None
        return BidIntent(company_id=company.company_id, shares=shares, price=price)

    def decide_order(
        self,
        personality: Personality,
        market: MarketView,
        available_cash: float,
        holdings: int,
        rng: np.random.Generator,
    ) -> OrderIntent | None:
        if not self.acts_this_tick(personality, rng) or available_cash <= 100:
            return None
        shares = int(rng.integers(20, 121))
        room = int(OWNERSHIP_CAP * market.shares_outstanding) - holdings
        shares = min(shares, room)
        if shares < 1:
            return None
        price = market.current_price * rng.uniform(0.90, 1.00)
        return self.buy(market, shares, price, available_cash, "scavenger_deal")
