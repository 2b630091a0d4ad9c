"""
Bot decision policy entry points.

Stateless functions from a bot's personality and observed state to an
optional intent, dispatched through the strategy table. Randomness comes only
from the caller's numpy Generator.
"""

from typing import Mapping

import numpy as np

from bots.base import BidIntent, BotPolicy, CompanyView, MarketView, OrderIntent
from bots.profile import BidStrategy, Personality
from bots.registry import STRATEGY_TABLE


def decide_bid(
    personality: Personality,
    company: CompanyView,
    available_cash: float,
    holdings: int,
    rng: np.random.Generator,
    table: Mapping[BidStrategy, BotPolicy] = STRATEGY_TABLE,
) -> BidIntent | None:
    """
    IPO decision for one company.

    Args:
        personality: Bot profile
        company: Company being floated
        available_cash: Cash not yet committed to other bids this IPO
        holdings: Current shares of this company
        rng: Caller's random generator
        table: Strategy table (see bots.registry.build_table)

    Returns:
        BidIntent, or None to abstain
    """
    policy = table[personality.bid_strategy]
    return policy.decide_bid(personality, company, available_cash, holdings, rng)


def decide_order(
    personality: Personality,
    market: MarketView,
    available_cash: float,
    holdings: int,
    rng: np.random.Generator,
    table: Mapping[BidStrategy, BotPolicy] = STRATEGY_TABLE,
) -> OrderIntent | None:
    """Trading decision for one company this tick; None means hold."""
    policy = table[personality.bid_strategy]
    return policy.decide_order(personality, market, available_cash, holdings, rng)
