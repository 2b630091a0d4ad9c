"""
Closed strategy table.

Maps every BidStrategy to its policy instance and sizing parameters. Dispatch
goes through this table only; there is no string matching on strategy names
elsewhere.
"""

import logging
from dataclasses import replace

from bots.aggressive import AggressivePolicy
from bots.balanced import BalancedPolicy
from bots.base import BotPolicy
from bots.ceo import CEOPolicy
from bots.conservative import ConservativePolicy
from bots.profile import BidStrategy, StrategyParams
from bots.scavenger import ScavengerPolicy

logger = logging.getLogger(__name__)

# Ladder windows index the default ladder $1.00..$3.00 in $0.25 steps
STRATEGY_PARAMS: dict[BidStrategy, StrategyParams] = {
    BidStrategy.SCAVENGER: StrategyParams(0, 1, 0.0, 0.0, 250, 250),  # floor, fixed 250
    BidStrategy.CEO: StrategyParams(6, 3, 0.6, 0.3, 200, 800),  # $2.50-$3.00
    BidStrategy.LOW: StrategyParams(0, 3, 0.2, 0.2, 50, 300),  # $1.00-$1.50
    BidStrategy.HIGH: StrategyParams(4, 3, 0.4, 0.3, 100, 600),  # $2.00-$2.50
    BidStrategy.DEFAULT: StrategyParams(2, 3, 0.3, 0.2, 75, 400),  # $1.50-$2.00
}

_POLICY_CLASSES: dict[BidStrategy, type[BotPolicy]] = {
    BidStrategy.SCAVENGER: ScavengerPolicy,
    BidStrategy.CEO: CEOPolicy,
    BidStrategy.LOW: ConservativePolicy,
    BidStrategy.HIGH: AggressivePolicy,
    BidStrategy.DEFAULT: BalancedPolicy,
}

STRATEGY_TABLE: dict[BidStrategy, BotPolicy] = {
    strategy: cls(STRATEGY_PARAMS[strategy]) for strategy, cls in _POLICY_CLASSES.items()
}


def build_policy(strategy: BidStrategy | str, params: StrategyParams | None = None) -> BotPolicy:
    """Fresh policy instance, optionally with non-default parameters."""
    strategy = BidStrategy(strategy)
    return _POLICY_CLASSES[strategy](params or STRATEGY_PARAMS[strategy])


def build_table(scavenger_shares: int | None = None) -> dict[BidStrategy, BotPolicy]:
    """Strategy table with the scavenger bid size overridden."""
    table = dict(STRATEGY_TABLE)
    if scavenger_shares is not None:
        params = replace(
            STRATEGY_PARAMS[BidStrategy.SCAVENGER],
            min_shares=scavenger_shares,
            max_shares=scavenger_shares,
        )
        table[BidStrategy.SCAVENGER] = build_policy(BidStrategy.SCAVENGER, params)
    return table


def get_policy(strategy: BidStrategy | str) -> BotPolicy:
    """Policy for a strategy; raises ValueError for unknown names."""
    try:
        return STRATEGY_TABLE[BidStrategy(strategy)]
    except ValueError:
        logger.error(f"Unknown bid strategy requested: '{strategy}'")
        raise ValueError(f"Unknown strategy: {strategy}") from None


def available_strategies() -> list[str]:
    """Names of every registered strategy."""
    return [s.value for s in STRATEGY_TABLE]
