"""
Bot personality profiles.

A Personality is fixed at bot creation and never mutated. Its `bid_strategy`
selects one of five closed strategies; the numeric traits weight sizing,
participation and trading heuristics inside that strategy.
"""

from dataclasses import dataclass
from enum import Enum


class BidStrategy(str, Enum):
    SCAVENGER = "scavenger"
    CEO = "ceo"
    LOW = "low"
    HIGH = "high"
    DEFAULT = "default"


@dataclass(frozen=True)
class Personality:
    """
    Immutable bot profile.

    Attributes:
        bid_strategy: Strategy dispatched by the policy table
        risk_tolerance: 0..1, larger means bigger cash fractions
        concentration: 0..1, larger means fewer companies
        bid_multiplier: Scales trading-phase premiums
        trading_frequency: 0..1, chance of acting on a trading tick
        trend_sensitivity: Weight of price trend in the trading signal
        rumor_sensitivity: Weight of the random rumour term
        archetype: Preset name this profile came from
    """

    bid_strategy: BidStrategy
    risk_tolerance: float
    concentration: float
    bid_multiplier: float = 1.0
    trading_frequency: float = 0.5
    trend_sensitivity: float = 0.4
    rumor_sensitivity: float = 0.3
    archetype: str = "custom"

    def __post_init__(self) -> None:
        object.__setattr__(self, "bid_strategy", BidStrategy(self.bid_strategy))
        for name in ("risk_tolerance", "concentration", "trading_frequency"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        if self.bid_multiplier <= 0:
            raise ValueError(f"bid_multiplier must be positive, got {self.bid_multiplier}")


@dataclass(frozen=True)
class StrategyParams:
    """Tunable IPO sizing parameters of one strategy."""

    ladder_start: int  # index into the price ladder
    ladder_width: int
    cash_base: float
    cash_risk_weight: float
    min_shares: int
    max_shares: int

    def cash_fraction(self, risk_tolerance: float) -> float:
        return self.cash_base + self.cash_risk_weight * risk_tolerance


# Archetypes: (strategy, risk, concentration, bid multiplier, trading frequency,
# trend sensitivity, rumour sensitivity)
PRESETS: dict[str, Personality] = {
    "aggressive": Personality(BidStrategy.HIGH, 0.9, 0.3, 1.2, 0.8, 0.6, 0.3, "aggressive"),
    "conservative": Personality(BidStrategy.LOW, 0.2, 0.7, 0.8, 0.3, 0.2, 0.3, "conservative"),
    "concentrated": Personality(BidStrategy.CEO, 0.6, 0.9, 1.1, 0.6, 0.4, 0.3, "concentrated"),
    "diversified": Personality(BidStrategy.DEFAULT, 0.5, 0.3, 0.9, 0.7, 0.1, 0.3, "diversified"),
    "value": Personality(BidStrategy.LOW, 0.4, 0.6, 0.85, 0.4, 0.4, 0.3, "value"),
    "momentum": Personality(BidStrategy.HIGH, 0.8, 0.4, 1.15, 0.9, 0.8, 0.6, "momentum"),
}

SCAVENGER = Personality(
    BidStrategy.SCAVENGER,
    risk_tolerance=0.9,
    concentration=1.0,
    bid_multiplier=0.4,
    trading_frequency=0.5,
    archetype="scavenger",
)


def get_preset(name: str) -> Personality:
    """Look up a preset archetype by name."""
    try:
        return PRESETS[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown personality preset: {name}") from None
