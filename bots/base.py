"""
Abstract base class for bot decision policies.

A policy is a pure function of (personality, observed state, cash, holdings,
rng) to an optional intent. Policies hold only their strategy parameters; all
randomness comes from the caller's numpy Generator so sessions are
reproducible from one seed.

Two decision points:
1. IPO: `decide_bid` returns a BidIntent for one company, or None to abstain
2. Trading: `decide_order` returns an OrderIntent for one company, or None
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from bots.profile import BidStrategy, Personality, StrategyParams
from exchange.models import OrderKind, Side

DEFAULT_PRICE_LADDER: tuple[float, ...] = (1.00, 1.25, 1.50, 1.75, 2.00, 2.25, 2.50, 2.75, 3.00)


@dataclass(frozen=True)
class CompanyView:
    """What a bot sees of a company during the IPO."""

    company_id: str
    name: str
    shares: int
    floor_price: float = 1.0
    price_ladder: tuple[float, ...] = DEFAULT_PRICE_LADDER


@dataclass(frozen=True)
class MarketView:
    """What a bot sees of a listed company during trading."""

    company_id: str
    current_price: float
    ipo_price: float
    previous_price: float
    shares_outstanding: int
    best_bid: float | None = None
    best_ask: float | None = None
    ceo_threshold: float = 0.35

    @property
    def trend(self) -> float:
        """Fractional price change since the previous observation."""
        if self.previous_price <= 0:
            return 0.0
        return (self.current_price - self.previous_price) / self.previous_price

    def ownership(self, holdings: int) -> float:
        return holdings / self.shares_outstanding if self.shares_outstanding else 0.0


@dataclass(frozen=True)
class BidIntent:
    company_id: str
    shares: int
    price: float

    @property
    def cost(self) -> float:
        return self.shares * self.price


@dataclass(frozen=True)
class OrderIntent:
    company_id: str
    side: Side
    shares: int
    price: float | None
    kind: OrderKind = OrderKind.LIMIT
    reason: str = ""


class BotPolicy(ABC):
    """
    Base class for the five bidding strategies.

    Subclasses define the participation rule and the trading heuristic; the
    ladder-window price pick and cash-fraction sizing are shared.

    Attributes:
        strategy: The BidStrategy this policy implements
        params: Sizing parameters
    """

    strategy: BidStrategy

    def __init__(self, params: StrategyParams) -> None:
        if params.min_shares > params.max_shares:
            raise ValueError(
                f"min_shares ({params.min_shares}) must not exceed max_shares ({params.max_shares})"
            )
        self.params = params

    # =========================================================================
    # IPO BIDDING
    # =========================================================================

    @abstractmethod
    def participation_probability(self, personality: Personality) -> float:
        """Chance of bidding on any one company."""

    def bid_price(self, company: CompanyView, rng: np.random.Generator) -> float:
        """Uniform pick from this strategy's window of the price ladder."""
        ladder = company.price_ladder
        start = min(self.params.ladder_start, len(ladder) - 1)
        window = ladder[start : start + self.params.ladder_width]
        return float(window[int(rng.integers(len(window)))])

    def size_bid(self, personality: Personality, cash: float, price: float) -> int:
        """Cash-fraction sizing clamped to [min_shares, max_shares], then to what cash covers."""
        capital = cash * self.params.cash_fraction(personality.risk_tolerance)
        shares = max(self.params.min_shares, min(whole_shares(capital, price), self.params.max_shares))
        affordable = whole_shares(cash, price)
        while affordable > 0 and affordable * price > cash:
            affordable -= 1
        return min(shares, affordable)

    def decide_bid(
        self,
        personality: Personality,
        company: CompanyView,
        available_cash: float,
        holdings: int,
        rng: np.random.Generator,
    ) -> BidIntent | None:
        """
        Decide whether and how to bid on one company's IPO.

        Args:
            personality: Bot profile
            company: Company being floated
            available_cash: Cash not yet committed to other bids this IPO
            holdings: Shares already held (0 before the first IPO)
            rng: Caller's random generator

        Returns:
            BidIntent, or None to abstain
        """
        if rng.random() >= self.participation_probability(personality):
            return None
        price = max(self.bid_price(company, rng), company.floor_price)
        shares = self.size_bid(personality, available_cash, price)
        if shares < 1:
            return None
        return BidIntent(company_id=company.company_id, shares=shares, price=price)

    # =========================================================================
    # TRADING
    # =========================================================================

    @abstractmethod
    def decide_order(
        self,
        personality: Personality,
        market: MarketView,
        available_cash: float,
        holdings: int,
        rng: np.random.Generator,
    ) -> OrderIntent | None:
        """Decide on at most one order for one company this tick."""

    @staticmethod
    def acts_this_tick(personality: Personality, rng: np.random.Generator) -> bool:
        return rng.random() < personality.trading_frequency

    @staticmethod
    def buy(
        market: MarketView, shares: int, price: float, cash: float, reason: str
    ) -> OrderIntent | None:
        """Limit buy shrunk to what `cash` covers; None below one share."""
        price = round(price, 2)
        if price <= 0:
            return None
        shares = min(shares, int(cash // price))
        if shares < 1:
            return None
        return OrderIntent(market.company_id, Side.BUY, shares, price, reason=reason)

    @staticmethod
    def sell(
        market: MarketView, shares: int, price: float, holdings: int, reason: str
    ) -> OrderIntent | None:
        """Limit sell capped at current holdings; None below one share."""
        price = round(price, 2)
        shares = min(shares, holdings)
        if shares < 1 or price <= 0:
            return None
        return OrderIntent(market.company_id, Side.SELL, shares, price, reason=reason)


def whole_shares(amount: float, price: float) -> int:
    """Shares `amount` buys at `price`, ignoring float noise below 1e-9 of a share."""
    return math.floor(round(amount / price, 9))


def companies_to_target(concentration: float, low: int, high: int, scale: int) -> int:
    """Number of companies a bot spreads over: clamp(ceil(scale * concentration), low, high)."""
    return max(low, min(high, math.ceil(scale * concentration)))


def sorted_ladder(prices: Sequence[float]) -> tuple[float, ...]:
    ladder = tuple(sorted(float(p) for p in prices))
    if not ladder:
        raise ValueError("price ladder must not be empty")
    return ladder
