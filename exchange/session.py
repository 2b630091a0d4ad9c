"""
Game session orchestration.

Owns the participant and company registry and drives one game through its
phases:

    LOBBY -> IPO -> TRADING -> FINISHED

- LOBBY: humans join; the bot roster (presets + mandatory scavengers) is
  already registered and funded
- IPO: humans submit bids; `run_ipo` collects bot bids, clears every company
  and opens the order books
- TRADING: humans submit and cancel orders; `run_bot_trading_tick` lets every
  bot act once per company
- FINISHED: books closed, standings final

Phase timers and transport are external; every call here is synchronous.
"""

import itertools
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Literal, Optional

import numpy as np
import pandas as pd
from omegaconf import DictConfig
from pydantic import BaseModel, Field, ValidationError, field_validator

from bots.base import CompanyView, MarketView, sorted_ladder
from bots.factory import build_roster, oversubscription_margin
from bots.policy import decide_bid, decide_order
from bots.profile import BidStrategy
from bots.registry import build_table
from exchange.auction import AuctionEngine
from exchange.config import load_config
from exchange.event_logger import EventLogger
from exchange.ledger import Ledger
from exchange.models import Bid, Company, OrderKind, Participant, Side, Trade
from exchange.orderbook import OrderBook
from exchange.results import (
    AuctionResult,
    LedgerSummary,
    MarketData,
    OrderResult,
    Rejected,
    RejectReason,
)

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    LOBBY = "lobby"
    IPO = "ipo"
    TRADING = "trading"
    FINISHED = "finished"


class PhaseError(ValueError):
    """Operation attempted outside the phase that allows it."""


# =============================================================================
# REQUEST MODELS
# =============================================================================


class BidRequest(BaseModel):
    """A human IPO bid as received from the outside."""

    company_id: str = Field(min_length=1)
    shares: int = Field(gt=0, description="Shares requested")
    price: float = Field(gt=0, description="Maximum price per share")


class OrderRequest(BaseModel):
    """A human trading order as received from the outside."""

    company_id: str = Field(min_length=1)
    side: Literal["buy", "sell"]
    kind: Literal["limit", "market"] = "limit"
    shares: int = Field(gt=0)
    price: Optional[float] = Field(default=None, gt=0, validate_default=True)

    @field_validator("price")
    @classmethod
    def price_required_for_limit(cls, v, info):
        """Validate that price is provided for limit orders."""
        if info.data.get("kind") == "limit" and v is None:
            raise ValueError("price is required for limit orders")
        return v


def _rejection_from(error: ValidationError) -> Rejected:
    fields = {str(e["loc"][0]) for e in error.errors() if e["loc"]}
    reason = RejectReason.INVALID_QUANTITY if "shares" in fields else RejectReason.INVALID_PRICE
    if "company_id" in fields:
        reason = RejectReason.UNKNOWN_COMPANY
    return Rejected(reason, "; ".join(e["msg"] for e in error.errors()))


def _slug(name: str) -> str:
    return "-".join(name.lower().split())


# =============================================================================
# SESSION
# =============================================================================


class GameSession:
    """
    One game: registry, ledger, auction, order book and bot roster.

    Attributes:
        config: Full merged config
        phase: Current Phase
        companies: company_id -> Company, in listing order
        participants: participant_id -> Participant, in registration order
        ledger / auction / orderbook: Core components
        ipo_results: AuctionResult per company once the IPO has run
    """

    def __init__(
        self,
        config: DictConfig | None = None,
        clock: Callable[[], float] = time.time,
        events: EventLogger | None = None,
    ) -> None:
        self.config = config if config is not None else load_config()
        self.clock = clock
        settings = self.config.session
        bot_settings = self.config.bots

        self.rng = np.random.default_rng(settings.get("seed"))
        self.companies: dict[str, Company] = {}
        for name in settings.company_names:
            company = Company(id=_slug(name), name=name, shares=int(settings.shares_per_company))
            self.companies[company.id] = company
        self.participants: dict[str, Participant] = {}
        self.starting_cash = float(settings.starting_cash)

        self.ledger = Ledger(self.companies, self.config.ledger, clock)
        self.price_ladder = sorted_ladder(bot_settings.price_ladder)
        self.bot_table = build_table(int(bot_settings.scavenger_shares))
        for bot in build_roster(
            settings.bots,
            len(self.companies),
            int(bot_settings.min_scavengers),
            int(bot_settings.scavengers_per_company),
        ):
            self._register(bot)

        scavengers = [
            p.id
            for p in self.participants.values()
            if p.personality is not None and p.personality.bid_strategy is BidStrategy.SCAVENGER
        ]
        self.auction = AuctionEngine(
            self.ledger, self.companies, self.config.auction, liquidity_participants=scavengers
        )
        self.orderbook = OrderBook(
            self.ledger, self.companies, self.config.orderbook, self.config.market_maker, clock
        )

        self.events = events
        self._owns_events = False
        if self.events is None and self.config.events.get("enabled", False):
            self.events = EventLogger(Path(self.config.events.path))
            self._owns_events = True

        self.phase = Phase.LOBBY
        self.ipo_results: dict[str, AuctionResult] = {}
        self._human_bids: dict[str, list[Bid]] = {cid: [] for cid in self.companies}
        self._bid_sequence = itertools.count(1)
        self._human_ids = itertools.count(1)
        self._last_prices: dict[str, float] = {}
        self._ceos: dict[str, str | None] = {cid: None for cid in self.companies}

        margin = oversubscription_margin(
            list(self.participants.values()),
            int(settings.shares_per_company),
            int(bot_settings.scavenger_shares),
        )
        logger.info(
            f"Session created: {len(self.companies)} companies, {len(self.participants)} bots, "
            f"scavenger cover {margin:.1f}x"
        )

    # =========================================================================
    # LOBBY
    # =========================================================================

    def _register(self, participant: Participant) -> None:
        self.participants[participant.id] = participant
        self.ledger.initialize_participant(
            participant.id, participant.name, participant.is_human, self.starting_cash
        )

    def add_human(self, name: str, participant_id: str | None = None) -> Participant:
        """Register a human player with starting cash. Only allowed in the lobby."""
        self._require(Phase.LOBBY, "join")
        if participant_id is None:
            participant_id = f"human-{next(self._human_ids)}"
        existing = self.participants.get(participant_id)
        if existing is not None:
            return existing
        participant = Participant(id=participant_id, name=name, is_human=True)
        self._register(participant)
        logger.info(f"{name} joined as {participant_id}")
        return participant

    @property
    def humans(self) -> list[Participant]:
        return [p for p in self.participants.values() if p.is_human]

    @property
    def bots(self) -> list[Participant]:
        return [p for p in self.participants.values() if not p.is_human]

    # =========================================================================
    # PHASES
    # =========================================================================

    def _require(self, phase: Phase, action: str) -> None:
        if self.phase is not phase:
            raise PhaseError(f"cannot {action} during {self.phase.value}; requires {phase.value}")

    def _transition(self, to: Phase) -> None:
        previous = self.phase
        self.phase = to
        logger.info(f"Phase {previous.value} -> {to.value}")
        if self.events is not None:
            self.events.log_phase(self.clock(), to.value, previous.value)

    def start_ipo(self) -> None:
        self._require(Phase.LOBBY, "start the IPO")
        self._transition(Phase.IPO)

    def submit_ipo_bid(
        self, participant_id: str, company_id: str, shares: int, price: float
    ) -> Bid | Rejected:
        """
        Queue a human IPO bid for clearing.

        Bids are screened against the participant's cash minus everything
        they have already bid this IPO.
        """
        self._require(Phase.IPO, "bid")
        try:
            request = BidRequest(company_id=company_id, shares=shares, price=price)
        except ValidationError as e:
            return _rejection_from(e)

        participant = self.participants.get(participant_id)
        if participant is None:
            return Rejected(RejectReason.UNKNOWN_PARTICIPANT, f"Unknown participant {participant_id}")
        if request.company_id not in self.companies:
            return Rejected(RejectReason.UNKNOWN_COMPANY, f"Unknown company {request.company_id}")
        if request.price < self.auction.floor_price:
            return Rejected(
                RejectReason.BELOW_FLOOR,
                f"price {request.price:.2f} below floor {self.auction.floor_price:.2f}",
            )

        earlier = sorted(
            (b for bids in self._human_bids.values() for b in bids if b.participant_id == participant_id),
            key=lambda b: b.sequence,
        )
        left = self.ledger.cash(participant_id)
        for b in earlier:
            left -= b.shares * b.price
        cost = request.shares * request.price
        if cost > left:
            return Rejected(
                RejectReason.INSUFFICIENT_FUNDS,
                f"bid costs {cost:.2f}, uncommitted cash {left:.2f}",
            )

        bid = Bid(
            participant_id=participant_id,
            company_id=request.company_id,
            shares=request.shares,
            price=request.price,
            sequence=next(self._bid_sequence),
        )
        self._human_bids[request.company_id].append(bid)
        logger.debug(f"{participant.name} bid {bid.shares} {bid.company_id} @ ${bid.price:.2f}")
        return bid

    def collect_bot_bids(self) -> dict[str, list[Bid]]:
        """Ask every bot for a bid on every company, committing cash as it goes."""
        uncommitted: dict[str, float] = {}
        bids: dict[str, list[Bid]] = {cid: [] for cid in self.companies}
        for company in self.companies.values():
            view = CompanyView(
                company_id=company.id,
                name=company.name,
                shares=company.shares_available,
                floor_price=self.auction.floor_price,
                price_ladder=self.price_ladder,
            )
            for bot in self.bots:
                available = uncommitted.get(bot.id, self.ledger.cash(bot.id))
                holdings = self.ledger.get_total_shares(bot.id, company.id)
                intent = decide_bid(bot.personality, view, available, holdings, self.rng, self.bot_table)
                if intent is None:
                    continue
                uncommitted[bot.id] = available - intent.cost
                bids[company.id].append(
                    Bid(
                        participant_id=bot.id,
                        company_id=company.id,
                        shares=intent.shares,
                        price=intent.price,
                        sequence=next(self._bid_sequence),
                    )
                )
        return bids

    def run_ipo(self) -> dict[str, AuctionResult]:
        """
        Clear every company's IPO and open trading.

        Raises:
            AuctionInvariantViolation: A company was undersubscribed
        """
        self._require(Phase.IPO, "run the IPO")
        bot_bids = self.collect_bot_bids()
        all_bids = {cid: self._human_bids[cid] + bot_bids[cid] for cid in self.companies}

        self.ipo_results = self.auction.clear_all(all_bids)
        for company_id, result in self.ipo_results.items():
            if self.events is not None:
                for allocation in result.allocations:
                    self.events.log_allocation(self.clock(), company_id, allocation)
        self._sync_ceos()

        for company_id in self.companies:
            self.orderbook.open_company(company_id)
            self._last_prices[company_id] = self.companies[company_id].current_price
        self.orderbook.open_trading()
        self._transition(Phase.TRADING)
        return self.ipo_results

    # =========================================================================
    # TRADING
    # =========================================================================

    def submit_order(
        self,
        participant_id: str,
        company_id: str,
        side: str,
        shares: int,
        price: float | None = None,
        kind: str = "limit",
    ) -> OrderResult:
        """Validate and submit a human order; settlement is complete on return."""
        self._require(Phase.TRADING, "trade")
        try:
            request = OrderRequest(
                company_id=company_id, side=side, kind=kind, shares=shares, price=price
            )
        except ValidationError as e:
            return OrderResult(order_id=None, status="rejected", rejected=_rejection_from(e))
        return self._submit(
            participant_id,
            request.company_id,
            Side(request.side),
            request.shares,
            request.price,
            OrderKind(request.kind),
        )

    def _submit(
        self,
        participant_id: str,
        company_id: str,
        side: Side,
        shares: int,
        price: float | None,
        kind: OrderKind,
    ) -> OrderResult:
        result = self.orderbook.submit_order(participant_id, company_id, side, shares, price, kind)
        if result:
            self._record_trades(result.trades + result.knock_on_trades)
        return result

    def cancel_order(self, participant_id: str, order_id: str) -> bool:
        self._require(Phase.TRADING, "cancel")
        return self.orderbook.cancel_order(participant_id, order_id)

    def market_view(self, company_id: str) -> MarketView:
        company = self.companies[company_id]
        data = self.orderbook.get_market_data(company_id)
        return MarketView(
            company_id=company_id,
            current_price=company.current_price,
            ipo_price=company.ipo_clearing_price or company.current_price,
            previous_price=self._last_prices.get(company_id, company.current_price),
            shares_outstanding=company.shares,
            best_bid=data.best_bid if data is not None else None,
            best_ask=data.best_ask if data is not None else None,
            ceo_threshold=self.ledger.ceo_threshold,
        )

    def run_bot_trading_tick(self) -> list[OrderResult]:
        """
        Let every bot act once per company.

        Each bot's stale resting orders are withdrawn before it decides, so a
        bot never has more than one live order per company.
        """
        self._require(Phase.TRADING, "run a trading tick")
        results = []
        for bot in self.bots:
            for order in self.orderbook.open_orders(participant_id=bot.id):
                self.orderbook.cancel_order(bot.id, order.id)
            for company_id in self.companies:
                intent = decide_order(
                    bot.personality,
                    self.market_view(company_id),
                    self.ledger.cash(bot.id),
                    self.ledger.get_total_shares(bot.id, company_id),
                    self.rng,
                    self.bot_table,
                )
                if intent is None:
                    continue
                result = self._submit(
                    bot.id, intent.company_id, intent.side, intent.shares, intent.price, intent.kind
                )
                if not result:
                    logger.debug(f"{bot.name} order rejected: {result.rejected.message}")
                results.append(result)
        for company_id, company in self.companies.items():
            self._last_prices[company_id] = company.current_price
        return results

    def finish(self) -> pd.DataFrame:
        """Close trading and return final standings."""
        self._require(Phase.TRADING, "finish")
        self.orderbook.close_trading()
        self.ledger.revalue_all()
        self._transition(Phase.FINISHED)
        standings = self.standings()
        if self._owns_events and self.events is not None:
            self.events.close()
        return standings

    # =========================================================================
    # READ SIDE
    # =========================================================================

    def market_data(self, company_id: str) -> MarketData | None:
        return self.orderbook.get_market_data(company_id)

    def ledger_summary(self, participant_id: str) -> LedgerSummary | None:
        return self.ledger.get_ledger_summary(participant_id)

    def standings(self) -> pd.DataFrame:
        return self.ledger.standings()

    # =========================================================================
    # EVENTS
    # =========================================================================

    def _record_trades(self, trades: list[Trade]) -> None:
        if self.events is not None:
            for trade in trades:
                self.events.log_trade(trade)
        if trades:
            self._sync_ceos()

    def _sync_ceos(self) -> None:
        for company_id, company in self.companies.items():
            previous = self._ceos[company_id]
            current = company.ceo_participant_id
            if current == previous:
                continue
            self._ceos[company_id] = current
            if self.events is not None:
                self.events.log_ceo_change(self.clock(), company_id, current, previous)
