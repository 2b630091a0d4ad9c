"""
Continuous double-auction order book and matching engine.

One book per listed company, each a pair of sorted queues:
- bids: descending by price, then arrival
- asks: ascending by price, then arrival

Execution rules:
- Limit orders are inserted in price-time position, then a matching pass runs
  to fixpoint: while best bid >= best ask, trade min(remaining) at the
  midpoint (best_bid + best_ask) / 2
- Market orders walk the opposite queue best-first at each resting order's own
  price; the unfilled remainder is discarded, never queued
- Every trade settles synchronously in the ledger before the caller gets the
  result (buyer purchase, seller sale); the market maker side is not recorded
- After any trade the market maker is recentred on the last price (nudged by
  book pressure), re-posted, and matching runs again until nothing crosses

All operations on a company hold `company.lock`, so an order fully resolves
before the next one for that company is accepted.
"""

import bisect
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Mapping

from omegaconf import DictConfig

from exchange.errors import LedgerInvariantViolation
from exchange.ledger import Ledger
from exchange.market_maker import MarketMaker, MarketMakerParams
from exchange.models import MARKET_MAKER_ID, Company, Order, OrderKind, Side, Trade
from exchange.results import (
    BookLevel,
    MarketData,
    OrderResult,
    Rejected,
    RejectReason,
    summarize_order,
)

logger = logging.getLogger(__name__)


def _bid_key(order: Order) -> tuple[float, int]:
    return (-order.price, order.sequence)


def _ask_key(order: Order) -> tuple[float, int]:
    return (order.price, order.sequence)


@dataclass
class CompanyBook:
    """Resting orders and trade tape for one company."""

    company_id: str
    bids: list[Order] = field(default_factory=list)
    asks: list[Order] = field(default_factory=list)
    trades: list[Trade] = field(default_factory=list)
    market_maker: MarketMaker | None = None

    def queue(self, side: Side) -> list[Order]:
        return self.bids if side is Side.BUY else self.asks

    def insert(self, order: Order) -> None:
        if order.side is Side.BUY:
            bisect.insort(self.bids, order, key=_bid_key)
        else:
            bisect.insort(self.asks, order, key=_ask_key)

    def remove(self, order: Order) -> None:
        queue = self.queue(order.side)
        for i, resting in enumerate(queue):
            if resting.id == order.id:
                del queue[i]
                return

    def contains(self, order: Order) -> bool:
        return any(o.id == order.id for o in self.queue(order.side))

    def depth(self, side: Side) -> int:
        return sum(o.remaining for o in self.queue(side))

    def market_maker_depth(self, side: Side) -> int:
        return sum(o.remaining for o in self.queue(side) if o.is_market_maker)


class OrderBook:
    """
    Order books for every listed company plus the trading-window switch.

    Attributes:
        ledger: Settlement target
        companies: Company registry
        depth: Levels reported per side by get_market_data
        market_maker_enabled: Seed market maker quotes when a company opens
    """

    def __init__(
        self,
        ledger: Ledger,
        companies: Mapping[str, Company],
        config: DictConfig | None = None,
        market_maker_config: DictConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ledger = ledger
        self.companies = companies
        self.clock = clock
        self.depth: int = int(config.get("depth", 5)) if config is not None else 5
        self.market_maker_enabled: bool = (
            bool(market_maker_config.get("enabled", True))
            if market_maker_config is not None
            else True
        )
        self.market_maker_params = MarketMakerParams.from_config(market_maker_config)

        self._books: dict[str, CompanyBook] = {}
        self._orders: dict[str, Order] = {}
        self._order_ids = itertools.count(1)
        self._trade_ids = itertools.count(1)
        self._sequence = itertools.count(1)
        self._open = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def open_company(self, company_id: str, with_market_maker: bool | None = None) -> CompanyBook:
        """
        Create the book for a company whose IPO has cleared.

        Args:
            company_id: Listed company
            with_market_maker: Override the configured market maker switch

        Raises:
            KeyError: Unknown company
            ValueError: The company has no IPO price yet
        """
        company = self.companies[company_id]
        with company.lock:
            if company_id in self._books:
                return self._books[company_id]
            if not company.is_listed:
                raise ValueError(f"{company_id} cannot trade before its IPO clears")

            book = CompanyBook(company_id=company_id)
            self._books[company_id] = book
            use_mm = self.market_maker_enabled if with_market_maker is None else with_market_maker
            if use_mm:
                book.market_maker = MarketMaker(
                    company_id, company.current_price, self.market_maker_params
                )
                self._repost_market_maker(book)
            logger.info(f"Trading initialized for {company.name} at ${company.current_price:.2f}")
            return book

    def open_trading(self) -> None:
        self._open = True
        logger.info("Trading window opened")

    def close_trading(self) -> None:
        """Stop accepting orders. Resting orders stay in the books."""
        self._open = False
        logger.info("Trading window closed")

    @property
    def is_open(self) -> bool:
        return self._open

    # =========================================================================
    # ORDER ENTRY
    # =========================================================================

    def submit_order(
        self,
        participant_id: str,
        company_id: str,
        side: Side | str,
        shares: int,
        price: float | None = None,
        kind: OrderKind | str = OrderKind.LIMIT,
    ) -> OrderResult:
        """
        Submit a market or limit order and resolve it completely.

        Args:
            participant_id: Ledger participant
            company_id: Listed company
            side: "buy" or "sell"
            shares: Quantity (> 0)
            price: Limit price (required for limit orders, ignored for market)
            kind: "limit" (default) or "market"

        Returns:
            OrderResult; `rejected` is set (and the result is falsy) when the
            order failed validation, in which case nothing changed
        """
        side = Side(side)
        kind = OrderKind(kind)
        company = self.companies.get(company_id)
        if company is None:
            return self._reject(RejectReason.UNKNOWN_COMPANY, f"Unknown company {company_id}")

        with company.lock:
            book = self._books.get(company_id)
            rejection = self._validate(participant_id, book, side, shares, price, kind)
            if rejection is not None:
                logger.debug(f"Order rejected for {participant_id}: {rejection.message}")
                return OrderResult(order_id=None, status="rejected", rejected=rejection)
            assert book is not None

            order = Order(
                id=f"ord-{next(self._order_ids)}",
                participant_id=participant_id,
                company_id=company_id,
                side=side,
                kind=kind,
                shares=shares,
                price=float(price) if kind is OrderKind.LIMIT else 0.0,
                timestamp=self.clock(),
                sequence=next(self._sequence),
            )

            if kind is OrderKind.MARKET:
                trades = self._execute_market(book, order)
            else:
                book.insert(order)
                self._orders[order.id] = order
                trades = self._match(book)

            if trades:
                trades.extend(self._after_trades(book))

            own = [t for t in trades if order.id in (t.buy_order_id, t.sell_order_id)]
            result = summarize_order(order, own)
            result.knock_on_trades = [t for t in trades if t not in own]
            if kind is OrderKind.LIMIT and order.remaining > 0 and not book.contains(order):
                result.status = "cancelled"
            logger.debug(
                f"{participant_id} {kind.value} {side.value} {shares} {company_id}: "
                f"{result.status}, filled {result.filled_shares}"
            )
            return result

    def cancel_order(self, participant_id: str, order_id: str) -> bool:
        """Remove a resting order owned by `participant_id`. False if not found."""
        order = self._orders.get(order_id)
        if order is None or order.participant_id != participant_id:
            return False
        company = self.companies[order.company_id]
        with company.lock:
            book = self._books[order.company_id]
            if not book.contains(order):
                self._orders.pop(order_id, None)
                return False
            book.remove(order)
            self._orders.pop(order_id, None)
            logger.debug(f"{participant_id} cancelled {order_id}")
            return True

    def _validate(
        self,
        participant_id: str,
        book: CompanyBook | None,
        side: Side,
        shares: int,
        price: float | None,
        kind: OrderKind,
    ) -> Rejected | None:
        if not self._open:
            return Rejected(RejectReason.TRADING_CLOSED, "Trading window is closed")
        if book is None:
            return Rejected(RejectReason.TRADING_CLOSED, "Company is not open for trading")
        if participant_id == MARKET_MAKER_ID or not self.ledger.has_participant(participant_id):
            return Rejected(RejectReason.UNKNOWN_PARTICIPANT, f"Unknown participant {participant_id}")
        if not isinstance(shares, int) or shares <= 0:
            return Rejected(RejectReason.INVALID_QUANTITY, f"shares must be a positive integer, got {shares}")

        if kind is OrderKind.LIMIT:
            if price is None or price <= 0:
                return Rejected(RejectReason.INVALID_PRICE, f"limit price must be positive, got {price}")
            if side is Side.BUY and not self.ledger.can_afford(participant_id, shares * price):
                return Rejected(
                    RejectReason.INSUFFICIENT_FUNDS,
                    f"{shares} @ {price:.2f} exceeds cash {self.ledger.cash(participant_id):.2f}",
                )
        else:
            # An empty opposite side is not an error: the order fills nothing
            opposite = book.queue(side.opposite)
            if side is Side.BUY and opposite and not self.ledger.can_afford(participant_id, opposite[0].price):
                return Rejected(
                    RejectReason.INSUFFICIENT_FUNDS,
                    f"cannot afford one share at {opposite[0].price:.2f}",
                )

        if side is Side.SELL:
            held = self.ledger.get_total_shares(participant_id, book.company_id)
            if held < shares:
                return Rejected(RejectReason.INSUFFICIENT_SHARES, f"requested {shares}, holding {held}")
        return None

    @staticmethod
    def _reject(reason: RejectReason, message: str) -> OrderResult:
        return OrderResult(order_id=None, status="rejected", rejected=Rejected(reason, message))

    # =========================================================================
    # MATCHING
    # =========================================================================

    def _execute_market(self, book: CompanyBook, order: Order) -> list[Trade]:
        """Walk the opposite queue at resting prices; leftovers are dropped."""
        opposite = book.queue(order.side.opposite)
        trades: list[Trade] = []
        while order.remaining > 0 and opposite:
            resting = opposite[0]
            shares = min(order.remaining, resting.remaining)
            if order.side is Side.BUY:
                shares = self._affordable(order.participant_id, shares, resting.price)
                if shares == 0:
                    break
                trade = self._settle(book, order, resting, shares, resting.price)
            else:
                trade = self._settle(book, resting, order, shares, resting.price)
            if trade is not None:
                trades.append(trade)
        return trades

    def _affordable(self, participant_id: str, shares: int, price: float) -> int:
        cash = self.ledger.cash(participant_id)
        shares = min(shares, int(cash // price))
        while shares > 0 and shares * price > cash:
            shares -= 1
        return shares

    def _match(self, book: CompanyBook) -> list[Trade]:
        """One matching pass to fixpoint at midpoint prices."""
        trades: list[Trade] = []
        while book.bids and book.asks:
            best_bid = book.bids[0]
            best_ask = book.asks[0]
            if best_bid.price < best_ask.price:
                break
            if best_bid.is_market_maker and best_ask.is_market_maker:
                raise LedgerInvariantViolation(
                    f"market maker crossed itself in {book.company_id}"
                )
            shares = min(best_bid.remaining, best_ask.remaining)
            price = (best_bid.price + best_ask.price) / 2
            trade = self._settle(book, best_bid, best_ask, shares, price)
            if trade is not None:
                trades.append(trade)
        return trades

    def _settle(
        self, book: CompanyBook, buy: Order, sell: Order, shares: int, price: float
    ) -> Trade | None:
        """
        Record one fill in the ledger and on both orders.

        A resting order whose owner can no longer pay or deliver is cancelled
        and None is returned; the caller moves on to the next order.
        """
        cost = shares * price
        if not buy.is_market_maker and not self.ledger.can_afford(buy.participant_id, cost):
            self._drop_unsettleable(book, buy, f"cannot pay {cost:.2f}")
            return None
        if not sell.is_market_maker:
            held = self.ledger.get_total_shares(sell.participant_id, book.company_id)
            if held < shares:
                self._drop_unsettleable(book, sell, f"holds {held}, owes {shares}")
                return None

        if not buy.is_market_maker:
            receipt = self.ledger.record_purchase(
                buy.participant_id, book.company_id, shares, price, source="trade"
            )
            if not receipt:
                raise LedgerInvariantViolation(f"pre-checked purchase failed: {receipt}")
        if not sell.is_market_maker:
            receipt = self.ledger.record_sale(sell.participant_id, book.company_id, shares, price)
            if not receipt:
                raise LedgerInvariantViolation(f"pre-checked sale failed: {receipt}")

        for order in (buy, sell):
            order.remaining -= shares
            if order.remaining == 0 and order.kind is OrderKind.LIMIT:
                book.remove(order)
                self._orders.pop(order.id, None)

        trade = Trade(
            id=f"trd-{next(self._trade_ids)}",
            company_id=book.company_id,
            buyer_id=buy.participant_id,
            seller_id=sell.participant_id,
            shares=shares,
            price=price,
            timestamp=self.clock(),
            buy_order_id=buy.id,
            sell_order_id=sell.id,
        )
        book.trades.append(trade)
        self.companies[book.company_id].current_price = price
        return trade

    def _drop_unsettleable(self, book: CompanyBook, order: Order, why: str) -> None:
        if order.kind is OrderKind.MARKET:
            raise LedgerInvariantViolation(f"pre-checked market order {order.id} cannot settle: {why}")
        logger.warning(f"Cancelling {order.id} of {order.participant_id}: {why}")
        book.remove(order)
        self._orders.pop(order.id, None)

    def _after_trades(self, book: CompanyBook) -> list[Trade]:
        """Recenter and re-post the market maker, rematching until quiet."""
        knock_on: list[Trade] = []
        while book.market_maker is not None:
            company = self.companies[book.company_id]
            reference = book.market_maker.recenter(
                company.current_price, book.depth(Side.BUY), book.depth(Side.SELL)
            )
            self._repost_market_maker(book)
            logger.debug(
                f"Market maker {book.company_id}: ref ${reference:.3f}, "
                f"bid ${book.market_maker.bid_price:.3f} ask ${book.market_maker.ask_price:.3f}"
            )
            trades = self._match(book)
            if not trades:
                break
            knock_on.extend(trades)
        self.ledger.revalue_all()
        return knock_on

    def _repost_market_maker(self, book: CompanyBook) -> None:
        """Replace the market maker's orders at its current quote, topping up low sides."""
        mm = book.market_maker
        assert mm is not None
        liquidity = mm.params.liquidity
        low_water = mm.params.low_water
        sizes = {}
        for side in (Side.BUY, Side.SELL):
            resting = book.market_maker_depth(side)
            sizes[side] = liquidity if resting < low_water else resting
            for order in [o for o in book.queue(side) if o.is_market_maker]:
                book.remove(order)

        for side, price in ((Side.BUY, mm.bid_price), (Side.SELL, mm.ask_price)):
            book.insert(
                Order(
                    id=f"mm-{side.value}-{next(self._order_ids)}",
                    participant_id=MARKET_MAKER_ID,
                    company_id=book.company_id,
                    side=side,
                    kind=OrderKind.LIMIT,
                    shares=sizes[side],
                    price=price,
                    timestamp=self.clock(),
                    sequence=next(self._sequence),
                )
            )

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_market_data(self, company_id: str) -> MarketData | None:
        """Current price, top of book, market maker quote. None if not trading."""
        book = self._books.get(company_id)
        if book is None:
            return None
        company = self.companies[company_id]
        with company.lock:
            quote = None
            if book.market_maker is not None:
                quote = book.market_maker.quote(
                    book.market_maker_depth(Side.BUY), book.market_maker_depth(Side.SELL)
                )
            return MarketData(
                company_id=company_id,
                current_price=company.current_price,
                ipo_price=company.ipo_clearing_price,
                best_bid=book.bids[0].price if book.bids else None,
                best_ask=book.asks[0].price if book.asks else None,
                top_bids=self._levels(book.bids),
                top_asks=self._levels(book.asks),
                total_buy_shares=book.depth(Side.BUY),
                total_sell_shares=book.depth(Side.SELL),
                market_maker=quote,
                last_trade=book.trades[-1] if book.trades else None,
            )

    def _levels(self, queue: list[Order]) -> tuple[BookLevel, ...]:
        levels: list[BookLevel] = []
        for price, group in itertools.groupby(queue, key=lambda o: o.price):
            orders = list(group)
            levels.append(
                BookLevel(price=price, shares=sum(o.remaining for o in orders), order_count=len(orders))
            )
            if len(levels) == self.depth:
                break
        return tuple(levels)

    def open_orders(
        self, participant_id: str | None = None, company_id: str | None = None
    ) -> list[Order]:
        """Resting participant orders (market maker quotes excluded)."""
        return [
            o
            for o in self._orders.values()
            if (participant_id is None or o.participant_id == participant_id)
            and (company_id is None or o.company_id == company_id)
        ]

    def trade_history(self, company_id: str | None = None) -> list[Trade]:
        if company_id is not None:
            book = self._books.get(company_id)
            return list(book.trades) if book is not None else []
        trades = [t for book in self._books.values() for t in book.trades]
        return sorted(trades, key=lambda t: (t.timestamp, int(t.id.split("-")[1])))

    def listed_companies(self) -> list[str]:
        return list(self._books)
