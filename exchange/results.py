"""
Typed results returned by the ledger, auction engine and order book.

Every validation failure is a `Rejected` value, which is falsy, so callers can
write `if not result: ...`. Successful receipts are truthy dataclasses.
"""

from dataclasses import dataclass, field
from enum import Enum

from exchange.models import Bid, Order, OrderKind, PurchaseLot, Trade


class RejectReason(str, Enum):
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INSUFFICIENT_SHARES = "insufficient_shares"
    UNKNOWN_PARTICIPANT = "unknown_participant"
    UNKNOWN_COMPANY = "unknown_company"
    INVALID_QUANTITY = "invalid_quantity"
    INVALID_PRICE = "invalid_price"
    BELOW_FLOOR = "below_floor"
    TRADING_CLOSED = "trading_closed"


@dataclass(frozen=True)
class Rejected:
    """A declined request. Nothing was mutated."""

    reason: RejectReason
    message: str = ""

    def __bool__(self) -> bool:
        return False


# =============================================================================
# LEDGER RESULTS
# =============================================================================


@dataclass(frozen=True)
class PurchaseReceipt:
    participant_id: str
    company_id: str
    shares: int
    price_per_share: float
    total_cost: float
    cash_after: float


@dataclass(frozen=True)
class LotSale:
    """The slice of one FIFO lot consumed by a sale."""

    shares: int
    cost_per_share: float
    sale_price: float

    @property
    def cost_basis(self) -> float:
        return self.shares * self.cost_per_share

    @property
    def proceeds(self) -> float:
        return self.shares * self.sale_price

    @property
    def profit(self) -> float:
        return (self.sale_price - self.cost_per_share) * self.shares


@dataclass(frozen=True)
class SaleReceipt:
    participant_id: str
    company_id: str
    shares: int
    price_per_share: float
    total_proceeds: float
    total_cost_basis: float
    realized_profit: float
    cash_after: float
    lot_sales: tuple[LotSale, ...] = ()


@dataclass(frozen=True)
class CEORecord:
    company_id: str
    participant_id: str
    participant_name: str
    ownership: float


@dataclass(frozen=True)
class PositionSummary:
    company_id: str
    company_name: str
    shares: int
    cost_basis: float
    market_price: float
    market_value: float
    unrealized_pnl: float
    ownership: float
    lots: tuple[PurchaseLot, ...]


@dataclass(frozen=True)
class LedgerSummary:
    """Read-only snapshot of one participant's books."""

    participant_id: str
    participant_name: str
    is_human: bool
    cash: float
    positions: tuple[PositionSummary, ...]
    total_stock_value: float
    total_cost_basis: float
    net_worth: float
    realized_profit: float
    total_pnl: float
    is_ceo: bool
    ceo_company_id: str | None

    def holding(self, company_id: str) -> int:
        for position in self.positions:
            if position.company_id == company_id:
                return position.shares
        return 0


# =============================================================================
# AUCTION RESULTS
# =============================================================================


@dataclass(frozen=True)
class Allocation:
    participant_id: str
    shares: int
    price: float
    bid_price: float

    @property
    def cost(self) -> float:
        return self.shares * self.price


@dataclass
class AuctionResult:
    company_id: str
    clearing_price: float
    shares_offered: int
    total_bid_shares: int
    allocations: list[Allocation] = field(default_factory=list)
    rejected_bids: list[tuple[Bid, Rejected]] = field(default_factory=list)
    topped_up: bool = False

    @property
    def shares_allocated(self) -> int:
        return sum(a.shares for a in self.allocations)

    def allocated_to(self, participant_id: str) -> int:
        return sum(a.shares for a in self.allocations if a.participant_id == participant_id)


# =============================================================================
# ORDER BOOK RESULTS
# =============================================================================


@dataclass
class OrderResult:
    """
    Outcome of `OrderBook.submit_order`.

    Settlement has already happened by the time the caller sees this: every
    trade in `trades` is recorded in the ledger. `knock_on_trades` are fills
    between other resting orders triggered by the market maker requoting
    after this order traded. For market orders `remaining_shares` were
    discarded, not queued.
    """

    order_id: str | None
    status: str  # "filled", "partial", "resting", "cancelled", "rejected"
    trades: list[Trade] = field(default_factory=list)
    filled_shares: int = 0
    remaining_shares: int = 0
    rejected: Rejected | None = None
    knock_on_trades: list[Trade] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.rejected is None

    @property
    def average_price(self) -> float | None:
        if not self.filled_shares:
            return None
        return sum(t.value for t in self.trades) / self.filled_shares


@dataclass(frozen=True)
class Quote:
    bid_price: float
    ask_price: float
    bid_shares: int
    ask_shares: int

    @property
    def spread(self) -> float:
        return self.ask_price - self.bid_price


@dataclass(frozen=True)
class BookLevel:
    price: float
    shares: int
    order_count: int


@dataclass(frozen=True)
class MarketData:
    company_id: str
    current_price: float
    ipo_price: float | None
    best_bid: float | None
    best_ask: float | None
    top_bids: tuple[BookLevel, ...]
    top_asks: tuple[BookLevel, ...]
    total_buy_shares: int
    total_sell_shares: int
    market_maker: Quote | None
    last_trade: Trade | None

    @property
    def spread(self) -> float | None:
        if self.best_bid is None or self.best_ask is None:
            return None
        return self.best_ask - self.best_bid


def summarize_order(order: Order, trades: list[Trade]) -> OrderResult:
    """Build an OrderResult from an order's final state and its fills."""
    filled = sum(t.shares for t in trades)
    if order.remaining == 0:
        status = "filled"
    elif order.kind is OrderKind.MARKET:
        status = "partial" if filled else "cancelled"
    else:
        status = "partial" if filled else "resting"
    return OrderResult(
        order_id=order.id,
        status=status,
        trades=list(trades),
        filled_shares=filled,
        remaining_shares=order.remaining,
    )
