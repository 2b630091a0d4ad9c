"""
Domain objects for the lemonade stand exchange.

Participants and companies are registry objects created once per session.
Bids, orders, trades and purchase lots are the records that flow between the
auction, the order book and the ledger.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bots.profile import Personality

MARKET_MAKER_ID = "market_maker"


class Side(str, Enum):
    """Order side."""

    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> "Side":
        return Side.SELL if self is Side.BUY else Side.BUY


class OrderKind(str, Enum):
    """Market orders never rest; limit orders rest until filled or cancelled."""

    MARKET = "market"
    LIMIT = "limit"


@dataclass
class Participant:
    """
    Identity of a player (human or bot).

    Cash and holdings are owned by the Ledger; a Participant only carries what
    the lobby knows about the player.
    """

    id: str
    name: str
    is_human: bool = False
    personality: "Personality | None" = None


@dataclass
class Company:
    """
    A lemonade stand with a fixed pool of issued shares.

    Attributes:
        id: Stable company id
        name: Display name
        shares: Total issued shares (fixed)
        shares_allocated: Shares sold in the IPO so far (0..shares)
        ipo_clearing_price: Uniform IPO price, written exactly once
        current_price: Last traded price (IPO price until the first trade)
        ceo_participant_id: Current controlling owner, if any
        lock: Serializes auction clearing and matching for this company
    """

    id: str
    name: str
    shares: int = 1000
    shares_allocated: int = 0
    ipo_clearing_price: float | None = None
    current_price: float = 0.0
    ceo_participant_id: str | None = None
    lock: threading.RLock = field(
        default_factory=threading.RLock, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if self.shares <= 0:
            raise ValueError(f"shares must be positive, got {self.shares}")
        if not 0 <= self.shares_allocated <= self.shares:
            raise ValueError(
                f"shares_allocated ({self.shares_allocated}) must be within "
                f"0..{self.shares}"
            )

    @property
    def shares_available(self) -> int:
        return self.shares - self.shares_allocated

    @property
    def is_listed(self) -> bool:
        """True once the IPO has cleared."""
        return self.ipo_clearing_price is not None

    def set_ipo_price(self, price: float) -> None:
        """Record the IPO clearing price. Raises ValueError on a second write."""
        if self.ipo_clearing_price is not None:
            raise ValueError(
                f"IPO price for {self.id} already set to {self.ipo_clearing_price}"
            )
        self.ipo_clearing_price = price
        self.current_price = price


@dataclass
class Bid:
    """An IPO bid line. Multiple lines from one participant stay independent."""

    participant_id: str
    company_id: str
    shares: int
    price: float
    sequence: int = 0


@dataclass
class Order:
    """A trading order. `remaining` counts down as the order fills."""

    id: str
    participant_id: str
    company_id: str
    side: Side
    kind: OrderKind
    shares: int
    price: float
    timestamp: float
    sequence: int
    remaining: int = -1

    def __post_init__(self) -> None:
        if self.remaining < 0:
            self.remaining = self.shares

    @property
    def is_market_maker(self) -> bool:
        return self.participant_id == MARKET_MAKER_ID

    @property
    def filled(self) -> int:
        return self.shares - self.remaining


@dataclass(frozen=True)
class Trade:
    """A matched execution between a buyer and a seller."""

    id: str
    company_id: str
    buyer_id: str
    seller_id: str
    shares: int
    price: float
    timestamp: float
    buy_order_id: str | None = None
    sell_order_id: str | None = None

    @property
    def value(self) -> float:
        return self.shares * self.price


@dataclass
class PurchaseLot:
    """
    One purchase event in a FIFO position.

    `shares` is only ever decremented (partial consumption) or the lot is
    removed; it never grows.
    """

    shares: int
    price_per_share: float
    total_cost: float
    timestamp: float
    source: str = "trade"
