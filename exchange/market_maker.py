"""
Synthetic market maker.

A non-participant identity that keeps a standing bid and ask around the current
price of a listed company so that every market order finds a counterparty.
Its fills move prices but are never recorded in the ledger.

Quote model:
- spread = clamp(reference * spread_pct, ipo * min_spread_pct, ipo * max_spread_pct)
- bid = reference - spread / 2, ask = reference + spread / 2
- `liquidity` shares per side, re-posted once either side falls below `low_water`

Price pressure (applied after every matching pass that traded):
- ratio = resting buy shares / resting sell shares (or the inverse)
- move = reference * min(pressure_sensitivity * (ratio - 1), max_move_pct)
- upward when buys dominate, downward when sells dominate
- the reference never drops below ipo * price_floor_pct
"""

from dataclasses import dataclass

from omegaconf import DictConfig

from exchange.results import Quote


@dataclass
class MarketMakerParams:
    liquidity: int = 100
    low_water: int = 50
    spread_pct: float = 0.005
    min_spread_pct: float = 0.001
    max_spread_pct: float = 0.02
    pressure_sensitivity: float = 0.01
    max_move_pct: float = 0.005
    price_floor_pct: float = 0.5

    @classmethod
    def from_config(cls, config: DictConfig | None) -> "MarketMakerParams":
        if config is None:
            return cls()
        defaults = cls()
        return cls(
            liquidity=int(config.get("liquidity", defaults.liquidity)),
            low_water=int(config.get("low_water", defaults.low_water)),
            spread_pct=float(config.get("spread_pct", defaults.spread_pct)),
            min_spread_pct=float(config.get("min_spread_pct", defaults.min_spread_pct)),
            max_spread_pct=float(config.get("max_spread_pct", defaults.max_spread_pct)),
            pressure_sensitivity=float(
                config.get("pressure_sensitivity", defaults.pressure_sensitivity)
            ),
            max_move_pct=float(config.get("max_move_pct", defaults.max_move_pct)),
            price_floor_pct=float(config.get("price_floor_pct", defaults.price_floor_pct)),
        )


class MarketMaker:
    """
    Quote state for one company.

    Attributes:
        company_id: Company quoted
        ipo_price: Anchor for spread bounds and the price floor
        reference_price: Center of the current quote
        bid_price / ask_price: Current quote
    """

    def __init__(self, company_id: str, ipo_price: float, params: MarketMakerParams) -> None:
        if ipo_price <= 0:
            raise ValueError(f"ipo_price must be positive, got {ipo_price}")
        self.company_id = company_id
        self.ipo_price = ipo_price
        self.params = params
        self.min_spread = ipo_price * params.min_spread_pct
        self.max_spread = ipo_price * params.max_spread_pct
        self.reference_price = ipo_price
        self.bid_price = 0.0
        self.ask_price = 0.0
        self.requote(ipo_price)

    @property
    def price_floor(self) -> float:
        return self.ipo_price * self.params.price_floor_pct

    def spread_for(self, price: float) -> float:
        return max(self.min_spread, min(self.max_spread, price * self.params.spread_pct))

    def requote(self, reference_price: float) -> None:
        """Center the quote on `reference_price` (clamped to the floor)."""
        self.reference_price = max(reference_price, self.price_floor)
        half = self.spread_for(self.reference_price) / 2
        self.bid_price = self.reference_price - half
        self.ask_price = self.reference_price + half

    def pressure_adjustment(self, price: float, buy_shares: int, sell_shares: int) -> float:
        """
        Signed price move implied by resting supply and demand.

        Returns:
            Amount to add to `price` (0 when balanced)
        """
        params = self.params
        if buy_shares > sell_shares:
            ratio = buy_shares / max(sell_shares, 1)
            return price * min(params.pressure_sensitivity * (ratio - 1), params.max_move_pct)
        if sell_shares > buy_shares:
            ratio = sell_shares / max(buy_shares, 1)
            return -price * min(params.pressure_sensitivity * (ratio - 1), params.max_move_pct)
        return 0.0

    def recenter(self, last_price: float, buy_shares: int, sell_shares: int) -> float:
        """Requote around the last trade price nudged by book pressure."""
        self.requote(last_price + self.pressure_adjustment(last_price, buy_shares, sell_shares))
        return self.reference_price

    def needs_replenish(self, resting_bid_shares: int, resting_ask_shares: int) -> bool:
        low = self.params.low_water
        return resting_bid_shares < low or resting_ask_shares < low

    def quote(self, bid_shares: int, ask_shares: int) -> Quote:
        return Quote(
            bid_price=self.bid_price,
            ask_price=self.ask_price,
            bid_shares=bid_shares,
            ask_shares=ask_shares,
        )
