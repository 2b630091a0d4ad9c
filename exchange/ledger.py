"""
FIFO ledger for the lemonade stand exchange.

The ledger is the single source of truth for every participant's cash and
share lots. It enforces the two user-facing validation rules (no purchase
beyond available cash, no sale beyond held shares) atomically, values holdings
at live market prices, and derives CEO status from ownership.

Accounting rules:
- One PurchaseLot per purchase event, appended in time order
- Sales consume lots oldest-first; realized profit per slice is
  (sale_price - lot.price_per_share) * shares_consumed
- Net worth = cash + sum(holding * company.current_price)
- CEO: ownership >= threshold of issued shares, one CEO per company and (by
  default) one company per CEO
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Mapping

import pandas as pd
from omegaconf import DictConfig

from exchange.errors import LedgerInvariantViolation
from exchange.models import Company, PurchaseLot
from exchange.results import (
    CEORecord,
    LedgerSummary,
    LotSale,
    PositionSummary,
    PurchaseReceipt,
    Rejected,
    RejectReason,
    SaleReceipt,
)

logger = logging.getLogger(__name__)

# Tolerance for float comparisons in audit()
_EPSILON = 1e-9


@dataclass
class LedgerEntry:
    """Mutable books of one participant. Only the Ledger touches these."""

    participant_id: str
    name: str
    is_human: bool
    starting_cash: float
    cash: float
    positions: dict[str, list[PurchaseLot]] = field(default_factory=dict)
    total_net_worth: float = 0.0
    realized_profit: float = 0.0
    is_ceo: bool = False
    ceo_company_id: str | None = None

    def holding(self, company_id: str) -> int:
        return sum(lot.shares for lot in self.positions.get(company_id, ()))


class Ledger:
    """
    Cash and share-lot accounting for every participant in a session.

    Attributes:
        companies: Company registry (shared with the auction and order book)
        ceo_threshold: Fraction of issued shares that makes a CEO
        one_ceo_per_participant: Forbid holding CEO of two companies at once
    """

    def __init__(
        self,
        companies: Mapping[str, Company],
        config: DictConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.companies = companies
        self.clock = clock
        self.ceo_threshold: float = 0.35
        self.one_ceo_per_participant: bool = True
        if config is not None:
            self.ceo_threshold = float(config.get("ceo_threshold", 0.35))
            self.one_ceo_per_participant = bool(
                config.get("one_ceo_per_participant", True)
            )

        self._entries: dict[str, LedgerEntry] = {}
        self._ceos: dict[str, CEORecord] = {}
        self._lock = threading.RLock()

    # =========================================================================
    # PARTICIPANTS
    # =========================================================================

    def initialize_participant(
        self,
        participant_id: str,
        name: str,
        is_human: bool = False,
        starting_cash: float = 1000.0,
    ) -> LedgerEntry:
        """
        Create a ledger entry funded with `starting_cash`.

        Idempotent: an existing entry is returned untouched, so a live
        participant's balance is never reset.
        """
        with self._lock:
            existing = self._entries.get(participant_id)
            if existing is not None:
                logger.debug(
                    f"Ledger already exists for {existing.name} ({participant_id}), "
                    "preserving balance"
                )
                return existing
            if starting_cash < 0:
                raise ValueError(f"starting_cash must be >= 0, got {starting_cash}")

            entry = LedgerEntry(
                participant_id=participant_id,
                name=name,
                is_human=is_human,
                starting_cash=starting_cash,
                cash=starting_cash,
                total_net_worth=starting_cash,
            )
            self._entries[participant_id] = entry
            logger.debug(f"Ledger initialized for {name} ({participant_id}) with ${starting_cash:.2f}")
            return entry

    def has_participant(self, participant_id: str) -> bool:
        return participant_id in self._entries

    def participant_ids(self) -> list[str]:
        return list(self._entries)

    def reset(self) -> None:
        """Drop every entry and CEO record (fresh game)."""
        with self._lock:
            self._entries.clear()
            self._ceos.clear()
            for company in self.companies.values():
                company.ceo_participant_id = None
            logger.info("All ledger data cleared")

    # =========================================================================
    # SETTLEMENT
    # =========================================================================

    def record_purchase(
        self,
        participant_id: str,
        company_id: str,
        shares: int,
        price_per_share: float,
        source: str = "trade",
    ) -> PurchaseReceipt | Rejected:
        """
        Buy `shares` at `price_per_share`.

        Rejected with no side effects if the participant or company is unknown,
        the quantity/price is not positive, or the cost exceeds cash.

        Returns:
            PurchaseReceipt on success, Rejected otherwise
        """
        with self._lock:
            entry = self._entries.get(participant_id)
            if entry is None:
                return Rejected(RejectReason.UNKNOWN_PARTICIPANT, f"No ledger for {participant_id}")
            if company_id not in self.companies:
                return Rejected(RejectReason.UNKNOWN_COMPANY, f"Unknown company {company_id}")
            if shares <= 0:
                return Rejected(RejectReason.INVALID_QUANTITY, f"shares must be positive, got {shares}")
            if price_per_share <= 0:
                return Rejected(RejectReason.INVALID_PRICE, f"price must be positive, got {price_per_share}")

            total_cost = shares * price_per_share
            if total_cost > entry.cash:
                logger.debug(
                    f"Blocked purchase: {entry.name} cannot afford ${total_cost:.2f} "
                    f"(has ${entry.cash:.2f})"
                )
                return Rejected(
                    RejectReason.INSUFFICIENT_FUNDS,
                    f"cost {total_cost:.2f} exceeds cash {entry.cash:.2f}",
                )

            entry.cash -= total_cost
            entry.positions.setdefault(company_id, []).append(
                PurchaseLot(
                    shares=shares,
                    price_per_share=price_per_share,
                    total_cost=total_cost,
                    timestamp=self.clock(),
                    source=source,
                )
            )
            self._after_settlement(entry, company_id)

            logger.debug(
                f"{entry.name} bought {shares} {company_id} @ ${price_per_share:.3f} "
                f"(cash now ${entry.cash:.2f})"
            )
            return PurchaseReceipt(
                participant_id=participant_id,
                company_id=company_id,
                shares=shares,
                price_per_share=price_per_share,
                total_cost=total_cost,
                cash_after=entry.cash,
            )

    def record_sale(
        self,
        participant_id: str,
        company_id: str,
        shares: int,
        price_per_share: float,
    ) -> SaleReceipt | Rejected:
        """
        Sell `shares` at `price_per_share`, consuming lots oldest-first.

        Rejected with no side effects if the request exceeds the FIFO-summed
        holding (or ids/quantities are invalid).

        Returns:
            SaleReceipt with proceeds, cost basis, realized profit and the
            per-lot breakdown, or Rejected
        """
        with self._lock:
            entry = self._entries.get(participant_id)
            if entry is None:
                return Rejected(RejectReason.UNKNOWN_PARTICIPANT, f"No ledger for {participant_id}")
            if company_id not in self.companies:
                return Rejected(RejectReason.UNKNOWN_COMPANY, f"Unknown company {company_id}")
            if shares <= 0:
                return Rejected(RejectReason.INVALID_QUANTITY, f"shares must be positive, got {shares}")
            if price_per_share <= 0:
                return Rejected(RejectReason.INVALID_PRICE, f"price must be positive, got {price_per_share}")

            held = entry.holding(company_id)
            if shares > held:
                return Rejected(
                    RejectReason.INSUFFICIENT_SHARES,
                    f"requested {shares}, holding {held}",
                )

            lots = entry.positions[company_id]
            to_sell = shares
            lot_sales: list[LotSale] = []
            while to_sell > 0:
                lot = lots[0]
                consumed = min(lot.shares, to_sell)
                lot_sales.append(
                    LotSale(
                        shares=consumed,
                        cost_per_share=lot.price_per_share,
                        sale_price=price_per_share,
                    )
                )
                if consumed == lot.shares:
                    lots.pop(0)
                else:
                    lot.shares -= consumed
                    lot.total_cost = lot.shares * lot.price_per_share
                to_sell -= consumed
            if not lots:
                del entry.positions[company_id]

            proceeds = shares * price_per_share
            cost_basis = sum(s.cost_basis for s in lot_sales)
            profit = sum(s.profit for s in lot_sales)
            entry.cash += proceeds
            entry.realized_profit += profit
            self._after_settlement(entry, company_id)

            logger.debug(
                f"{entry.name} sold {shares} {company_id} @ ${price_per_share:.3f} "
                f"for ${proceeds:.2f} (profit ${profit:.2f})"
            )
            return SaleReceipt(
                participant_id=participant_id,
                company_id=company_id,
                shares=shares,
                price_per_share=price_per_share,
                total_proceeds=proceeds,
                total_cost_basis=cost_basis,
                realized_profit=profit,
                cash_after=entry.cash,
                lot_sales=tuple(lot_sales),
            )

    def _after_settlement(self, entry: LedgerEntry, company_id: str) -> None:
        if entry.cash < 0:
            logger.error(f"Cash went negative for {entry.name}: {entry.cash}")
            raise LedgerInvariantViolation(
                f"negative cash for {entry.participant_id}: {entry.cash}"
            )
        entry.total_net_worth = self._compute_net_worth(entry)
        self._check_ceo(entry, company_id)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def cash(self, participant_id: str) -> float:
        entry = self._entries.get(participant_id)
        return entry.cash if entry is not None else 0.0

    def can_afford(self, participant_id: str, cost: float) -> bool:
        entry = self._entries.get(participant_id)
        return entry is not None and cost <= entry.cash

    def get_total_shares(self, participant_id: str, company_id: str) -> int:
        """Sum of lot shares for the pair; 0 if none."""
        entry = self._entries.get(participant_id)
        if entry is None:
            return 0
        return entry.holding(company_id)

    def lots(self, participant_id: str, company_id: str) -> tuple[PurchaseLot, ...]:
        """Copies of the participant's lots for a company, oldest first."""
        entry = self._entries.get(participant_id)
        if entry is None:
            return ()
        return tuple(replace(lot) for lot in entry.positions.get(company_id, ()))

    def holders(self, company_id: str) -> dict[str, int]:
        """Participant id -> shares held, for everyone holding the company."""
        result = {}
        for participant_id, entry in self._entries.items():
            held = entry.holding(company_id)
            if held > 0:
                result[participant_id] = held
        return result

    def ownership(self, participant_id: str, company_id: str) -> float:
        """Fraction (0..1) of the company's issued shares held."""
        company = self.companies.get(company_id)
        if company is None:
            return 0.0
        return self.get_total_shares(participant_id, company_id) / company.shares

    def net_worth(self, participant_id: str) -> float:
        """Cash plus holdings at live market prices (not purchase prices)."""
        entry = self._entries.get(participant_id)
        if entry is None:
            return 0.0
        return self._compute_net_worth(entry)

    def _market_price(self, company_id: str) -> float:
        company = self.companies.get(company_id)
        return company.current_price if company is not None else 0.0

    def _compute_net_worth(self, entry: LedgerEntry) -> float:
        stock_value = 0.0
        for company_id in entry.positions:
            stock_value += entry.holding(company_id) * self._market_price(company_id)
        return entry.cash + stock_value

    def revalue_all(self) -> None:
        """Refresh stored net worth for everyone after prices moved."""
        with self._lock:
            for entry in self._entries.values():
                entry.total_net_worth = self._compute_net_worth(entry)

    # =========================================================================
    # CEO STATUS
    # =========================================================================

    def _check_ceo(self, entry: LedgerEntry, company_id: str) -> None:
        """
        Re-evaluate CEO status of one participant for one company.

        Conflicts (company already has a CEO, participant already CEO elsewhere)
        are ignored without error.
        """
        company = self.companies[company_id]
        ownership = entry.holding(company_id) / company.shares
        current = self._ceos.get(company_id)

        if current is not None and current.participant_id == entry.participant_id:
            if ownership < self.ceo_threshold:
                self._clear_ceo(company_id, ownership)
                self._promote_successor(company_id)
            else:
                self._ceos[company_id] = replace(current, ownership=ownership)
            return

        if ownership < self.ceo_threshold:
            return
        if current is not None:
            logger.debug(
                f"{entry.name} holds {ownership:.1%} of {company_id} but "
                f"{current.participant_name} is already CEO"
            )
            return
        if self.one_ceo_per_participant and entry.is_ceo:
            logger.debug(
                f"{entry.name} holds {ownership:.1%} of {company_id} but is "
                f"already CEO of {entry.ceo_company_id}"
            )
            return
        self._assign_ceo(entry, company_id, ownership)

    def _assign_ceo(self, entry: LedgerEntry, company_id: str, ownership: float) -> None:
        entry.is_ceo = True
        if entry.ceo_company_id is None:
            entry.ceo_company_id = company_id
        self._ceos[company_id] = CEORecord(
            company_id=company_id,
            participant_id=entry.participant_id,
            participant_name=entry.name,
            ownership=ownership,
        )
        self.companies[company_id].ceo_participant_id = entry.participant_id
        logger.info(f"{entry.name} is now CEO of {company_id} ({ownership:.1%} ownership)")

    def _clear_ceo(self, company_id: str, ownership: float) -> None:
        record = self._ceos.pop(company_id)
        entry = self._entries[record.participant_id]
        remaining = [cid for cid, r in self._ceos.items() if r.participant_id == entry.participant_id]
        entry.is_ceo = bool(remaining)
        entry.ceo_company_id = remaining[0] if remaining else None
        self.companies[company_id].ceo_participant_id = None
        logger.info(
            f"{entry.name} lost CEO status of {company_id} ({ownership:.1%} ownership)"
        )

    def _promote_successor(self, company_id: str) -> None:
        """Hand a vacated CEO seat to the largest eligible holder, if any."""
        company = self.companies[company_id]
        candidates = sorted(
            self.holders(company_id).items(), key=lambda item: item[1], reverse=True
        )
        for participant_id, held in candidates:
            entry = self._entries[participant_id]
            ownership = held / company.shares
            if ownership < self.ceo_threshold:
                return
            if self.one_ceo_per_participant and entry.is_ceo:
                continue
            self._assign_ceo(entry, company_id, ownership)
            return

    def evaluate_ceo(self, company_id: str) -> CEORecord | None:
        """
        Final CEO pass over every holder of a company.

        Used after IPO allocation, where the threshold depends on cumulative
        holdings. Largest holders are considered first.
        """
        with self._lock:
            if company_id not in self._ceos:
                self._promote_successor(company_id)
            return self._ceos.get(company_id)

    def get_ceo(self, company_id: str) -> CEORecord | None:
        return self._ceos.get(company_id)

    def get_all_ceos(self) -> list[CEORecord]:
        return list(self._ceos.values())

    # =========================================================================
    # REPORTING
    # =========================================================================

    def get_ledger_summary(self, participant_id: str) -> LedgerSummary | None:
        """Snapshot of cash, positions, cost basis, unrealized P&L and CEO flag."""
        with self._lock:
            entry = self._entries.get(participant_id)
            if entry is None:
                return None

            positions = []
            for company_id, lots in entry.positions.items():
                if not lots:
                    continue
                company = self.companies[company_id]
                held = sum(lot.shares for lot in lots)
                cost_basis = sum(lot.shares * lot.price_per_share for lot in lots)
                price = company.current_price
                value = held * price
                positions.append(
                    PositionSummary(
                        company_id=company_id,
                        company_name=company.name,
                        shares=held,
                        cost_basis=cost_basis,
                        market_price=price,
                        market_value=value,
                        unrealized_pnl=value - cost_basis,
                        ownership=held / company.shares,
                        lots=tuple(replace(lot) for lot in lots),
                    )
                )

            stock_value = sum(p.market_value for p in positions)
            net_worth = entry.cash + stock_value
            return LedgerSummary(
                participant_id=entry.participant_id,
                participant_name=entry.name,
                is_human=entry.is_human,
                cash=entry.cash,
                positions=tuple(positions),
                total_stock_value=stock_value,
                total_cost_basis=sum(p.cost_basis for p in positions),
                net_worth=net_worth,
                realized_profit=entry.realized_profit,
                total_pnl=net_worth - entry.starting_cash,
                is_ceo=entry.is_ceo,
                ceo_company_id=entry.ceo_company_id,
            )

    def all_summaries(self) -> list[LedgerSummary]:
        with self._lock:
            summaries = [self.get_ledger_summary(pid) for pid in self._entries]
        return [s for s in summaries if s is not None]

    def standings(self) -> pd.DataFrame:
        """One row per participant, richest first."""
        rows = []
        for summary in self.all_summaries():
            row = {
                "participant_id": summary.participant_id,
                "name": summary.participant_name,
                "is_human": summary.is_human,
                "cash": summary.cash,
                "stock_value": summary.total_stock_value,
                "net_worth": summary.net_worth,
                "realized_profit": summary.realized_profit,
                "total_pnl": summary.total_pnl,
                "ceo_of": summary.ceo_company_id,
            }
            for company_id in self.companies:
                row[f"shares_{company_id}"] = summary.holding(company_id)
            rows.append(row)
        df = pd.DataFrame(rows)
        if df.empty:
            return df
        return df.sort_values("net_worth", ascending=False).reset_index(drop=True)

    def audit(self) -> None:
        """
        Verify every entry: cash >= 0, no non-positive lots, and the stored
        net worth matches a fresh valuation.

        Stored net worth is only current after `revalue_all()` or a settlement
        by that participant, so call this at quiet points (end of a pass).

        Raises:
            LedgerInvariantViolation: On the first inconsistency found
        """
        with self._lock:
            for entry in self._entries.values():
                if entry.cash < 0:
                    raise LedgerInvariantViolation(f"negative cash for {entry.participant_id}")
                for company_id, lots in entry.positions.items():
                    for lot in lots:
                        if lot.shares <= 0:
                            raise LedgerInvariantViolation(
                                f"non-positive lot for {entry.participant_id}/{company_id}"
                            )
                expected = self._compute_net_worth(entry)
                if abs(expected - entry.total_net_worth) > _EPSILON * max(1.0, abs(expected)):
                    logger.error(
                        f"Net worth drift for {entry.name}: stored {entry.total_net_worth}, "
                        f"actual {expected}"
                    )
                    raise LedgerInvariantViolation(
                        f"net worth drift for {entry.participant_id}"
                    )
