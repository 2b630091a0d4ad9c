"""
Uniform-price (Dutch) IPO auction.

Clears one company's newly issued share pool against a list of bids in a single
pass. Every winner pays the same clearing price regardless of their own bid.

Clearing procedure:
1. Screen bids (unknown ids, bad quantities, below-floor prices, bids the
   bidder could not pay for at their own price)
2. Sort descending by price, ties in submission order
3. Require oversubscription: total bid shares >= shares offered
4. Clearing price = price of the last bid consumed before cumulative demand
   covers the offer, clamped to the floor price
5. Allocate min(bid.shares, remaining) per bid at the clearing price
6. Write the IPO price, evaluate CEO status, revalue the ledger

Undersubscription is guaranteed impossible by the scavenger bots, so it is
treated as an invariant violation. The optional "top_up" policy injects floor
bids from designated liquidity participants first and logs the event loudly.
"""

import logging
from typing import Iterable, Mapping, Sequence

from omegaconf import DictConfig

from exchange.errors import (
    AuctionAlreadyCleared,
    AuctionInvariantViolation,
    UnknownCompanyError,
)
from exchange.ledger import Ledger
from exchange.models import Bid, Company
from exchange.results import Allocation, AuctionResult, Rejected, RejectReason

logger = logging.getLogger(__name__)

UNDERSUBSCRIPTION_POLICIES = ("raise", "top_up")


class AuctionEngine:
    """
    IPO clearing engine.

    Attributes:
        ledger: Ledger that receives the resulting purchases
        companies: Company registry
        floor_price: Minimum clearing price
        undersubscription: "raise" or "top_up"
        liquidity_participants: Ids eligible for top-up bids (scavenger bots)
    """

    def __init__(
        self,
        ledger: Ledger,
        companies: Mapping[str, Company],
        config: DictConfig | None = None,
        liquidity_participants: Sequence[str] = (),
    ) -> None:
        self.ledger = ledger
        self.companies = companies
        self.floor_price: float = 1.0
        self.undersubscription: str = "raise"
        if config is not None:
            self.floor_price = float(config.get("floor_price", 1.0))
            self.undersubscription = str(config.get("undersubscription", "raise"))
        if self.undersubscription not in UNDERSUBSCRIPTION_POLICIES:
            raise ValueError(
                f"undersubscription must be one of {UNDERSUBSCRIPTION_POLICIES}, "
                f"got {self.undersubscription!r}"
            )
        if self.floor_price <= 0:
            raise ValueError(f"floor_price must be positive, got {self.floor_price}")
        self.liquidity_participants = list(liquidity_participants)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def clear_company(self, company_id: str, bids: Iterable[Bid]) -> AuctionResult:
        """
        Clear one company's IPO.

        Args:
            company_id: Company being floated
            bids: All bid lines for the company (human and bot), in submission order

        Returns:
            AuctionResult with the clearing price and allocations

        Raises:
            UnknownCompanyError: company_id is not registered
            AuctionAlreadyCleared: the IPO price was already written
            AuctionInvariantViolation: demand does not cover the offer, or a
                screened allocation failed to settle
        """
        company = self.companies.get(company_id)
        if company is None:
            raise UnknownCompanyError(company_id)

        with company.lock:
            if company.is_listed:
                raise AuctionAlreadyCleared(
                    f"{company_id} already cleared at {company.ipo_clearing_price}"
                )

            offered = company.shares_available
            bid_list = self._sequence(bids)
            accepted, rejected = self.screen_bids(company_id, bid_list)
            total_bid_shares = sum(b.shares for b in accepted)

            topped_up = False
            if total_bid_shares < offered:
                accepted = self._handle_undersubscription(
                    company, accepted, offered, total_bid_shares
                )
                total_bid_shares = sum(b.shares for b in accepted)
                topped_up = True

            ranked = rank_bids(accepted)
            clearing_price = compute_clearing_price(ranked, offered, self.floor_price)
            logger.info(
                f"{company.name}: {len(ranked)} bids for {total_bid_shares} shares, "
                f"{offered} offered, clearing at ${clearing_price:.2f}"
            )

            result = AuctionResult(
                company_id=company_id,
                clearing_price=clearing_price,
                shares_offered=offered,
                total_bid_shares=total_bid_shares,
                rejected_bids=rejected,
                topped_up=topped_up,
            )
            self._allocate(company, ranked, offered, clearing_price, result)

            company.set_ipo_price(clearing_price)
            company.shares_allocated += result.shares_allocated
            self.ledger.evaluate_ceo(company_id)
            self.ledger.revalue_all()
            return result

    def clear_all(self, bids_by_company: Mapping[str, Iterable[Bid]]) -> dict[str, AuctionResult]:
        """Clear every registered company that has not been floated yet, in registry order."""
        results = {}
        for company_id, company in self.companies.items():
            if company.is_listed:
                continue
            results[company_id] = self.clear_company(
                company_id, bids_by_company.get(company_id, ())
            )
        return results

    def screen_bids(
        self, company_id: str, bids: Sequence[Bid]
    ) -> tuple[list[Bid], list[tuple[Bid, Rejected]]]:
        """
        Split bids into clearable and rejected, without touching any state.

        Each participant's cash is drawn down line by line in submission order
        at each bid's own price, exactly as the ledger settles, so every
        surviving line is affordable at the clearing price (which never
        exceeds a winning bid's price).
        """
        accepted: list[Bid] = []
        rejected: list[tuple[Bid, Rejected]] = []
        remaining: dict[str, float] = {}

        for bid in bids:
            reason = None
            if bid.company_id != company_id:
                reason = Rejected(RejectReason.UNKNOWN_COMPANY, f"bid is for {bid.company_id}")
            elif not self.ledger.has_participant(bid.participant_id):
                reason = Rejected(RejectReason.UNKNOWN_PARTICIPANT, bid.participant_id)
            elif bid.shares <= 0:
                reason = Rejected(RejectReason.INVALID_QUANTITY, f"shares={bid.shares}")
            elif bid.price <= 0:
                reason = Rejected(RejectReason.INVALID_PRICE, f"price={bid.price}")
            elif bid.price < self.floor_price:
                reason = Rejected(
                    RejectReason.BELOW_FLOOR,
                    f"price {bid.price:.2f} below floor {self.floor_price:.2f}",
                )
            else:
                cost = bid.shares * bid.price
                left = remaining.get(bid.participant_id)
                if left is None:
                    left = self.ledger.cash(bid.participant_id)
                if cost > left:
                    reason = Rejected(
                        RejectReason.INSUFFICIENT_FUNDS,
                        f"bid costs {cost:.2f}, uncommitted cash {left:.2f}",
                    )
                else:
                    remaining[bid.participant_id] = left - cost

            if reason is None:
                accepted.append(bid)
            else:
                logger.debug(f"Rejected IPO bid {bid}: {reason.message}")
                rejected.append((bid, reason))
        return accepted, rejected

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @staticmethod
    def _sequence(bids: Iterable[Bid]) -> list[Bid]:
        """Materialize bids, numbering them in submission order when unnumbered."""
        bid_list = list(bids)
        if all(b.sequence == 0 for b in bid_list):
            for i, bid in enumerate(bid_list):
                bid.sequence = i
        return bid_list

    def _handle_undersubscription(
        self, company: Company, accepted: list[Bid], offered: int, demand: int
    ) -> list[Bid]:
        logger.error(
            f"UNDERSUBSCRIBED: {company.name} offers {offered} shares but bids "
            f"cover only {demand}; bot bidding policy failed to oversubscribe"
        )
        if self.undersubscription == "raise":
            raise AuctionInvariantViolation(
                f"{company.id}: bid shares {demand} < offered {offered}"
            )

        spare: dict[str, float] = {}
        for bid in accepted:
            left = spare.get(bid.participant_id, self.ledger.cash(bid.participant_id))
            spare[bid.participant_id] = left - bid.shares * bid.price

        topped = list(accepted)
        shortfall = offered - demand
        next_sequence = max((b.sequence for b in accepted), default=-1) + 1
        for participant_id in self.liquidity_participants:
            if shortfall <= 0:
                break
            left = spare.get(participant_id, self.ledger.cash(participant_id))
            shares = min(shortfall, int(left // self.floor_price))
            while shares > 0 and shares * self.floor_price > left:
                shares -= 1
            if shares <= 0:
                continue
            topped.append(
                Bid(
                    participant_id=participant_id,
                    company_id=company.id,
                    shares=shares,
                    price=self.floor_price,
                    sequence=next_sequence,
                )
            )
            next_sequence += 1
            spare[participant_id] = left - shares * self.floor_price
            shortfall -= shares
            logger.warning(
                f"Top-up bid: {participant_id} takes {shares} {company.id} at floor"
            )

        if shortfall > 0:
            raise AuctionInvariantViolation(
                f"{company.id}: {shortfall} shares still unsold after top-up"
            )
        return topped

    def _plan_allocations(
        self, company: Company, ranked: list[Bid], offered: int, clearing_price: float
    ) -> list[tuple[Bid, int]]:
        """
        Walk the ranked bids into (bid, shares) lines and check each one
        against the cash the ledger will hold when it settles.

        Raises:
            AuctionInvariantViolation: a line would not settle; nothing has
                been written to the ledger yet
        """
        plan: list[tuple[Bid, int]] = []
        cash: dict[str, float] = {}
        remaining = offered
        for bid in ranked:
            if remaining == 0:
                break
            shares = min(bid.shares, remaining)
            cost = shares * clearing_price
            left = cash.get(bid.participant_id, self.ledger.cash(bid.participant_id))
            if cost > left:
                logger.error(
                    f"Allocation of {shares} {company.id} to {bid.participant_id} "
                    f"costs {cost:.2f} but only {left:.2f} would remain"
                )
                raise AuctionInvariantViolation(
                    f"screened allocation unaffordable for {bid.participant_id}"
                )
            cash[bid.participant_id] = left - cost
            plan.append((bid, shares))
            remaining -= shares
        return plan

    def _allocate(
        self,
        company: Company,
        ranked: list[Bid],
        offered: int,
        clearing_price: float,
        result: AuctionResult,
    ) -> None:
        for bid, shares in self._plan_allocations(company, ranked, offered, clearing_price):
            receipt = self.ledger.record_purchase(
                bid.participant_id, company.id, shares, clearing_price, source="ipo"
            )
            if not receipt:
                logger.error(
                    f"Allocation of {shares} {company.id} to {bid.participant_id} "
                    f"failed after screening: {receipt}"
                )
                raise AuctionInvariantViolation(
                    f"screened allocation failed for {bid.participant_id}"
                )
            result.allocations.append(
                Allocation(
                    participant_id=bid.participant_id,
                    shares=shares,
                    price=clearing_price,
                    bid_price=bid.price,
                )
            )


def rank_bids(bids: Iterable[Bid]) -> list[Bid]:
    """Highest price first; equal prices keep submission order."""
    return sorted(bids, key=lambda b: (-b.price, b.sequence))


def compute_clearing_price(ranked: Sequence[Bid], shares_offered: int, floor_price: float) -> float:
    """
    Lowest price still needed to sell the whole offer.

    Walks the ranked bids accumulating demand; the clearing price is the price
    of the last bid consumed before demand covers `shares_offered`.

    Args:
        ranked: Bids sorted by `rank_bids`
        shares_offered: Shares for sale
        floor_price: Minimum clearing price

    Returns:
        Clearing price (>= floor_price)
    """
    needed = shares_offered
    clearing_price = 0.0
    for bid in ranked:
        if needed <= 0:
            break
        clearing_price = bid.price
        needed -= bid.shares
    return max(floor_price, clearing_price)
