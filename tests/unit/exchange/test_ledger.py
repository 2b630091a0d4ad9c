# tests/unit/exchange/test_ledger.py
"""
Tests for the FIFO ledger: cash validation, lot accounting, net worth and
CEO status.
"""

import pandas as pd
import pytest

from exchange.errors import LedgerInvariantViolation
from exchange.ledger import Ledger
from exchange.results import Rejected, RejectReason


class TestInitialization:
    def test_new_participant_gets_starting_cash(self, ledger):
        assert ledger.cash("alice") == 1000.0
        assert ledger.net_worth("alice") == 1000.0

    def test_initialization_is_idempotent(self, ledger):
        ledger.record_purchase("alice", "sunny", 100, 2.0)
        ledger.initialize_participant("alice", "Alice", is_human=True, starting_cash=1000.0)
        assert ledger.cash("alice") == pytest.approx(800.0)
        assert ledger.get_total_shares("alice", "sunny") == 100

    def test_negative_starting_cash_rejected(self, ledger):
        with pytest.raises(ValueError):
            ledger.initialize_participant("dave", "Dave", starting_cash=-1.0)

    def test_reset_clears_entries_and_ceos(self, ledger, listed):
        ledger.record_purchase("alice", "sunny", 400, 1.0)
        assert ledger.get_ceo("sunny") is not None
        ledger.reset()
        assert ledger.participant_ids() == []
        assert ledger.get_all_ceos() == []
        assert listed["sunny"].ceo_participant_id is None


class TestPurchase:
    def test_purchase_debits_cash_and_appends_lot(self, ledger):
        receipt = ledger.record_purchase("alice", "sunny", 100, 2.5, source="ipo")
        assert receipt
        assert receipt.total_cost == pytest.approx(250.0)
        assert receipt.cash_after == pytest.approx(750.0)
        lots = ledger.lots("alice", "sunny")
        assert len(lots) == 1
        assert lots[0].shares == 100
        assert lots[0].source == "ipo"

    def test_purchase_beyond_cash_rejected_without_side_effects(self, ledger):
        result = ledger.record_purchase("alice", "sunny", 1001, 1.0)
        assert not result
        assert isinstance(result, Rejected)
        assert result.reason is RejectReason.INSUFFICIENT_FUNDS
        assert ledger.cash("alice") == 1000.0
        assert ledger.lots("alice", "sunny") == ()

    def test_purchase_of_exactly_all_cash_allowed(self, ledger):
        assert ledger.record_purchase("alice", "sunny", 500, 2.0)
        assert ledger.cash("alice") == 0.0

    @pytest.mark.parametrize(
        "pid,cid,shares,price,reason",
        [
            ("nobody", "sunny", 10, 1.0, RejectReason.UNKNOWN_PARTICIPANT),
            ("alice", "nowhere", 10, 1.0, RejectReason.UNKNOWN_COMPANY),
            ("alice", "sunny", 0, 1.0, RejectReason.INVALID_QUANTITY),
            ("alice", "sunny", 10, 0.0, RejectReason.INVALID_PRICE),
        ],
    )
    def test_invalid_purchases(self, ledger, pid, cid, shares, price, reason):
        result = ledger.record_purchase(pid, cid, shares, price)
        assert not result
        assert result.reason is reason

    def test_lots_returns_copies(self, ledger):
        ledger.record_purchase("alice", "sunny", 100, 1.0)
        lots = ledger.lots("alice", "sunny")
        lots[0].shares = 5
        assert ledger.get_total_shares("alice", "sunny") == 100


class TestFifoSale:
    def test_sale_within_first_lot_leaves_second_untouched(self, ledger):
        ledger.record_purchase("alice", "sunny", 100, 1.0)
        ledger.record_purchase("alice", "sunny", 50, 2.0)

        receipt = ledger.record_sale("alice", "sunny", 60, 3.0)

        assert receipt
        lots = ledger.lots("alice", "sunny")
        assert [lot.shares for lot in lots] == [40, 50]
        assert lots[1].price_per_share == 2.0
        assert receipt.total_cost_basis == pytest.approx(60.0)
        assert receipt.realized_profit == pytest.approx(120.0)

    def test_sale_spanning_lots_weights_cost_basis(self, ledger):
        ledger.record_purchase("alice", "sunny", 100, 1.0)
        ledger.record_purchase("alice", "sunny", 50, 2.0)

        receipt = ledger.record_sale("alice", "sunny", 120, 3.0)

        lots = ledger.lots("alice", "sunny")
        assert [lot.shares for lot in lots] == [30]
        assert receipt.total_cost_basis == pytest.approx(100 * 1.0 + 20 * 2.0)
        assert receipt.realized_profit == pytest.approx(120 * 3.0 - 140.0)
        assert [s.shares for s in receipt.lot_sales] == [100, 20]

    def test_selling_everything_removes_position(self, ledger):
        ledger.record_purchase("alice", "sunny", 100, 1.0)
        assert ledger.record_sale("alice", "sunny", 100, 1.5)
        assert ledger.get_total_shares("alice", "sunny") == 0
        assert ledger.holders("sunny") == {}

    def test_oversell_rejected_without_side_effects(self, ledger):
        ledger.record_purchase("alice", "sunny", 100, 1.0)
        result = ledger.record_sale("alice", "sunny", 101, 5.0)
        assert not result
        assert result.reason is RejectReason.INSUFFICIENT_SHARES
        assert ledger.get_total_shares("alice", "sunny") == 100
        assert ledger.cash("alice") == pytest.approx(900.0)

    def test_realized_profit_accumulates(self, ledger):
        ledger.record_purchase("alice", "sunny", 100, 1.0)
        ledger.record_sale("alice", "sunny", 50, 2.0)
        ledger.record_sale("alice", "sunny", 50, 0.5)
        assert ledger.get_ledger_summary("alice").realized_profit == pytest.approx(25.0)


class TestValuation:
    def test_net_worth_uses_market_price_not_cost(self, ledger, listed):
        ledger.record_purchase("alice", "sunny", 100, 1.0)
        listed["sunny"].current_price = 3.0
        assert ledger.net_worth("alice") == pytest.approx(900.0 + 300.0)

    def test_revalue_all_refreshes_stored_net_worth(self, ledger, listed):
        ledger.record_purchase("alice", "sunny", 100, 2.0)
        listed["sunny"].current_price = 4.0
        ledger.revalue_all()
        assert ledger.get_ledger_summary("alice").net_worth == pytest.approx(1200.0)
        ledger.audit()

    def test_summary_positions(self, ledger, listed):
        ledger.record_purchase("alice", "sunny", 100, 1.0)
        ledger.record_purchase("alice", "citrus", 10, 1.5)
        summary = ledger.get_ledger_summary("alice")
        assert summary.holding("sunny") == 100
        assert summary.holding("citrus") == 10
        sunny = next(p for p in summary.positions if p.company_id == "sunny")
        assert sunny.unrealized_pnl == pytest.approx(100.0)
        assert sunny.ownership == pytest.approx(0.1)

    def test_unknown_summary_is_none(self, ledger):
        assert ledger.get_ledger_summary("nobody") is None

    def test_standings_sorted_by_net_worth(self, ledger, listed):
        ledger.record_purchase("bob", "sunny", 100, 1.0)
        listed["sunny"].current_price = 5.0
        standings = ledger.standings()
        assert isinstance(standings, pd.DataFrame)
        assert standings.iloc[0]["participant_id"] == "bob"
        assert standings.iloc[0]["shares_sunny"] == 100
        assert list(standings["net_worth"]) == sorted(standings["net_worth"], reverse=True)

    def test_audit_detects_drift(self, ledger, listed):
        ledger.record_purchase("alice", "sunny", 100, 2.0)
        listed["sunny"].current_price = 9.0
        with pytest.raises(LedgerInvariantViolation):
            ledger.audit()


class TestCEOStatus:
    def test_threshold_reached_at_exactly_350(self, ledger, listed):
        ledger.record_purchase("alice", "sunny", 350, 1.0)
        ceo = ledger.get_ceo("sunny")
        assert ceo is not None
        assert ceo.participant_id == "alice"
        assert listed["sunny"].ceo_participant_id == "alice"
        assert ledger.get_ledger_summary("alice").is_ceo

    def test_349_shares_is_not_ceo(self, ledger, listed):
        ledger.record_purchase("alice", "sunny", 349, 1.0)
        assert ledger.get_ceo("sunny") is None

    def test_ceo_lost_when_dropping_below_threshold(self, ledger, listed):
        ledger.record_purchase("alice", "sunny", 350, 1.0)
        ledger.record_sale("alice", "sunny", 1, 1.0)
        assert ledger.get_ceo("sunny") is None
        assert not ledger.get_ledger_summary("alice").is_ceo

    def test_second_qualifier_does_not_displace_ceo(self, ledger, listed):
        ledger.record_purchase("alice", "sunny", 360, 1.0)
        ledger.record_purchase("bob", "sunny", 400, 1.0)
        assert ledger.get_ceo("sunny").participant_id == "alice"

    def test_successor_promoted_when_ceo_sells_down(self, ledger, listed):
        ledger.record_purchase("alice", "sunny", 360, 1.0)
        ledger.record_purchase("bob", "sunny", 400, 1.0)
        ledger.record_sale("alice", "sunny", 100, 1.0)
        assert ledger.get_ceo("sunny").participant_id == "bob"

    def test_one_ceo_seat_per_participant(self, ledger, listed):
        ledger.record_purchase("alice", "sunny", 350, 1.0)
        ledger.record_purchase("alice", "citrus", 350, 1.0)
        assert ledger.get_ceo("sunny").participant_id == "alice"
        assert ledger.get_ceo("citrus") is None
        assert len(ledger.get_all_ceos()) == 1

    def test_multiple_seats_when_allowed(self, listed, clock):
        ledger = Ledger(listed, None, clock)
        ledger.one_ceo_per_participant = False
        ledger.initialize_participant("alice", "Alice", starting_cash=1000.0)
        ledger.record_purchase("alice", "sunny", 350, 1.0)
        ledger.record_purchase("alice", "citrus", 350, 1.0)
        assert {c.company_id for c in ledger.get_all_ceos()} == {"sunny", "citrus"}
