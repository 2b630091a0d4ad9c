# tests/unit/exchange/test_market_maker.py
"""
Tests for market maker quoting, spread bounds, price pressure and the floor.
"""

import pytest

from exchange.config import load_config
from exchange.market_maker import MarketMaker, MarketMakerParams


@pytest.fixture
def params():
    return MarketMakerParams()


@pytest.fixture
def mm(params):
    return MarketMaker("sunny", 2.0, params)


class TestQuote:
    def test_initial_quote_centered_on_ipo_price(self, mm):
        assert mm.reference_price == 2.0
        assert mm.bid_price == pytest.approx(1.995)
        assert mm.ask_price == pytest.approx(2.005)

    def test_spread_clamped_to_bounds(self, mm):
        # 0.5% of 0.2 is below the 0.1%-of-IPO minimum
        assert mm.spread_for(0.2) == pytest.approx(mm.min_spread)
        # 0.5% of 100 is above the 2%-of-IPO maximum
        assert mm.spread_for(100.0) == pytest.approx(mm.max_spread)

    def test_reference_never_below_floor(self, mm):
        mm.requote(0.1)
        assert mm.reference_price == pytest.approx(1.0)
        assert mm.bid_price < mm.ask_price

    def test_quote_snapshot(self, mm):
        quote = mm.quote(80, 100)
        assert quote.bid_shares == 80
        assert quote.spread == pytest.approx(mm.ask_price - mm.bid_price)

    def test_non_positive_ipo_price_rejected(self, params):
        with pytest.raises(ValueError):
            MarketMaker("sunny", 0.0, params)


class TestPressure:
    def test_balanced_book_no_move(self, mm):
        assert mm.pressure_adjustment(2.0, 100, 100) == 0.0

    def test_buy_pressure_moves_up(self, mm):
        # ratio 1.2 -> 0.01 * 0.2 = 0.2%
        assert mm.pressure_adjustment(2.0, 120, 100) == pytest.approx(2.0 * 0.002)

    def test_sell_pressure_moves_down(self, mm):
        assert mm.pressure_adjustment(2.0, 100, 120) == pytest.approx(-2.0 * 0.002)

    def test_move_capped(self, mm):
        assert mm.pressure_adjustment(2.0, 1000, 10) == pytest.approx(2.0 * 0.005)
        assert mm.pressure_adjustment(2.0, 0, 1000) == pytest.approx(-2.0 * 0.005)

    def test_recenter_uses_last_price(self, mm):
        ref = mm.recenter(2.5, 100, 100)
        assert ref == pytest.approx(2.5)
        assert mm.bid_price < 2.5 < mm.ask_price


class TestReplenish:
    def test_low_water(self, mm):
        assert not mm.needs_replenish(50, 50)
        assert mm.needs_replenish(49, 100)
        assert mm.needs_replenish(100, 0)


def test_params_from_config():
    params = MarketMakerParams.from_config(
        load_config({"market_maker": {"liquidity": 250, "max_move_pct": 0.01}}).market_maker
    )
    assert params.liquidity == 250
    assert params.max_move_pct == 0.01
    assert params.low_water == 50
    assert MarketMakerParams.from_config(None) == MarketMakerParams()
