# tests/unit/bots/test_policy.py
"""
Tests for the bot decision policy: strategy table, IPO sizing and
participation, and trading heuristics.
"""

import numpy as np
import pytest

from bots.base import CompanyView, MarketView
from bots.factory import build_roster, create_bot, ensure_scavengers, required_scavengers
from bots.policy import decide_bid, decide_order
from bots.profile import PRESETS, SCAVENGER, BidStrategy, Personality, get_preset
from bots.registry import (
    STRATEGY_PARAMS,
    STRATEGY_TABLE,
    available_strategies,
    build_table,
    get_policy,
)
from exchange.models import Side


@pytest.fixture
def company():
    return CompanyView(company_id="sunny", name="Sunny Side Lemonade", shares=1000)


def market(current=2.0, ipo=2.0, previous=None, shares=1000):
    return MarketView(
        company_id="sunny",
        current_price=current,
        ipo_price=ipo,
        previous_price=current if previous is None else previous,
        shares_outstanding=shares,
    )


def always_trades(personality: Personality) -> Personality:
    return Personality(
        personality.bid_strategy,
        personality.risk_tolerance,
        personality.concentration,
        personality.bid_multiplier,
        trading_frequency=1.0,
        trend_sensitivity=personality.trend_sensitivity,
        rumor_sensitivity=personality.rumor_sensitivity,
    )


class TestProfiles:
    def test_presets_cover_archetypes(self):
        assert set(PRESETS) == {
            "aggressive", "conservative", "concentrated", "diversified", "value", "momentum"
        }
        assert get_preset("Concentrated").bid_strategy is BidStrategy.CEO

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            get_preset("reckless")

    def test_personality_validates_ranges(self):
        with pytest.raises(ValueError):
            Personality(BidStrategy.LOW, risk_tolerance=1.5, concentration=0.5)
        with pytest.raises(ValueError):
            Personality("nonsense", risk_tolerance=0.5, concentration=0.5)

    def test_strategy_coerced_from_string(self):
        assert Personality("high", 0.5, 0.5).bid_strategy is BidStrategy.HIGH

    def test_personality_is_immutable(self):
        with pytest.raises(AttributeError):
            SCAVENGER.risk_tolerance = 0.1


class TestRegistry:
    def test_table_is_closed_over_strategies(self):
        assert set(STRATEGY_TABLE) == set(BidStrategy)
        assert sorted(available_strategies()) == sorted(s.value for s in BidStrategy)

    def test_get_policy(self):
        assert get_policy("ceo").strategy is BidStrategy.CEO
        with pytest.raises(ValueError):
            get_policy("medium")

    def test_build_table_overrides_scavenger_size(self, company, rng):
        table = build_table(scavenger_shares=400)
        intent = decide_bid(SCAVENGER, company, 1000.0, 0, rng, table)
        assert intent.shares == 400


class TestIPOBids:
    def test_scavenger_bids_fixed_size_at_floor(self, company, rng):
        for _ in range(10):
            intent = decide_bid(SCAVENGER, company, 1000.0, 0, rng)
            assert intent.shares == 250
            assert intent.price == company.floor_price

    def test_scavenger_shrinks_to_cash(self, company, rng):
        intent = decide_bid(SCAVENGER, company, 100.0, 0, rng)
        assert intent.shares == 100

    def test_scavenger_without_cash_abstains(self, company, rng):
        assert decide_bid(SCAVENGER, company, 0.5, 0, rng) is None

    @pytest.mark.parametrize(
        "strategy,low,high",
        [
            (BidStrategy.CEO, 2.50, 3.00),
            (BidStrategy.LOW, 1.00, 1.50),
            (BidStrategy.HIGH, 2.00, 2.50),
            (BidStrategy.DEFAULT, 1.50, 2.00),
        ],
    )
    def test_price_windows(self, company, strategy, low, high):
        policy = STRATEGY_TABLE[strategy]
        rng = np.random.default_rng(0)
        prices = {policy.bid_price(company, rng) for _ in range(200)}
        assert min(prices) == low
        assert max(prices) == high

    @pytest.mark.parametrize("strategy", [s for s in BidStrategy if s is not BidStrategy.SCAVENGER])
    def test_sizing_respects_floor_cap_and_cash(self, strategy):
        policy = STRATEGY_TABLE[strategy]
        params = STRATEGY_PARAMS[strategy]
        personality = Personality(strategy, risk_tolerance=0.5, concentration=0.5)
        rich = policy.size_bid(personality, 100_000.0, 2.0)
        assert rich == params.max_shares
        poor = policy.size_bid(personality, 50.0, 2.0)
        assert poor == 25
        assert policy.size_bid(personality, 1000.0, 2.0) >= min(params.min_shares, 500)

    def test_ceo_sizing_example(self):
        policy = STRATEGY_TABLE[BidStrategy.CEO]
        personality = Personality(BidStrategy.CEO, risk_tolerance=1.0, concentration=1.0)
        # 90% of 1000 at $3.00 = 300 shares
        assert policy.size_bid(personality, 1000.0, 3.0) == 300

    @pytest.mark.parametrize("cash,price", [(574.86, 1.34), (1000.0, 3.0), (333.33, 1.1), (0.99, 1.0)])
    def test_sizing_never_costs_more_than_cash(self, cash, price):
        policy = STRATEGY_TABLE[BidStrategy.CEO]
        personality = Personality(BidStrategy.CEO, risk_tolerance=1.0, concentration=1.0)
        shares = policy.size_bid(personality, cash, price)
        assert shares >= 0
        assert shares * price <= cash

    def test_participation_probabilities(self):
        ceo = Personality(BidStrategy.CEO, 0.5, concentration=0.9)
        low = Personality(BidStrategy.LOW, 0.5, concentration=0.2)
        high = Personality(BidStrategy.HIGH, 0.5, concentration=0.0)
        default = Personality(BidStrategy.DEFAULT, 1.0, concentration=1.0)
        assert STRATEGY_TABLE[BidStrategy.CEO].participation_probability(ceo) == pytest.approx(0.5)
        assert STRATEGY_TABLE[BidStrategy.LOW].participation_probability(low) == pytest.approx(0.5)
        assert STRATEGY_TABLE[BidStrategy.HIGH].participation_probability(high) == pytest.approx(0.2)
        assert STRATEGY_TABLE[BidStrategy.DEFAULT].participation_probability(default) == pytest.approx(
            0.8 / 3
        )
        assert STRATEGY_TABLE[BidStrategy.SCAVENGER].participation_probability(SCAVENGER) == 1.0

    def test_bids_never_exceed_cash(self, company, rng):
        for personality in PRESETS.values():
            for cash in (10.0, 150.0, 1000.0):
                intent = decide_bid(personality, company, cash, 0, rng)
                if intent is not None:
                    assert intent.cost <= cash
                    assert intent.shares >= 1

    def test_same_seed_same_decisions(self, company):
        personality = get_preset("aggressive")
        a = [decide_bid(personality, company, 1000.0, 0, np.random.default_rng(5)) for _ in range(3)]
        b = [decide_bid(personality, company, 1000.0, 0, np.random.default_rng(5)) for _ in range(3)]
        assert a == b


class TestTradingDecisions:
    def test_never_trades_with_zero_frequency(self, rng):
        quiet = Personality(BidStrategy.HIGH, 0.9, 0.1, trading_frequency=0.0)
        assert all(decide_order(quiet, market(), 1000.0, 100, rng) is None for _ in range(50))

    def test_scavenger_buys_below_current_price_under_cap(self, rng):
        scav = always_trades(SCAVENGER)
        intent = decide_order(scav, market(current=2.0), 1000.0, 0, rng)
        assert intent.side is Side.BUY
        assert 20 <= intent.shares <= 120
        assert 1.80 <= intent.price <= 2.00

    def test_scavenger_respects_ownership_cap(self, rng):
        scav = always_trades(SCAVENGER)
        assert decide_order(scav, market(), 1000.0, 340, rng) is None

    def test_ceo_holds_at_threshold(self, rng):
        ceo = always_trades(get_preset("concentrated"))
        assert decide_order(ceo, market(), 1000.0, 350, rng) is None

    def test_ceo_accumulates_toward_threshold(self, rng):
        ceo = always_trades(get_preset("concentrated"))
        intent = decide_order(ceo, market(current=2.0), 1000.0, 300, rng)
        assert intent.side is Side.BUY
        assert intent.shares <= 50
        assert intent.price >= 2.0

    def test_conservative_takes_profit(self, rng):
        low = always_trades(get_preset("conservative"))
        intent = decide_order(low, market(current=2.4, ipo=2.0), 1000.0, 100, rng)
        assert intent.side is Side.SELL
        assert intent.shares <= 100

    def test_conservative_buys_below_ipo(self, rng):
        low = always_trades(get_preset("conservative"))
        intent = decide_order(low, market(current=1.6, ipo=2.0), 1000.0, 0, rng)
        assert intent.side is Side.BUY

    def test_momentum_sells_on_falling_trend(self, rng):
        high = always_trades(get_preset("momentum"))
        intent = decide_order(high, market(current=1.8, previous=2.0), 1000.0, 80, rng)
        assert intent.side is Side.SELL
        assert intent.shares == 40

    def test_momentum_buys_on_rising_trend(self, rng):
        high = always_trades(get_preset("momentum"))
        intent = decide_order(high, market(current=2.2, previous=2.0), 1000.0, 0, rng)
        assert intent.side is Side.BUY

    def test_default_needs_strong_signal(self, rng):
        diversified = always_trades(get_preset("diversified"))
        # trend 0 and rumours within +/-0.2 never clear the 0.3 threshold
        assert all(
            decide_order(diversified, market(), 1000.0, 50, rng) is None for _ in range(50)
        )

    def test_sell_never_exceeds_holdings(self, rng):
        for personality in PRESETS.values():
            p = always_trades(personality)
            for _ in range(20):
                intent = decide_order(p, market(current=1.5, previous=2.0, ipo=1.0), 1000.0, 3, rng)
                if intent is not None and intent.side is Side.SELL:
                    assert intent.shares <= 3


class TestFactory:
    def test_required_scavengers(self):
        assert required_scavengers(2) == 5
        assert required_scavengers(4) == 8

    def test_build_roster_includes_scavengers(self):
        roster = build_roster({"aggressive": 2, "value": 1}, company_count=4)
        strategies = [p.personality.bid_strategy for p in roster]
        assert strategies.count(BidStrategy.SCAVENGER) == 8
        assert len(roster) == 11
        assert len({p.id for p in roster}) == len(roster)

    def test_ensure_scavengers_tops_up_only_missing(self):
        roster = [create_bot("scavenger", 0), create_bot("momentum", 0)]
        added = ensure_scavengers(roster, company_count=1, min_scavengers=3)
        assert len(added) == 2
        assert all(not p.is_human for p in roster)

    def test_create_bot_unknown_archetype(self):
        with pytest.raises(ValueError):
            create_bot("gambler", 0)
