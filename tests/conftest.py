# tests/conftest.py
"""Minimal shared fixtures for test suite."""

import itertools

import numpy as np
import pytest

from exchange.config import load_config
from exchange.ledger import Ledger
from exchange.models import Company


@pytest.fixture
def seed():
    """Fixed seed for reproducibility."""
    return 42


@pytest.fixture
def rng(seed):
    """Numpy random generator with fixed seed."""
    return np.random.default_rng(seed)


@pytest.fixture
def clock():
    """Deterministic clock: 1.0, 2.0, 3.0, ..."""
    ticks = itertools.count(1)
    return lambda: float(next(ticks))


@pytest.fixture
def config():
    """Default config with the market maker off, for exact matching tests."""
    return load_config({"market_maker": {"enabled": False}})


@pytest.fixture
def companies():
    return {
        "sunny": Company(id="sunny", name="Sunny Side Lemonade", shares=1000),
        "citrus": Company(id="citrus", name="Citrus Corner", shares=1000),
    }


@pytest.fixture
def ledger(companies, config, clock):
    ledger = Ledger(companies, config.ledger, clock)
    for pid, name in (("alice", "Alice"), ("bob", "Bob"), ("carol", "Carol")):
        ledger.initialize_participant(pid, name, is_human=True, starting_cash=1000.0)
    return ledger


@pytest.fixture
def listed(companies):
    """Companies with IPO prices already written."""
    companies["sunny"].set_ipo_price(2.0)
    companies["citrus"].set_ipo_price(1.5)
    return companies
