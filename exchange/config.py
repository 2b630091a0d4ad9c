"""
Configuration defaults for the exchange.

All components take an OmegaConf DictConfig section. Defaults live here so that
library users and tests get a complete config without Hydra; the CLI composes
conf/config.yaml on top of the same keys.
"""

from typing import Any, Mapping

from omegaconf import DictConfig, OmegaConf

DEFAULT_CONFIG: dict[str, Any] = {
    "session": {
        "starting_cash": 1000.0,
        "shares_per_company": 1000,
        "company_names": [
            "Sunny Side Lemonade",
            "Citrus Corner",
            "Squeeze Street",
            "Lemon Drop Stand",
        ],
        "seed": 2024,
        # Bot roster by preset archetype (see bots.profile.PRESETS)
        "bots": {
            "aggressive": 1,
            "conservative": 1,
            "concentrated": 1,
            "diversified": 1,
            "value": 1,
            "momentum": 1,
        },
    },
    "ledger": {
        "ceo_threshold": 0.35,
        "one_ceo_per_participant": True,
    },
    "auction": {
        "floor_price": 1.0,
        # "raise": undersubscription is fatal
        # "top_up": synthetic floor bids from liquidity participants, then fatal
        "undersubscription": "raise",
    },
    "market_maker": {
        "enabled": True,
        "liquidity": 100,
        "low_water": 50,
        "spread_pct": 0.005,
        "min_spread_pct": 0.001,
        "max_spread_pct": 0.02,
        "pressure_sensitivity": 0.01,
        "max_move_pct": 0.005,
        "price_floor_pct": 0.5,
    },
    "orderbook": {
        "depth": 5,
    },
    "bots": {
        "min_scavengers": 5,
        "scavengers_per_company": 2,
        "scavenger_shares": 250,
        "price_ladder": [1.00, 1.25, 1.50, 1.75, 2.00, 2.25, 2.50, 2.75, 3.00],
    },
    "events": {
        "enabled": False,
        "path": "logs/session_events.jsonl",
    },
}


def load_config(overrides: Mapping[str, Any] | DictConfig | None = None) -> DictConfig:
    """
    Build a full config by merging overrides onto the defaults.

    Args:
        overrides: Partial config (plain nested dict or DictConfig). Keys not
                   given keep their default value.

    Returns:
        Merged DictConfig
    """
    base = OmegaConf.create(DEFAULT_CONFIG)
    if overrides is None:
        return base
    if not isinstance(overrides, DictConfig):
        overrides = OmegaConf.create(dict(overrides))
    merged = OmegaConf.merge(base, overrides)
    assert isinstance(merged, DictConfig)
    return merged
