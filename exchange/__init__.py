"""
exchange - Core Market Logic (Lemonade Stand Exchange)

This package contains the deterministic core of the lemonade stand stock
market game: IPO clearing, continuous order matching and FIFO accounting.

Modules:
    ledger: Cash balances, FIFO share lots, net worth and CEO status
    auction: Uniform-price (Dutch) IPO clearing
    orderbook: Price-time order book and matching engine
    market_maker: Synthetic liquidity provider quotes
    session: Phase-driven orchestration of one game
"""

__version__ = "1.0.0"
