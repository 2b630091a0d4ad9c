"""
Run Session Script.

Plays one bot-only game: IPO, N trading ticks, final standings.

Usage:
    python scripts/run_session.py
    python scripts/run_session.py run.ticks=100 events.enabled=true
"""

import logging
import os

import hydra
from omegaconf import DictConfig
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from exchange.config import load_config
from exchange.session import GameSession

console = Console()


def render_ipo(session: GameSession) -> None:
    """Render clearing prices and CEO seats after the IPO."""
    table = Table(title="IPO Results", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Company")
    table.add_column("Clearing", justify="right")
    table.add_column("Bid Shares", justify="right")
    table.add_column("Winners", justify="right")
    table.add_column("CEO")
    for company_id, result in session.ipo_results.items():
        company = session.companies[company_id]
        ceo = session.ledger.get_ceo(company_id)
        table.add_row(
            company.name,
            f"${result.clearing_price:.2f}",
            str(result.total_bid_shares),
            str(len(result.allocations)),
            ceo.participant_name if ceo else "[dim]-[/dim]",
        )
    console.print(table)


def render_market(session: GameSession) -> None:
    """Render the top of book for every company."""
    table = Table(title="Market", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Company")
    table.add_column("IPO", justify="right")
    table.add_column("Last", justify="right")
    table.add_column("Bid", justify="right")
    table.add_column("Ask", justify="right")
    table.add_column("Trades", justify="right")
    for company_id, company in session.companies.items():
        data = session.market_data(company_id)
        if data is None:
            continue
        table.add_row(
            company.name,
            f"${data.ipo_price:.2f}",
            f"${data.current_price:.3f}",
            f"${data.best_bid:.3f}" if data.best_bid is not None else "-",
            f"${data.best_ask:.3f}" if data.best_ask is not None else "-",
            str(len(session.orderbook.trade_history(company_id))),
        )
    console.print(table)


def render_standings(standings) -> None:
    """Render final standings, richest first."""
    table = Table(title="Final Standings", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("#", style="dim", width=3)
    table.add_column("Name")
    table.add_column("Cash", justify="right")
    table.add_column("Stock", justify="right")
    table.add_column("Net Worth", justify="right")
    table.add_column("P&L", justify="right")
    table.add_column("CEO of")
    for rank, row in enumerate(standings.itertuples(index=False), start=1):
        pnl_style = "green" if row.total_pnl >= 0 else "red"
        table.add_row(
            str(rank),
            row.name,
            f"${row.cash:.2f}",
            f"${row.stock_value:.2f}",
            f"${row.net_worth:.2f}",
            f"[{pnl_style}]{row.total_pnl:+.2f}[/{pnl_style}]",
            row.ceo_of or "",
        )
    console.print(table)


@hydra.main(version_base=None, config_path="../conf", config_name="config")
def main(cfg: DictConfig):
    log_level = getattr(logging, cfg.run.log_level.upper())
    logging.getLogger().setLevel(log_level)
    logging.getLogger("exchange").setLevel(log_level)
    logging.getLogger("bots").setLevel(log_level)

    if not logging.getLogger().handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(asctime)s][%(name)s][%(levelname)s] - %(message)s'))
        logging.getLogger().addHandler(handler)

    session = GameSession(load_config(cfg))
    console.print(Panel(
        f"[bold cyan]{len(session.companies)} companies[/bold cyan], "
        f"{len(session.bots)} bots, {cfg.run.ticks} trading ticks",
        title="Lemonade Exchange",
        border_style="cyan",
    ))

    session.start_ipo()
    session.run_ipo()
    render_ipo(session)

    for _ in range(cfg.run.ticks):
        session.run_bot_trading_tick()
    render_market(session)

    standings = session.finish()
    session.ledger.audit()
    render_standings(standings)

    output_dir = cfg.run.output_dir
    os.makedirs(output_dir, exist_ok=True)
    standings.to_csv(os.path.join(output_dir, "standings.csv"), index=False)
    logging.info(f"Standings saved to {output_dir}")


if __name__ == "__main__":
    main()
