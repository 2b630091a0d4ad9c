"""
Event logger for session replay.

Writes IPO allocations, trades, CEO changes and phase transitions to a JSONL
file, one event per line, for post-hoc analysis of a game session.
"""

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TextIO

from exchange.models import Trade
from exchange.results import Allocation


@dataclass
class PhaseEvent:
    """Session phase transition."""

    timestamp: float
    phase: str
    previous: str


@dataclass
class AllocationEvent:
    """IPO shares allotted to one participant."""

    timestamp: float
    company_id: str
    participant_id: str
    shares: int
    price: float
    bid_price: float


@dataclass
class TradeEvent:
    """A continuous-market fill."""

    timestamp: float
    trade_id: str
    company_id: str
    buyer_id: str
    seller_id: str
    shares: int
    price: float


@dataclass
class CEOChangeEvent:
    """CEO seat gained or lost."""

    timestamp: float
    company_id: str
    participant_id: str | None  # new CEO, None if vacated
    previous_id: str | None


_EVENT_TYPES = {
    PhaseEvent: "phase",
    AllocationEvent: "allocation",
    TradeEvent: "trade",
    CEOChangeEvent: "ceo_change",
}


class EventLogger:
    """
    Logs session events to JSONL.

    Usage:
        with EventLogger(Path("logs/session_events.jsonl")) as events:
            events.log_phase(timestamp, "ipo", "lobby")
    """

    def __init__(self, output_path: Path):
        """
        Initialize the event logger.

        Args:
            output_path: Path to write JSONL file (parent directories are created)
        """
        self.output_path = Path(output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self._file: TextIO | None = None
        self._open()

    def _open(self) -> None:
        self._file = open(self.output_path, "w")

    def log_phase(self, timestamp: float, phase: str, previous: str) -> None:
        self._write_event(PhaseEvent(timestamp=timestamp, phase=phase, previous=previous))

    def log_allocation(self, timestamp: float, company_id: str, allocation: Allocation) -> None:
        """Log one IPO allocation line."""
        self._write_event(
            AllocationEvent(
                timestamp=timestamp,
                company_id=company_id,
                participant_id=allocation.participant_id,
                shares=allocation.shares,
                price=allocation.price,
                bid_price=allocation.bid_price,
            )
        )

    def log_trade(self, trade: Trade) -> None:
        """Log a trade execution."""
        self._write_event(
            TradeEvent(
                timestamp=trade.timestamp,
                trade_id=trade.id,
                company_id=trade.company_id,
                buyer_id=trade.buyer_id,
                seller_id=trade.seller_id,
                shares=trade.shares,
                price=trade.price,
            )
        )

    def log_ceo_change(
        self,
        timestamp: float,
        company_id: str,
        participant_id: str | None,
        previous_id: str | None,
    ) -> None:
        self._write_event(
            CEOChangeEvent(
                timestamp=timestamp,
                company_id=company_id,
                participant_id=participant_id,
                previous_id=previous_id,
            )
        )

    def _write_event(self, event: PhaseEvent | AllocationEvent | TradeEvent | CEOChangeEvent) -> None:
        """Write an event to the JSONL file."""
        if self._file is None:
            return

        data = asdict(event)
        data["event_type"] = _EVENT_TYPES[type(event)]
        self._file.write(json.dumps(data) + "\n")

    def flush(self) -> None:
        """Flush the output buffer."""
        if self._file:
            self._file.flush()

    def close(self) -> None:
        """Close the output file."""
        if self._file:
            self._file.close()
            self._file = None

    def __enter__(self) -> "EventLogger":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def load_events(log_path: Path) -> list[dict[str, object]]:
    """
    Load events from a JSONL file.

    Args:
        log_path: Path to the JSONL file

    Returns:
        List of event dictionaries
    """
    events = []
    with open(log_path) as f:
        for line in f:
            if line.strip():
                events.append(json.loads(line))
    return events
