"""
Bot roster factory.
"""

import math
from typing import Mapping, Sequence

from bots.profile import SCAVENGER, BidStrategy, Personality, get_preset
from exchange.models import Participant

BOT_NAMES: dict[str, Sequence[str]] = {
    "aggressive": ("Rocket Rita", "Turbo Ted"),
    "conservative": ("Careful Carl", "Steady Stella"),
    "concentrated": ("Boss Bella", "Chief Charlie"),
    "diversified": ("Spread Sam", "Basket Bea"),
    "value": ("Bargain Ben", "Thrifty Tess"),
    "momentum": ("Surfer Sid", "Wave Wanda"),
    "scavenger": ("Scrappy", "Pennywise", "Crumbs", "Nibbles", "Gleaner", "Magpie"),
}


def create_bot(archetype: str, index: int) -> Participant:
    """
    Create a bot participant from a preset archetype.

    Args:
        archetype: Preset name, or "scavenger"
        index: Sequence number within the archetype (0-based)

    Returns:
        Participant carrying the preset personality

    Raises:
        ValueError: Unknown archetype
    """
    archetype = archetype.lower()
    personality: Personality = SCAVENGER if archetype == "scavenger" else get_preset(archetype)
    names = BOT_NAMES.get(archetype, (archetype.title(),))
    name = names[index % len(names)]
    if index >= len(names):
        name = f"{name} {index // len(names) + 1}"
    return Participant(
        id=f"bot-{archetype}-{index + 1}",
        name=name,
        is_human=False,
        personality=personality,
    )


def required_scavengers(company_count: int, min_scavengers: int = 5, per_company: int = 2) -> int:
    return max(min_scavengers, per_company * company_count)


def ensure_scavengers(
    roster: list[Participant],
    company_count: int,
    min_scavengers: int = 5,
    per_company: int = 2,
) -> list[Participant]:
    """
    Top up `roster` with scavenger bots until the required count is present.

    Returns:
        The scavengers that were added (the roster is extended in place)
    """
    present = sum(
        1
        for p in roster
        if p.personality is not None and p.personality.bid_strategy is BidStrategy.SCAVENGER
    )
    added = []
    for index in range(present, required_scavengers(company_count, min_scavengers, per_company)):
        bot = create_bot("scavenger", index)
        roster.append(bot)
        added.append(bot)
    return added


def build_roster(
    preset_counts: Mapping[str, int],
    company_count: int,
    min_scavengers: int = 5,
    per_company: int = 2,
) -> list[Participant]:
    """Preset bots in the given counts plus the mandatory scavengers."""
    roster = []
    for archetype, count in preset_counts.items():
        for index in range(int(count)):
            roster.append(create_bot(archetype, index))
    ensure_scavengers(roster, company_count, min_scavengers, per_company)
    return roster


def oversubscription_margin(
    roster: Sequence[Participant], shares_per_company: int, scavenger_shares: int = 250
) -> float:
    """Scavenger demand per company as a multiple of the offer."""
    scavengers = sum(
        1
        for p in roster
        if p.personality is not None and p.personality.bid_strategy is BidStrategy.SCAVENGER
    )
    return scavengers * scavenger_shares / shares_per_company if shares_per_company else math.inf
