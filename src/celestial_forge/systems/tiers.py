"""
Tier resolution.

A character's tier is derived from cumulative CP earned (cp_total, never the
available balance) using the ordered threshold table from ForgeConfig.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from ..state.config import ForgeConfig, TierThreshold
from ..state.event_bus import EventType
from ..state.schema import EventKind, LedgerEvent, MessagePayload
from .journal import EventJournal

if TYPE_CHECKING:
    from ..state.store import ForgeStore

logger = logging.getLogger(__name__)


def resolve_tier(cp_total: int, tiers: Sequence[TierThreshold]) -> str:
    """
    Name of the highest tier whose minimum does not exceed cp_total.

    Thresholds are walked in table order, so later (higher) entries override
    earlier matches. The first entry is the floor when nothing matches.
    """
    tier = tiers[0].name
    for threshold in tiers:
        if cp_total >= threshold.min_cp:
            tier = threshold.name
    return tier


def next_tier(cp_total: int, tiers: Sequence[TierThreshold]) -> TierThreshold | None:
    """The first threshold still above cp_total, or None at the top."""
    for threshold in tiers:
        if threshold.min_cp > cp_total:
            return threshold
    return None


class TierResolver:
    """
    Keeps a character's stored tier in line with their cp_total.

    refresh() is idempotent: when the stored tier already matches, it does
    nothing observable.
    """

    def __init__(self, config: ForgeConfig, store: "ForgeStore", journal: EventJournal):
        self.config = config
        self.store = store
        self.journal = journal

    def resolve(self, cp_total: int) -> str:
        return resolve_tier(cp_total, self.config.tiers)

    def refresh(self, character_id: str) -> LedgerEvent | None:
        """
        Re-derive the tier and record an advancement note if it changed.

        Returns:
            The advancement-note event, or None if the tier was unchanged

        Raises:
            CharacterNotFoundError: character does not exist
        """
        with self.store.transaction(character_id) as txn:
            record = txn.require_document().record
            tier = self.resolve(record.cp_total)
            if tier == record.tier:
                return None

            self.store.update(character_id, tier=tier)
            note = self.journal.record(
                txn,
                EventKind.ADVANCEMENT_NOTE,
                MessagePayload(message=f"Advanced to tier: {tier}"),
                None,
                EventType.TIER_ADVANCED,
                before=record.tier,
                after=tier,
                cp_total=record.cp_total,
            )

        logger.info("%s advanced from %s to %s", character_id, record.tier, tier)
        return note
