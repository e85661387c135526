"""
Activity cycle counter.

Each recorded response ticks a per-character counter. When the counter wraps
to zero the cycle is complete and the configured CP award is granted through
the ledger:

    0 → 1 → ... → cycle_length-1 → 0 (award)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..state.config import ForgeConfig
from ..state.event_bus import EventType
from ..state.schema import TickResult
from .ledger import LedgerEngine

if TYPE_CHECKING:
    from ..state.store import ForgeStore

logger = logging.getLogger(__name__)


CYCLE_AWARD_REASON = "Spark cycle complete"


class ActivityCycleCounter:
    """Counts responses and grants the cycle award on wraparound."""

    def __init__(self, config: ForgeConfig, store: "ForgeStore", ledger: LedgerEngine):
        self.config = config
        self.store = store
        self.ledger = ledger

    def tick(self, character_id: str) -> TickResult:
        """
        Record one response for a character.

        On wraparound the award (with its tier refresh and award event) lands
        before the counter is persisted; the tier is then refreshed once more,
        which is a no-op if the award already moved it.

        Raises:
            CharacterNotFoundError: character does not exist
        """
        with self.store.transaction(character_id) as txn:
            record = txn.require_document().record
            new_count = (record.response_count + 1) % self.config.cycle_length
            cycle_complete = new_count == 0
            cp_awarded = 0

            if cycle_complete:
                cp_awarded = self.config.cp_award_per_cycle
                self.ledger.award(character_id, cp_awarded, CYCLE_AWARD_REASON)

            self.store.update(character_id, response_count=new_count)

            if cycle_complete:
                self.ledger.resolver.refresh(character_id)
                self.ledger.journal.notify_after_commit(
                    txn,
                    EventType.CYCLE_COMPLETED,
                    cp_awarded=cp_awarded,
                    cycle_length=self.config.cycle_length,
                )

        if cycle_complete:
            logger.info("%s completed a cycle: +%d CP", character_id, cp_awarded)

        return TickResult(
            response_count=new_count,
            cp_awarded=cp_awarded,
            cycle_complete=cycle_complete,
        )
