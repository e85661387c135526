"""
Ledger event emission shared by the tier resolver, ledger and cycle counter.

Appends the immutable audit event inside the caller's character transaction
and defers the matching bus notification until that transaction commits, so
listeners never observe a mutation that was rolled back.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import EventKind, EventPayload, LedgerEvent

if TYPE_CHECKING:
    from ..state.store import CharacterTransaction, ForgeStore

logger = logging.getLogger(__name__)


class EventJournal:
    """Writes ledger events and publishes their notifications."""

    def __init__(self, store: "ForgeStore", bus: EventBus | None = None):
        self.store = store
        self.bus = bus if bus is not None else get_event_bus()

    def record(
        self,
        txn: "CharacterTransaction",
        kind: EventKind,
        payload: EventPayload,
        delta_cp: int | None,
        notify: EventType,
        **data,
    ) -> LedgerEvent:
        """
        Append one ledger event for the transaction's character.

        Args:
            txn: Open transaction on the character
            kind: award, spend or advancement-note
            payload: ReasonPayload or MessagePayload matching the kind
            delta_cp: Signed CP change, None for notes
            notify: Bus event published after commit
            **data: Extra bus event data

        Returns:
            The stored event, with its sequence number
        """
        event = self.store.append(
            LedgerEvent(
                character_id=txn.character_id,
                kind=kind,
                payload=payload,
                delta_cp=delta_cp,
            )
        )
        logger.debug(
            "Ledger %s for %s: delta=%s seq=%d",
            kind.value, txn.character_id, delta_cp, event.seq,
        )
        self.notify_after_commit(txn, notify, event_id=event.id, **data)
        return event

    def notify_after_commit(
        self,
        txn: "CharacterTransaction",
        event_type: EventType,
        **data,
    ) -> None:
        """Publish a bus event once the transaction has been written."""
        character_id = txn.character_id
        txn.after_commit(
            lambda: self.bus.emit(event_type, character_id=character_id, **data)
        )
