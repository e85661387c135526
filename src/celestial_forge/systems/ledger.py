"""
CP ledger for the forge.

Owns every change to a character's CP balances. Each successful award or
spend is one atomic unit: the balance update, the tier refresh and exactly
one award/spend ledger event. A failed call changes nothing and records
nothing.

Amount policy: amounts must be non-negative integers. Negative awards would
let cp_total fall below cp_spent, so they are rejected rather than treated as
corrections. Zero is accepted (a zero-CP cycle award is still recorded).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import CharacterNotFoundError, InsufficientFundsError, InvalidAmountError
from ..state.config import ForgeConfig
from ..state.event_bus import EventBus, EventType
from ..state.schema import EventKind, LedgerEvent, ProgressionRecord, ReasonPayload
from ..state.store import DEFAULT_EVENT_LIMIT
from .journal import EventJournal
from .tiers import TierResolver

if TYPE_CHECKING:
    from ..state.store import ForgeStore

logger = logging.getLogger(__name__)


def validate_amount(amount: object) -> int:
    """Accept only non-negative ints (bools excluded)."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidAmountError(amount)
    return amount


class LedgerEngine:
    """
    Awards, spends and manual tier overrides.

    Usage:
        ledger = LedgerEngine(config, store)
        ledger.award(character_id, 50, "quest")
        ledger.spend(character_id, 30, "perk buy")
    """

    def __init__(
        self,
        config: ForgeConfig,
        store: "ForgeStore",
        bus: EventBus | None = None,
        journal: EventJournal | None = None,
        resolver: TierResolver | None = None,
    ):
        self.config = config
        self.store = store
        self.journal = journal or EventJournal(store, bus)
        self.resolver = resolver or TierResolver(config, store, self.journal)

    def award(self, character_id: str, amount: int, reason: str) -> LedgerEvent:
        """
        Add CP to a character's cumulative total.

        Returns:
            The award event

        Raises:
            CharacterNotFoundError: character does not exist
            InvalidAmountError: amount is not a non-negative int
        """
        with self.store.transaction(character_id) as txn:
            record = txn.require_document().record
            validate_amount(amount)

            self.store.update(character_id, cp_total=record.cp_total + amount)
            self.resolver.refresh(character_id)
            event = self.journal.record(
                txn,
                EventKind.AWARD,
                ReasonPayload(reason=reason),
                amount,
                EventType.CP_AWARDED,
                amount=amount,
                reason=reason,
                cp_total=record.cp_total + amount,
            )

        logger.debug("Awarded %d CP to %s (%s)", amount, character_id, reason)
        return event

    def spend(self, character_id: str, amount: int, reason: str) -> LedgerEvent:
        """
        Spend CP from a character's available balance.

        Returns:
            The spend event

        Raises:
            CharacterNotFoundError: character does not exist
            InvalidAmountError: amount is not a non-negative int
            InsufficientFundsError: amount exceeds available CP; nothing changed
        """
        with self.store.transaction(character_id) as txn:
            record = txn.require_document().record
            validate_amount(amount)

            available = record.cp_available
            if available < amount:
                logger.info(
                    "Rejected spend of %d CP for %s: only %d available",
                    amount, character_id, available,
                )
                raise InsufficientFundsError(available=available, requested=amount)

            self.store.update(character_id, cp_spent=record.cp_spent + amount)
            self.resolver.refresh(character_id)
            event = self.journal.record(
                txn,
                EventKind.SPEND,
                ReasonPayload(reason=reason),
                -amount,
                EventType.CP_SPENT,
                amount=amount,
                reason=reason,
                cp_available=available - amount,
            )

        logger.debug("Spent %d CP for %s (%s)", amount, character_id, reason)
        return event

    def set_tier(self, character_id: str, tier: str) -> ProgressionRecord:
        """
        Overwrite the stored tier.

        Manual correction only: the tier is not checked against the table and
        no ledger event is written. The next CP-affecting operation re-derives
        the tier from cp_total and may replace it.

        Raises:
            CharacterNotFoundError: character does not exist
        """
        with self.store.transaction(character_id) as txn:
            before = txn.require_document().record.tier
            self.store.update(character_id, tier=tier)
            self.journal.notify_after_commit(
                txn, EventType.TIER_OVERRIDDEN, before=before, after=tier,
            )
            record = self.store.get(character_id)

        logger.info("Tier for %s manually set from %s to %s", character_id, before, tier)
        return record

    def get_event_log(
        self, character_id: str, limit: int | None = DEFAULT_EVENT_LIMIT
    ) -> list[LedgerEvent]:
        """
        A character's ledger events, newest first.

        Raises:
            CharacterNotFoundError: character does not exist
        """
        if not self.store.exists(character_id):
            raise CharacterNotFoundError(character_id)
        return self.store.query(character_id, limit)
