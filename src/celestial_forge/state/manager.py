"""
Forge lifecycle management.

Single entry point for callers (MCP server, CLI, tests). Handles character
create/list/delete and the character sheet, and delegates progression
operations to the ledger, tier resolver and cycle counter, which all share
one config, store and event bus.
"""

import logging
from pathlib import Path

from ..errors import CharacterNotFoundError
from .config import ForgeConfig
from .event_bus import EventBus, EventType, get_event_bus
from .schema import LedgerEvent, ProgressionRecord, TickResult, UnlockedPerk
from .store import DEFAULT_EVENT_LIMIT, ForgeStore, JsonForgeStore

logger = logging.getLogger(__name__)


SHEET_RECENT_EVENTS = 5
SHEET_TOP_PERKS = 5


class ForgeManager:
    """
    Manages characters and their progression.

    Storage is delegated to a ForgeStore implementation:
    - JsonForgeStore for production (file-based)
    - MemoryForgeStore for testing (in-memory)
    """

    def __init__(
        self,
        config: ForgeConfig,
        store: ForgeStore | Path | str = "forge_data",
        bus: EventBus | None = None,
    ):
        """
        Initialize with a loaded config and a store.

        Args:
            config: Progression settings, loaded once at startup
            store: ForgeStore instance, or path for JsonForgeStore
            bus: Event bus for notifications (default: process-wide bus)
        """
        if isinstance(store, (Path, str)):
            store = JsonForgeStore(store)

        self.config = config
        self.store = store
        self.bus = bus if bus is not None else get_event_bus()

        # Progression systems (lazily initialized)
        self._ledger = None
        self._cycles = None

    @property
    def ledger(self):
        """Get the ledger engine (lazy initialization)."""
        if self._ledger is None:
            from ..systems.ledger import LedgerEngine
            self._ledger = LedgerEngine(self.config, self.store, bus=self.bus)
        return self._ledger

    @property
    def tiers(self):
        """Get the tier resolver shared with the ledger."""
        return self.ledger.resolver

    @property
    def cycles(self):
        """Get the activity cycle counter (lazy initialization)."""
        if self._cycles is None:
            from ..systems.cycles import ActivityCycleCounter
            self._cycles = ActivityCycleCounter(self.config, self.store, self.ledger)
        return self._cycles

    # -------------------------------------------------------------------------
    # Character Management
    # -------------------------------------------------------------------------

    def create_character(self, name: str, world: str = "") -> ProgressionRecord:
        """Create a character at the floor tier with no CP."""
        record = self.store.create(
            ProgressionRecord(name=name, world=world, tier=self.config.floor_tier)
        )
        self.bus.emit(EventType.CHARACTER_CREATED, character_id=record.id, name=name)
        logger.info("Created character %s (%s)", record.id, name)
        return record

    def get_character(self, character_id: str) -> ProgressionRecord | None:
        """Get character by ID."""
        return self.store.get(character_id)

    def require_character(self, character_id: str) -> ProgressionRecord:
        record = self.store.get(character_id)
        if record is None:
            raise CharacterNotFoundError(character_id)
        return record

    def list_characters(self) -> list[ProgressionRecord]:
        """All characters, most recently updated first."""
        return self.store.list_all()

    def delete_character(self, character_id: str) -> bool:
        """Delete a character together with its ledger events."""
        deleted = self.store.delete(character_id)
        if deleted:
            self.bus.emit(EventType.CHARACTER_DELETED, character_id=character_id)
            logger.info("Deleted character %s", character_id)
        return deleted

    # -------------------------------------------------------------------------
    # Perks
    # -------------------------------------------------------------------------

    def add_perk(
        self,
        character_id: str,
        name: str,
        category: str,
        source: str,
        cost_cp: int | None = None,
        description: str | None = None,
        perk_id: str | None = None,
    ) -> UnlockedPerk:
        """
        Record a perk as unlocked.

        Perks are opaque: no prerequisites are checked and CP is not moved.
        Spend CP separately when the perk is bought.
        """
        perk = UnlockedPerk(
            name=name,
            category=category,
            source=source,
            cost_cp=cost_cp,
            description=description,
            perk_id=perk_id,
        )
        with self.store.transaction(character_id) as txn:
            txn.require_document()
            stored = self.store.add_perk(character_id, perk)
            txn.after_commit(
                lambda: self.bus.emit(
                    EventType.PERK_ADDED,
                    character_id=character_id,
                    unlocked_perk_id=stored.id,
                    name=stored.name,
                )
            )
        logger.info("%s unlocked perk %s (%s)", character_id, stored.name, stored.id)
        return stored

    def list_perks(
        self,
        character_id: str,
        q: str | None = None,
        category: str | None = None,
        limit: int | None = None,
    ) -> list[UnlockedPerk]:
        """Unlocked perks, newest first, filtered by search text and category."""
        self.require_character(character_id)
        return self.store.list_perks(character_id, q=q, category=category, limit=limit)

    def remove_perk(self, character_id: str, unlocked_perk_id: str) -> bool:
        """Remove an unlocked perk. CP already spent on it stays spent."""
        with self.store.transaction(character_id) as txn:
            txn.require_document()
            removed = self.store.remove_perk(character_id, unlocked_perk_id)
            if removed:
                txn.after_commit(
                    lambda: self.bus.emit(
                        EventType.PERK_REMOVED,
                        character_id=character_id,
                        unlocked_perk_id=unlocked_perk_id,
                    )
                )
        if removed:
            logger.info("%s lost perk %s", character_id, unlocked_perk_id)
        return removed

    def get_sheet(self, character_id: str) -> dict:
        """
        Character sheet with a compact summary for prompts.

        Returns dict with: name, world, cp_total, cp_spent, cp_available,
        response_count, cycle_length, tier, next_tier, top_perks,
        recent_events, summary_for_prompt
        """
        from ..systems.tiers import next_tier

        record = self.require_character(character_id)
        recent = self.store.query(character_id, SHEET_RECENT_EVENTS)
        perks = self.store.list_perks(character_id, limit=SHEET_TOP_PERKS)
        upcoming = next_tier(record.cp_total, self.config.tiers)

        return {
            "id": record.id,
            "name": record.name,
            "world": record.world,
            "cp_total": record.cp_total,
            "cp_spent": record.cp_spent,
            "cp_available": record.cp_available,
            "response_count": record.response_count,
            "cycle_length": self.config.cycle_length,
            "tier": record.tier,
            "next_tier": (
                {"name": upcoming.name, "min_cp": upcoming.min_cp} if upcoming else None
            ),
            "top_perks": [
                p.model_dump(mode="json", include={"name", "category", "source", "cost_cp"})
                for p in perks
            ],
            "recent_events": [e.model_dump(mode="json") for e in recent],
            "summary_for_prompt": self._format_prompt_summary(record, perks, recent),
        }

    def _format_prompt_summary(
        self,
        record: ProgressionRecord,
        perks: list[UnlockedPerk],
        events: list[LedgerEvent],
    ) -> str:
        owned = ", ".join(p.describe() for p in perks)
        recent = ", ".join(e.describe() for e in events)
        return (
            "[FORGE STATE]\n"
            f"CP: {record.cp_total} (Spent {record.cp_spent}, "
            f"Available {record.cp_available}) | Tier: {record.tier} | "
            f"Responses: {record.response_count}/{self.config.cycle_length}\n"
            f"Perks (recent): {owned or 'None'}\n"
            f"Recent: {recent or 'No recent events'}"
        )

    # -------------------------------------------------------------------------
    # Progression
    # -------------------------------------------------------------------------

    def award(self, character_id: str, amount: int, reason: str) -> LedgerEvent:
        return self.ledger.award(character_id, amount, reason)

    def spend(self, character_id: str, amount: int, reason: str) -> LedgerEvent:
        return self.ledger.spend(character_id, amount, reason)

    def tick(self, character_id: str) -> TickResult:
        return self.cycles.tick(character_id)

    def set_tier(self, character_id: str, tier: str) -> ProgressionRecord:
        return self.ledger.set_tier(character_id, tier)

    def get_event_log(
        self, character_id: str, limit: int | None = DEFAULT_EVENT_LIMIT
    ) -> list[LedgerEvent]:
        return self.ledger.get_event_log(character_id, limit)
