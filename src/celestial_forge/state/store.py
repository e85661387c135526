"""
Forge storage abstraction.

Separates persistence from ledger logic for testability. A character's record
and events live together in one CharacterLedger document, and every mutation
runs inside a per-character transaction:

- a re-entrant lock per character serializes read-modify-write sequences
- work happens on a staged copy of the document
- the copy is written back only when the outermost transaction exits cleanly
- after-commit callbacks (bus notifications) run once the write has landed

Transactions on different characters never block each other.
"""

import logging
import re
import threading
import weakref
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Protocol, runtime_checkable

from pydantic import ValidationError

from ..errors import CharacterNotFoundError
from .schema import CharacterLedger, LedgerEvent, ProgressionRecord, UnlockedPerk

logger = logging.getLogger(__name__)


# Fields callers may change through update()
UPDATABLE_FIELDS = frozenset({
    "name",
    "world",
    "cp_total",
    "cp_spent",
    "response_count",
    "tier",
    "notes",
})

DEFAULT_EVENT_LIMIT = 50


@runtime_checkable
class CharacterStore(Protocol):
    """Progression record storage."""

    def create(self, record: ProgressionRecord) -> ProgressionRecord:
        """Persist a new character. Raises ValueError if the ID is taken."""
        ...

    def get(self, character_id: str) -> ProgressionRecord | None:
        """Load a record by ID. Returns None if not found."""
        ...

    def update(self, character_id: str, **fields) -> None:
        """Change record fields. Raises CharacterNotFoundError."""
        ...

    def delete(self, character_id: str) -> bool:
        """Delete a character and its events. Returns True if deleted."""
        ...

    def list_all(self) -> list[ProgressionRecord]:
        """All records, most recently updated first."""
        ...

    def exists(self, character_id: str) -> bool:
        ...


@runtime_checkable
class EventStore(Protocol):
    """Append-only ledger event storage."""

    def append(self, event: LedgerEvent) -> LedgerEvent:
        """Append an event. Returns the stored copy with its sequence number."""
        ...

    def query(
        self, character_id: str, limit: int | None = DEFAULT_EVENT_LIMIT
    ) -> list[LedgerEvent]:
        """A character's events, newest first."""
        ...


@runtime_checkable
class PerkStore(Protocol):
    """Perks a character has unlocked."""

    def add_perk(self, character_id: str, perk: UnlockedPerk) -> UnlockedPerk:
        """Attach a perk. Raises CharacterNotFoundError."""
        ...

    def list_perks(
        self,
        character_id: str,
        q: str | None = None,
        category: str | None = None,
        limit: int | None = None,
    ) -> list[UnlockedPerk]:
        """A character's perks, most recently acquired first."""
        ...

    def remove_perk(self, character_id: str, unlocked_perk_id: str) -> bool:
        """Detach a perk. Returns True if it was removed."""
        ...


@runtime_checkable
class ForgeStore(CharacterStore, EventStore, PerkStore, Protocol):
    """
    Combined character, event and perk storage with per-character transactions.

    Implementations:
    - JsonForgeStore: File-based persistence (production)
    - MemoryForgeStore: In-memory storage (testing)
    """

    def transaction(self, character_id: str) -> AbstractContextManager["CharacterTransaction"]:
        ...


class CharacterTransaction:
    """Staged state for one character's in-flight mutation."""

    def __init__(self, character_id: str, document: CharacterLedger | None):
        self.character_id = character_id
        self.document = document
        self.owner = threading.get_ident()
        self.dirty = False
        self.deleted = False
        self._after_commit: list[Callable[[], None]] = []

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Run callback once the outermost transaction has been written."""
        self._after_commit.append(callback)

    def require_document(self) -> CharacterLedger:
        if self.document is None:
            raise CharacterNotFoundError(self.character_id)
        return self.document

    def run_after_commit(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            callback()


class _TransactionalStore:
    """
    Transaction and record/event logic shared by the concrete stores.

    Subclasses provide the document primitives: _read, _write, _remove, _ids.
    _read must return a copy the caller may mutate freely.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # Entries vanish once no transaction holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, threading.RLock] = (
            weakref.WeakValueDictionary()
        )
        self._active: dict[str, CharacterTransaction] = {}

    # -------------------------------------------------------------------------
    # Document primitives
    # -------------------------------------------------------------------------

    def _read(self, character_id: str) -> CharacterLedger | None:
        raise NotImplementedError

    def _write(self, document: CharacterLedger) -> None:
        raise NotImplementedError

    def _remove(self, character_id: str) -> bool:
        raise NotImplementedError

    def _ids(self) -> list[str]:
        raise NotImplementedError

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _lock_for(self, character_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(character_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[character_id] = lock
            return lock

    def _current(self, character_id: str) -> CharacterTransaction | None:
        """The transaction this thread holds on the character, if any."""
        txn = self._active.get(character_id)
        if txn is not None and txn.owner == threading.get_ident():
            return txn
        return None

    def _document(self, character_id: str) -> CharacterLedger | None:
        txn = self._current(character_id)
        if txn is not None:
            return txn.document
        return self._read(character_id)

    @contextmanager
    def transaction(self, character_id: str) -> Iterator[CharacterTransaction]:
        """
        Serialize and stage mutations to one character.

        Nested calls on the same character from the same thread join the
        outer transaction. Any exception discards all staged changes.
        """
        with self._lock_for(character_id):
            txn = self._active.get(character_id)
            if txn is not None:
                yield txn
                return

            txn = CharacterTransaction(character_id, self._read(character_id))
            self._active[character_id] = txn
            try:
                yield txn
                if txn.deleted:
                    self._remove(character_id)
                elif txn.dirty and txn.document is not None:
                    self._write(txn.document)
            finally:
                del self._active[character_id]

        txn.run_after_commit()

    # -------------------------------------------------------------------------
    # Character records
    # -------------------------------------------------------------------------

    def create(self, record: ProgressionRecord) -> ProgressionRecord:
        with self.transaction(record.id) as txn:
            if txn.document is not None:
                raise ValueError(f"Character {record.id} already exists")
            txn.document = CharacterLedger(record=record.model_copy())
            txn.deleted = False
            txn.dirty = True
        return record.model_copy()

    def get(self, character_id: str) -> ProgressionRecord | None:
        document = self._document(character_id)
        if document is None:
            return None
        return document.record.model_copy()

    def update(self, character_id: str, **fields) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        with self.transaction(character_id) as txn:
            document = txn.require_document()
            data = document.record.model_dump()
            data.update(fields)
            data["updated_at"] = datetime.now()
            document.record = ProgressionRecord.model_validate(data)
            txn.dirty = True

    def delete(self, character_id: str) -> bool:
        with self.transaction(character_id) as txn:
            if txn.document is None:
                return False
            txn.document = None
            txn.deleted = True
        return True

    def list_all(self) -> list[ProgressionRecord]:
        records = []
        for character_id in self._ids():
            record = self.get(character_id)
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: r.updated_at, reverse=True)
        return records

    def exists(self, character_id: str) -> bool:
        return self._document(character_id) is not None

    # -------------------------------------------------------------------------
    # Ledger events
    # -------------------------------------------------------------------------

    def append(self, event: LedgerEvent) -> LedgerEvent:
        with self.transaction(event.character_id) as txn:
            document = txn.require_document()
            stored = event.model_copy(update={"seq": document.next_seq()})
            document.events.append(stored)
            txn.dirty = True
        return stored

    def query(
        self, character_id: str, limit: int | None = DEFAULT_EVENT_LIMIT
    ) -> list[LedgerEvent]:
        document = self._document(character_id)
        if document is None:
            return []
        events = sorted(document.events, key=lambda e: e.seq, reverse=True)
        if limit is None:
            return events
        return events[: max(0, limit)]

    # -------------------------------------------------------------------------
    # Unlocked perks
    # -------------------------------------------------------------------------

    def add_perk(self, character_id: str, perk: UnlockedPerk) -> UnlockedPerk:
        with self.transaction(character_id) as txn:
            document = txn.require_document()
            if any(p.id == perk.id for p in document.perks):
                raise ValueError(f"Perk {perk.id} already unlocked")
            document.perks.append(perk.model_copy())
            txn.dirty = True
        return perk.model_copy()

    def list_perks(
        self,
        character_id: str,
        q: str | None = None,
        category: str | None = None,
        limit: int | None = None,
    ) -> list[UnlockedPerk]:
        document = self._document(character_id)
        if document is None:
            return []
        # Newest first; later additions win timestamp ties
        ordered = sorted(
            enumerate(document.perks),
            key=lambda item: (item[1].acquired_at, item[0]),
            reverse=True,
        )
        perks = [p.model_copy() for _, p in ordered if p.matches(q, category)]
        if limit is None:
            return perks
        return perks[: max(0, limit)]

    def remove_perk(self, character_id: str, unlocked_perk_id: str) -> bool:
        with self.transaction(character_id) as txn:
            document = txn.require_document()
            kept = [p for p in document.perks if p.id != unlocked_perk_id]
            if len(kept) == len(document.perks):
                return False
            document.perks = kept
            txn.dirty = True
        return True


class JsonForgeStore(_TransactionalStore):
    """
    File-based storage: one <character_id>.json document per character.

    Features:
    - Backup of the previous save (<id>.json.bak)
    - Write-then-rename so readers never see a half-written file
    """

    _SAFE_ID = re.compile(r"[A-Za-z0-9_-]+")

    def __init__(self, data_dir: Path | str = "forge_data"):
        super().__init__()
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, character_id: str) -> Path | None:
        if not self._SAFE_ID.fullmatch(character_id):
            return None
        return self.data_dir / f"{character_id}.json"

    def _read(self, character_id: str) -> CharacterLedger | None:
        path = self._path(character_id)
        if path is None or not path.exists():
            return None
        return CharacterLedger.model_validate_json(path.read_text(encoding="utf-8"))

    def _write(self, document: CharacterLedger) -> None:
        path = self._path(document.record.id)
        if path is None:
            raise ValueError(f"Unsafe character ID: {document.record.id!r}")

        # Backup previous save
        if path.exists():
            backup = path.with_suffix(".json.bak")
            backup.write_text(path.read_text(encoding="utf-8"), encoding="utf-8")

        staging = path.with_suffix(".json.tmp")
        staging.write_text(document.model_dump_json(indent=2), encoding="utf-8")
        staging.replace(path)

    def _remove(self, character_id: str) -> bool:
        path = self._path(character_id)
        if path is None or not path.exists():
            return False
        path.unlink()
        backup = path.with_suffix(".json.bak")
        if backup.exists():
            backup.unlink()
        return True

    def _ids(self) -> list[str]:
        return [f.stem for f in self.data_dir.glob("*.json")]

    def list_all(self) -> list[ProgressionRecord]:
        """List all characters, skipping unreadable files."""
        records = []
        for character_id in self._ids():
            try:
                record = self.get(character_id)
            except (ValidationError, ValueError) as e:
                logger.warning("Skipping unreadable character file %s: %s", character_id, e)
                continue
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: r.updated_at, reverse=True)
        return records


class MemoryForgeStore(_TransactionalStore):
    """
    In-memory storage for testing.

    No file I/O - all data lives in memory.
    """

    def __init__(self):
        super().__init__()
        self.ledgers: dict[str, CharacterLedger] = {}

    def _read(self, character_id: str) -> CharacterLedger | None:
        document = self.ledgers.get(character_id)
        if document is None:
            return None
        return document.model_copy(deep=True)

    def _write(self, document: CharacterLedger) -> None:
        self.ledgers[document.record.id] = document.model_copy(deep=True)

    def _remove(self, character_id: str) -> bool:
        return self.ledgers.pop(character_id, None) is not None

    def _ids(self) -> list[str]:
        return list(self.ledgers)

    def clear(self) -> None:
        """Clear all characters (test utility)."""
        self.ledgers.clear()
