"""
Pydantic models for forge state.

Structured like database tables: one progression record per character and an
append-only list of ledger events. A character's record and events persist
together as a CharacterLedger document.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


# Tier stored on records created without a tier table at hand
DEFAULT_TIER = "Spark Initiate"


def generate_id() -> str:
    return str(uuid4())[:8]


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class EventKind(str, Enum):
    AWARD = "award"
    SPEND = "spend"
    ADVANCEMENT_NOTE = "advancement-note"


# -----------------------------------------------------------------------------
# Progression Record
# -----------------------------------------------------------------------------

class ProgressionRecord(BaseModel):
    """A character's CP balances, activity counter and tier."""
    id: str = Field(default_factory=generate_id)
    name: str
    world: str = ""
    cp_total: int = Field(default=0, ge=0)       # Cumulative CP earned
    cp_spent: int = Field(default=0, ge=0)       # Cumulative CP spent
    response_count: int = Field(default=0, ge=0)  # Position in the current cycle
    tier: str = DEFAULT_TIER                     # Derived, but stored and settable
    notes: str = ""
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def _spent_within_total(self) -> "ProgressionRecord":
        if self.cp_spent > self.cp_total:
            raise ValueError(
                f"cp_spent ({self.cp_spent}) exceeds cp_total ({self.cp_total})"
            )
        return self

    @property
    def cp_available(self) -> int:
        return self.cp_total - self.cp_spent


# -----------------------------------------------------------------------------
# Unlocked Perks
# -----------------------------------------------------------------------------

class UnlockedPerk(BaseModel):
    """
    A perk a character owns.

    Opaque to the ledger: no prerequisites, and adding one does not move CP.
    perk_id optionally points at an external catalog entry.
    """
    id: str = Field(default_factory=generate_id)
    perk_id: str | None = None
    name: str = Field(min_length=1)
    category: str
    source: str
    cost_cp: int | None = Field(default=None, ge=0)
    description: str | None = None
    acquired_at: datetime = Field(default_factory=datetime.now)

    def matches(self, q: str | None = None, category: str | None = None) -> bool:
        """Exact category filter plus case-insensitive substring search."""
        if category and self.category != category:
            return False
        if q:
            needle = q.lower()
            haystack = (self.name, self.description or "")
            return any(needle in text.lower() for text in haystack)
        return True

    def describe(self) -> str:
        return f"{self.name} ({self.category}, {self.cost_cp or 0} CP)"


# -----------------------------------------------------------------------------
# Ledger Events
# -----------------------------------------------------------------------------

class ReasonPayload(BaseModel):
    """Payload for award and spend events."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    reason: str


class MessagePayload(BaseModel):
    """Payload for advancement notes."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    message: str


EventPayload = ReasonPayload | MessagePayload


class LedgerEvent(BaseModel):
    """
    Immutable audit record of one CP or tier mutation.

    delta_cp is signed: positive for awards, negative for spends, None for
    advancement notes. seq is assigned by the store on append and orders a
    character's events even when timestamps collide.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    character_id: str
    kind: EventKind
    payload: EventPayload
    delta_cp: int | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    seq: int = 0

    @model_validator(mode="after")
    def _payload_matches_kind(self) -> "LedgerEvent":
        if self.kind == EventKind.ADVANCEMENT_NOTE:
            if not isinstance(self.payload, MessagePayload):
                raise ValueError("advancement-note events carry a message payload")
            if self.delta_cp is not None:
                raise ValueError("advancement-note events have no CP delta")
            return self

        if not isinstance(self.payload, ReasonPayload):
            raise ValueError(f"{self.kind.value} events carry a reason payload")
        if self.delta_cp is None:
            raise ValueError(f"{self.kind.value} events require a CP delta")
        if self.kind == EventKind.AWARD and self.delta_cp < 0:
            raise ValueError("award events have a non-negative delta")
        if self.kind == EventKind.SPEND and self.delta_cp > 0:
            raise ValueError("spend events have a non-positive delta")
        return self

    @property
    def is_balance_change(self) -> bool:
        """Whether this event moves the available balance."""
        return self.kind in (EventKind.AWARD, EventKind.SPEND)

    def describe(self) -> str:
        """Short human-readable line, as shown on the character sheet."""
        if self.kind == EventKind.AWARD:
            return f"+{self.delta_cp} CP ({self.payload.reason or 'awarded'})"
        if self.kind == EventKind.SPEND:
            return f"-{abs(self.delta_cp)} CP ({self.payload.reason or 'spent'})"
        return self.payload.message


# -----------------------------------------------------------------------------
# Operation Results
# -----------------------------------------------------------------------------

class TickResult(BaseModel):
    """Outcome of one activity tick."""
    response_count: int
    cp_awarded: int = 0
    cycle_complete: bool = False


# -----------------------------------------------------------------------------
# Persistence Document
# -----------------------------------------------------------------------------

class CharacterLedger(BaseModel):
    """
    A character's record together with its events and unlocked perks.

    This is the unit stores read and write atomically.
    """
    record: ProgressionRecord
    events: list[LedgerEvent] = Field(default_factory=list)
    perks: list[UnlockedPerk] = Field(default_factory=list)

    def next_seq(self) -> int:
        if not self.events:
            return 1
        return self.events[-1].seq + 1
