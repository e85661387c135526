"""State management for forge characters."""

from .schema import (
    CharacterLedger,
    EventKind,
    LedgerEvent,
    MessagePayload,
    ProgressionRecord,
    ReasonPayload,
    TickResult,
    UnlockedPerk,
)
from .config import ForgeConfig, TierThreshold, load_config, parse_config
from .manager import ForgeManager
from .store import (
    CharacterStore,
    EventStore,
    ForgeStore,
    PerkStore,
    JsonForgeStore,
    MemoryForgeStore,
)
from .event_bus import (
    EventBus,
    EventType,
    ForgeEvent,
    get_event_bus,
    reset_event_bus,
)

__all__ = [
    # Schema
    "CharacterLedger",
    "EventKind",
    "LedgerEvent",
    "MessagePayload",
    "ProgressionRecord",
    "ReasonPayload",
    "TickResult",
    "UnlockedPerk",
    # Config
    "ForgeConfig",
    "TierThreshold",
    "load_config",
    "parse_config",
    # Manager
    "ForgeManager",
    # Store
    "CharacterStore",
    "EventStore",
    "ForgeStore",
    "PerkStore",
    "JsonForgeStore",
    "MemoryForgeStore",
    # Event Bus
    "EventBus",
    "EventType",
    "ForgeEvent",
    "get_event_bus",
    "reset_event_bus",
]
