"""
Event bus for forge state changes.

Lets listeners react to ledger activity without the ledger knowing about
them. Ledger events are the audit trail; bus events are notifications,
published only after a mutation commits.

Listeners subscribe per EventType:

    def announce(event: ForgeEvent):
        print(f"{event.character_id} reached {event.data['after']}")

    manager.bus.on(EventType.TIER_ADVANCED, announce)
"""

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Forge events that can be published."""

    # Character lifecycle
    CHARACTER_CREATED = "character.created"
    CHARACTER_DELETED = "character.deleted"

    # Ledger
    CP_AWARDED = "cp.awarded"
    CP_SPENT = "cp.spent"

    # Tiers
    TIER_ADVANCED = "tier.advanced"
    TIER_OVERRIDDEN = "tier.overridden"

    # Perks
    PERK_ADDED = "perk.added"
    PERK_REMOVED = "perk.removed"

    # Activity
    CYCLE_COMPLETED = "cycle.completed"


@dataclass
class ForgeEvent:
    """One notification. data holds the keyword arguments given to emit()."""

    type: EventType
    data: dict = field(default_factory=dict)
    character_id: str = ""
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.character_id} {self.data}"


EventHandler = Callable[[ForgeEvent], None]


class EventBus:
    """
    Synchronous event bus.

    Listeners are called immediately on emit(). A failing listener is logged
    and skipped; it never affects the ledger or other listeners. The most
    recent history_limit events are kept for inspection.
    """

    def __init__(self, history_limit: int = 100):
        self._listeners: defaultdict[EventType, list[EventHandler]] = defaultdict(list)
        self._history: deque[ForgeEvent] = deque(maxlen=history_limit)

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe to an event type. Subscribing twice is a no-op."""
        handlers = self._listeners[event_type]
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe from an event type."""
        handlers = self._listeners.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(
        self,
        event_type: EventType,
        character_id: str = "",
        **data,
    ) -> ForgeEvent:
        """
        Publish to every listener of event_type.

        Returns:
            The published ForgeEvent
        """
        event = ForgeEvent(type=event_type, data=data, character_id=character_id)
        self._history.append(event)

        for handler in tuple(self._listeners.get(event_type, ())):
            try:
                handler(event)
            except Exception:
                logger.warning(
                    "Listener %r failed for %s", handler, event_type.value,
                    exc_info=True,
                )

        return event

    def clear(self) -> None:
        """Drop every listener (history is kept)."""
        self._listeners.clear()

    def get_history(self, event_type: EventType | None = None) -> list[ForgeEvent]:
        """Recent events, oldest first, optionally filtered by type."""
        return [e for e in self._history if event_type is None or e.type == event_type]

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners.get(event_type, ()))


# Process-wide default, used when no bus is passed in
_default_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """The process-wide default event bus."""
    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus


def reset_event_bus() -> None:
    """Forget the default bus so the next get_event_bus() builds a new one."""
    global _default_bus
    _default_bus = None
