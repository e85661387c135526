"""
Progression systems for the forge.

Dependency order: journal → tiers → ledger → cycles. Each system operates on
a ForgeStore inside per-character transactions.
"""

from .journal import EventJournal
from .tiers import TierResolver, resolve_tier, next_tier
from .ledger import LedgerEngine, validate_amount
from .cycles import ActivityCycleCounter, CYCLE_AWARD_REASON

__all__ = [
    "EventJournal",
    "TierResolver",
    "resolve_tier",
    "next_tier",
    "LedgerEngine",
    "validate_amount",
    "ActivityCycleCounter",
    "CYCLE_AWARD_REASON",
]
