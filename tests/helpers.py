"""Shared assertions for ledger tests."""


def balance_from_events(manager, character_id):
    """Available balance rebuilt from award/spend deltas in creation order."""
    events = sorted(manager.get_event_log(character_id, limit=None), key=lambda e: e.seq)
    return sum(e.delta_cp for e in events if e.is_balance_change)


def kinds(events):
    """Event kinds as plain strings, in the given order."""
    return [e.kind.value for e in events]
