"""Celestial Forge: CP ledger, tiers and activity cycles for roleplay characters."""

__version__ = "0.1.0"
