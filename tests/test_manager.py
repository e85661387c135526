"""
Tests for ForgeManager.

Character lifecycle and the character sheet; progression itself is covered
in the ledger, tier and cycle tests.
"""

import pytest

from celestial_forge.errors import CharacterNotFoundError
from celestial_forge.state import EventType, ForgeConfig, ForgeManager, JsonForgeStore, TierThreshold


class TestCharacterLifecycle:
    """Create, list, delete."""

    def test_create_starts_at_floor(self, manager):
        record = manager.create_character("Aria Vance", world="Emberfall")

        assert record.name == "Aria Vance"
        assert record.world == "Emberfall"
        assert record.tier == "Spark Initiate"
        assert (record.cp_total, record.cp_spent, record.response_count) == (0, 0, 0)

    def test_floor_tier_comes_from_config(self, memory_store, bus):
        custom = ForgeConfig(
            cycle_length=5,
            cp_award_per_cycle=1,
            tiers=(TierThreshold(name="Ember", min_cp=0),),
        )
        manager = ForgeManager(custom, memory_store, bus=bus)

        assert manager.create_character("Aria").tier == "Ember"

    def test_create_publishes(self, manager, bus):
        record = manager.create_character("Aria")

        [event] = bus.get_history(EventType.CHARACTER_CREATED)
        assert event.character_id == record.id

    def test_list_characters(self, manager):
        a = manager.create_character("A")
        b = manager.create_character("B")

        assert {r.id for r in manager.list_characters()} == {a.id, b.id}

    def test_delete(self, manager, character, bus):
        manager.award(character.id, 10, "quest")

        assert manager.delete_character(character.id) is True
        assert manager.get_character(character.id) is None
        assert len(bus.get_history(EventType.CHARACTER_DELETED)) == 1
        with pytest.raises(CharacterNotFoundError):
            manager.get_event_log(character.id)

    def test_delete_missing(self, manager, bus):
        assert manager.delete_character("missing") is False
        assert bus.get_history(EventType.CHARACTER_DELETED) == []

    def test_require_character(self, manager):
        with pytest.raises(CharacterNotFoundError):
            manager.require_character("missing")


class TestCharacterSheet:
    """Sheet contents and prompt summary."""

    def test_sheet_fields(self, manager, character):
        manager.award(character.id, 30, "quest")
        manager.spend(character.id, 10, "perk")
        manager.tick(character.id)

        sheet = manager.get_sheet(character.id)

        assert sheet["id"] == character.id
        assert sheet["name"] == "Test Initiate"
        assert sheet["world"] == "Emberfall"
        assert (sheet["cp_total"], sheet["cp_spent"], sheet["cp_available"]) == (30, 10, 20)
        assert sheet["response_count"] == 1
        assert sheet["cycle_length"] == 10
        assert sheet["tier"] == "Spark Initiate"
        assert sheet["next_tier"] == {"name": "Ascendant", "min_cp": 50}
        assert [e["kind"] for e in sheet["recent_events"]] == ["spend", "award"]
        assert sheet["top_perks"] == []

    def test_sheet_at_top_tier(self, manager, character):
        manager.award(character.id, 80, "quest")
        assert manager.get_sheet(character.id)["next_tier"] is None

    def test_recent_events_capped(self, manager, character):
        for i in range(8):
            manager.award(character.id, 1, f"award {i}")

        recent = manager.get_sheet(character.id)["recent_events"]
        assert len(recent) == 5
        assert recent[0]["payload"] == {"reason": "award 7"}

    def test_prompt_summary(self, manager, character):
        manager.award(character.id, 30, "quest")
        manager.spend(character.id, 10, "perk")
        for _ in range(3):
            manager.tick(character.id)

        summary = manager.get_sheet(character.id)["summary_for_prompt"]

        assert summary == (
            "[FORGE STATE]\n"
            "CP: 30 (Spent 10, Available 20) | Tier: Spark Initiate | Responses: 3/10\n"
            "Perks (recent): None\n"
            "Recent: -10 CP (perk), +30 CP (quest)"
        )

    def test_prompt_summary_without_events(self, manager, character):
        summary = manager.get_sheet(character.id)["summary_for_prompt"]
        assert summary.endswith("Recent: No recent events")

    def test_prompt_summary_includes_notes(self, manager, character):
        """Advancement notes show in Recent alongside balance changes."""
        manager.award(character.id, 50, "quest")
        summary = manager.get_sheet(character.id)["summary_for_prompt"]
        assert summary.endswith("Recent: +50 CP (quest), Advanced to tier: Ascendant")

    def test_prompt_summary_lists_perks(self, manager, character):
        manager.add_perk(character.id, "Ember Sight", "Senses", "Forge Codex", cost_cp=100)
        manager.add_perk(character.id, "Iron Lungs", "Body", "Wanderer")

        summary = manager.get_sheet(character.id)["summary_for_prompt"]

        assert "Perks (recent): Iron Lungs (Body, 0 CP), Ember Sight (Senses, 100 CP)\n" in summary

    def test_top_perks_capped(self, manager, character):
        for i in range(7):
            manager.add_perk(character.id, f"Perk {i}", "Misc", "Codex", cost_cp=i)

        top = manager.get_sheet(character.id)["top_perks"]

        assert len(top) == 5
        assert top[0] == {"name": "Perk 6", "category": "Misc", "source": "Codex", "cost_cp": 6}

    def test_sheet_missing(self, manager):
        with pytest.raises(CharacterNotFoundError):
            manager.get_sheet("missing")


class TestJsonBackedManager:
    """Manager built from a data directory path."""

    def test_path_builds_json_store(self, config, bus, tmp_path):
        manager = ForgeManager(config, tmp_path / "forge_data", bus=bus)
        assert isinstance(manager.store, JsonForgeStore)

        character = manager.create_character("Aria")
        manager.award(character.id, 60, "quest")

        reopened = ForgeManager(config, tmp_path / "forge_data", bus=bus)
        record = reopened.get_character(character.id)
        assert record.cp_total == 60
        assert record.tier == "Ascendant"
        assert len(reopened.get_event_log(character.id)) == 2
