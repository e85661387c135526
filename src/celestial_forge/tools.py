"""Tool handlers for the forge MCP server.

Each handler takes the manager and the tool arguments and returns a
JSON-serializable dict. Forge errors become {"error": ...} results rather
than exceptions, so a bad call never takes the server down.
"""

import logging
from typing import Callable

from pydantic import ValidationError

from .errors import ForgeError, InsufficientFundsError, InvalidArgumentError
from .state.manager import ForgeManager
from .state.store import DEFAULT_EVENT_LIMIT

logger = logging.getLogger(__name__)


def _character_id(arguments: dict) -> str:
    character_id = arguments["character_id"]
    if not isinstance(character_id, str):
        raise InvalidArgumentError("character_id", character_id, "a string")
    return character_id


def _optional_limit(arguments: dict, default: int | None) -> int | None:
    """Read "limit" as an int; digit strings are accepted from loose clients."""
    limit = arguments.get("limit", default)
    if limit is None:
        return None
    if isinstance(limit, str) and limit.strip().isdigit():
        return int(limit)
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise InvalidArgumentError("limit", limit, "an integer")
    return limit


def create_character(manager: ForgeManager, arguments: dict) -> dict:
    record = manager.create_character(arguments["name"], arguments.get("world", ""))
    return record.model_dump(mode="json")


def get_sheet(manager: ForgeManager, arguments: dict) -> dict:
    return manager.get_sheet(_character_id(arguments))


def list_characters(manager: ForgeManager, arguments: dict) -> dict:
    return {
        "characters": [
            record.model_dump(mode="json") for record in manager.list_characters()
        ]
    }


def delete_character(manager: ForgeManager, arguments: dict) -> dict:
    character_id = _character_id(arguments)
    if not manager.delete_character(character_id):
        return {"error": f"Character {character_id} not found"}
    return {"success": True, "removed": character_id}


def award_cp(manager: ForgeManager, arguments: dict) -> dict:
    event = manager.award(
        _character_id(arguments),
        arguments["amount"],
        arguments.get("reason", ""),
    )
    return event.model_dump(mode="json")


def spend_cp(manager: ForgeManager, arguments: dict) -> dict:
    event = manager.spend(
        _character_id(arguments),
        arguments["amount"],
        arguments.get("reason", ""),
    )
    return event.model_dump(mode="json")


def tick_response(manager: ForgeManager, arguments: dict) -> dict:
    return manager.tick(_character_id(arguments)).model_dump(mode="json")


def set_tier(manager: ForgeManager, arguments: dict) -> dict:
    record = manager.set_tier(_character_id(arguments), arguments["tier"])
    return {"success": True, "tier": record.tier}


def get_events(manager: ForgeManager, arguments: dict) -> dict:
    events = manager.get_event_log(
        _character_id(arguments),
        _optional_limit(arguments, DEFAULT_EVENT_LIMIT),
    )
    return {"events": [e.model_dump(mode="json") for e in events]}


def add_perk(manager: ForgeManager, arguments: dict) -> dict:
    perk = manager.add_perk(
        _character_id(arguments),
        name=arguments["name"],
        category=arguments["category"],
        source=arguments["source"],
        cost_cp=arguments.get("cost_cp"),
        description=arguments.get("description"),
        perk_id=arguments.get("perk_id"),
    )
    return perk.model_dump(mode="json")


def list_perks(manager: ForgeManager, arguments: dict) -> dict:
    perks = manager.list_perks(
        _character_id(arguments),
        q=arguments.get("q"),
        category=arguments.get("category"),
        limit=_optional_limit(arguments, None),
    )
    return {"perks": [p.model_dump(mode="json") for p in perks]}


def remove_perk(manager: ForgeManager, arguments: dict) -> dict:
    character_id = _character_id(arguments)
    unlocked_perk_id = arguments["unlocked_perk_id"]
    if not manager.remove_perk(character_id, unlocked_perk_id):
        return {"error": f"Perk {unlocked_perk_id} not found for character {character_id}"}
    return {"success": True, "removed": unlocked_perk_id}


TOOL_HANDLERS: dict[str, Callable[[ForgeManager, dict], dict]] = {
    "forge.create_character": create_character,
    "forge.get_sheet": get_sheet,
    "forge.list_characters": list_characters,
    "forge.delete_character": delete_character,
    "forge.award_cp": award_cp,
    "forge.spend_cp": spend_cp,
    "forge.tick_response": tick_response,
    "forge.set_tier": set_tier,
    "forge.get_events": get_events,
    "forge.add_perk": add_perk,
    "forge.list_perks": list_perks,
    "forge.remove_perk": remove_perk,
}


def call_forge_tool(manager: ForgeManager, name: str, arguments: dict | None) -> dict:
    """Dispatch a tool call by name."""
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        return {"error": f"Unknown tool: {name}"}

    try:
        return handler(manager, arguments or {})
    except KeyError as e:
        return {"error": f"Missing argument: {e.args[0]}"}
    except InsufficientFundsError as e:
        return {"error": str(e), "available": e.available, "requested": e.requested}
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
            for err in e.errors()
        )
        logger.info("Tool %s rejected arguments: %s", name, problems)
        return {"error": f"Invalid arguments: {problems}"}
    except ForgeError as e:
        logger.info("Tool %s failed: %s", name, e)
        return {"error": str(e)}
