"""
Celestial Forge MCP Server.

Exposes character progression (CP awards and spends, activity ticks, tiers,
the ledger event log) via the Model Context Protocol over stdio.

Configuration:
    FORGE_CONFIG    Path to forge.yaml (cycle size, cycle award, tier table)
    FORGE_DATA_DIR  Directory for character ledgers (default: forge_data)
"""

import json
import logging
import os
import sys

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .errors import ConfigurationInvalid
from .state.config import load_config
from .state.manager import ForgeManager
from .tools import call_forge_tool

# Setup logging (stderr; stdout carries the protocol)
logging.basicConfig(level=logging.INFO, stream=sys.stderr)
logger = logging.getLogger("celestial-forge")

# Initialize server
server = Server("celestial-forge")

DATA_DIR_ENV_VAR = "FORGE_DATA_DIR"
DEFAULT_DATA_DIR = "forge_data"

# Built in main() once configuration has loaded
_manager: ForgeManager | None = None


def _character_id_schema(extra: dict | None = None, required: list[str] | None = None) -> dict:
    properties = {
        "character_id": {
            "type": "string",
            "description": "Character ID",
        },
    }
    properties.update(extra or {})
    return {
        "type": "object",
        "properties": properties,
        "required": ["character_id"] + (required or []),
    }


# -----------------------------------------------------------------------------
# Tools
# -----------------------------------------------------------------------------

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available forge tools."""
    return [
        Tool(
            name="forge.create_character",
            description="Create a new character at the floor tier with no CP",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Character name"},
                    "world": {"type": "string", "description": "World/campaign name"},
                },
                "required": ["name"],
            },
        ),
        Tool(
            name="forge.get_sheet",
            description="Get a character sheet with summary for prompts",
            inputSchema=_character_id_schema(),
        ),
        Tool(
            name="forge.list_characters",
            description="List all characters",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        Tool(
            name="forge.delete_character",
            description="Delete a character and its ledger events",
            inputSchema=_character_id_schema(),
        ),
        Tool(
            name="forge.award_cp",
            description="Award CP to a character",
            inputSchema=_character_id_schema(
                {
                    "amount": {
                        "type": "integer",
                        "minimum": 0,
                        "description": "CP amount to award",
                    },
                    "reason": {"type": "string", "description": "Reason for award"},
                },
                required=["amount", "reason"],
            ),
        ),
        Tool(
            name="forge.spend_cp",
            description="Spend CP from a character's available balance",
            inputSchema=_character_id_schema(
                {
                    "amount": {
                        "type": "integer",
                        "minimum": 0,
                        "description": "CP amount to spend",
                    },
                    "reason": {"type": "string", "description": "Reason for spending"},
                },
                required=["amount", "reason"],
            ),
        ),
        Tool(
            name="forge.tick_response",
            description="Increment response counter and award CP if cycle completes",
            inputSchema=_character_id_schema(),
        ),
        Tool(
            name="forge.set_tier",
            description="Manually set character tier (no validation, no ledger event)",
            inputSchema=_character_id_schema(
                {"tier": {"type": "string", "description": "Tier name"}},
                required=["tier"],
            ),
        ),
        Tool(
            name="forge.get_events",
            description="Get a character's ledger events, newest first",
            inputSchema=_character_id_schema(
                {
                    "limit": {
                        "type": "integer",
                        "description": "Maximum events to return",
                        "default": 50,
                    },
                },
            ),
        ),
        Tool(
            name="forge.add_perk",
            description="Add an unlocked perk to a character (does not spend CP)",
            inputSchema=_character_id_schema(
                {
                    "perk_id": {"type": "string", "description": "Catalog perk ID (optional)"},
                    "name": {"type": "string", "description": "Perk name"},
                    "category": {"type": "string", "description": "Perk category"},
                    "source": {"type": "string", "description": "Perk source/origin"},
                    "cost_cp": {"type": "integer", "minimum": 0, "description": "CP cost"},
                    "description": {"type": "string", "description": "Perk description"},
                },
                required=["name", "category", "source"],
            ),
        ),
        Tool(
            name="forge.list_perks",
            description="List a character's unlocked perks, newest first",
            inputSchema=_character_id_schema(
                {
                    "q": {"type": "string", "description": "Search name and description"},
                    "category": {"type": "string", "description": "Filter by category"},
                    "limit": {"type": "integer", "description": "Maximum results"},
                },
            ),
        ),
        Tool(
            name="forge.remove_perk",
            description="Remove an unlocked perk from a character",
            inputSchema=_character_id_schema(
                {
                    "unlocked_perk_id": {
                        "type": "string",
                        "description": "Unlocked perk ID to remove",
                    },
                },
                required=["unlocked_perk_id"],
            ),
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Execute a forge tool."""
    if _manager is None:
        result = {"error": "Forge not initialized"}
    else:
        result = call_forge_tool(_manager, name, arguments)

    return [TextContent(type="text", text=json.dumps(result, indent=2))]


# -----------------------------------------------------------------------------
# Main
# -----------------------------------------------------------------------------

async def run_server():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            server.create_initialization_options(),
        )


def main():
    """Entry point."""
    global _manager
    import asyncio

    try:
        config = load_config()
    except ConfigurationInvalid as e:
        logger.error("%s", e)
        sys.exit(1)

    data_dir = os.environ.get(DATA_DIR_ENV_VAR, DEFAULT_DATA_DIR)
    _manager = ForgeManager(config, data_dir)
    logger.info("Celestial Forge MCP server running on stdio (data: %s)", data_dir)
    asyncio.run(run_server())


if __name__ == "__main__":
    main()
