"""
Command-line interface for the forge.

Run with:
    forge create "Aria Vance" --world Emberfall
    forge award <character_id> 50 "quest reward"
    forge tick <character_id> --count 10
    forge sheet <character_id>
    forge add-perk <character_id> "Ember Sight" Senses "Forge Codex" --cost 100
"""

import argparse
import logging
import os
import sys

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .errors import ConfigurationInvalid, ForgeError
from .state.config import load_config
from .state.manager import ForgeManager
from .state.schema import EventKind, LedgerEvent

console = Console()

EVENT_STYLES = {
    EventKind.AWARD: "green",
    EventKind.SPEND: "yellow",
    EventKind.ADVANCEMENT_NOTE: "magenta",
}


# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------

def _event_table(events: list[LedgerEvent], title: str = "Ledger") -> Table:
    table = Table(title=title)
    table.add_column("#", style="dim")
    table.add_column("When")
    table.add_column("Kind")
    table.add_column("Delta", justify="right")
    table.add_column("Detail")

    for event in events:
        style = EVENT_STYLES.get(event.kind, "white")
        delta = "" if event.delta_cp is None else f"{event.delta_cp:+d}"
        detail = getattr(event.payload, "reason", None) or getattr(event.payload, "message", "")
        table.add_row(
            str(event.seq),
            event.created_at.strftime("%Y-%m-%d %H:%M"),
            f"[{style}]{event.kind.value}[/{style}]",
            delta,
            detail,
        )
    return table


def _show_event(event: LedgerEvent) -> None:
    style = EVENT_STYLES.get(event.kind, "white")
    console.print(f"[{style}]{event.describe()}[/{style}] [dim]({event.id})[/dim]")


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

def cmd_create(manager: ForgeManager, args: argparse.Namespace) -> None:
    """Create a character."""
    record = manager.create_character(args.name, args.world)
    console.print(f"[green]Created character:[/green] {record.name} [dim]({record.id})[/dim]")
    console.print(f"Tier: {record.tier}")


def cmd_list(manager: ForgeManager, args: argparse.Namespace) -> None:
    """List all characters."""
    characters = manager.list_characters()
    if not characters:
        console.print("[dim]No characters found[/dim]")
        return

    table = Table(title="Characters")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("World")
    table.add_column("Tier")
    table.add_column("CP (avail/total)", justify="right")

    for record in characters:
        table.add_row(
            record.id,
            record.name,
            record.world,
            record.tier,
            f"{record.cp_available}/{record.cp_total}",
        )

    console.print(table)


def cmd_sheet(manager: ForgeManager, args: argparse.Namespace) -> None:
    """Show a character sheet."""
    sheet = manager.get_sheet(args.character_id)
    next_tier = sheet["next_tier"]
    lines = [
        f"[bold]{sheet['name']}[/bold]" + (f" of {sheet['world']}" if sheet["world"] else ""),
        f"Tier: [magenta]{sheet['tier']}[/magenta]",
        f"CP: {sheet['cp_total']} earned, {sheet['cp_spent']} spent, "
        f"[green]{sheet['cp_available']} available[/green]",
        f"Responses: {sheet['response_count']}/{sheet['cycle_length']}",
    ]
    if next_tier:
        lines.append(f"[dim]Next: {next_tier['name']} at {next_tier['min_cp']} CP[/dim]")
    if sheet["top_perks"]:
        owned = ", ".join(p["name"] for p in sheet["top_perks"])
        lines.append(f"Perks: [cyan]{owned}[/cyan]")

    console.print(Panel("\n".join(lines), title=sheet["id"]))
    if args.prompt:
        console.print(sheet["summary_for_prompt"], markup=False)


def cmd_award(manager: ForgeManager, args: argparse.Namespace) -> None:
    """Award CP."""
    _show_event(manager.award(args.character_id, args.amount, args.reason))


def cmd_spend(manager: ForgeManager, args: argparse.Namespace) -> None:
    """Spend CP."""
    _show_event(manager.spend(args.character_id, args.amount, args.reason))


def cmd_tick(manager: ForgeManager, args: argparse.Namespace) -> None:
    """Record one or more responses."""
    for _ in range(args.count):
        result = manager.tick(args.character_id)
        if result.cycle_complete:
            console.print(f"[green]Cycle complete: +{result.cp_awarded} CP[/green]")
    console.print(f"Responses: {result.response_count}/{manager.config.cycle_length}")


def cmd_set_tier(manager: ForgeManager, args: argparse.Namespace) -> None:
    """Override the stored tier."""
    record = manager.set_tier(args.character_id, args.tier)
    console.print(f"Tier set to [magenta]{record.tier}[/magenta]")


def cmd_log(manager: ForgeManager, args: argparse.Namespace) -> None:
    """Show the ledger."""
    events = manager.get_event_log(args.character_id, args.limit)
    if not events:
        console.print("[dim]No ledger events[/dim]")
        return
    console.print(_event_table(events))


def cmd_perks(manager: ForgeManager, args: argparse.Namespace) -> None:
    """List unlocked perks."""
    perks = manager.list_perks(
        args.character_id, q=args.q, category=args.category, limit=args.limit
    )
    if not perks:
        console.print("[dim]No perks found[/dim]")
        return

    table = Table(title="Perks")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Source")
    table.add_column("CP", justify="right")

    for perk in perks:
        cost = "" if perk.cost_cp is None else str(perk.cost_cp)
        table.add_row(perk.id, perk.name, perk.category, perk.source, cost)

    console.print(table)


def cmd_add_perk(manager: ForgeManager, args: argparse.Namespace) -> None:
    """Record an unlocked perk."""
    perk = manager.add_perk(
        args.character_id,
        args.name,
        args.category,
        args.source,
        cost_cp=args.cost,
        description=args.description,
    )
    console.print(f"[cyan]Unlocked:[/cyan] {perk.describe()} [dim]({perk.id})[/dim]")


def cmd_remove_perk(manager: ForgeManager, args: argparse.Namespace) -> None:
    """Remove an unlocked perk."""
    if manager.remove_perk(args.character_id, args.perk_id):
        console.print(f"Removed perk [dim]{args.perk_id}[/dim]")
    else:
        console.print(f"[yellow]No perk {args.perk_id} on {args.character_id}[/yellow]")


# -----------------------------------------------------------------------------
# Main
# -----------------------------------------------------------------------------

def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="forge", description="Celestial Forge progression ledger")
    parser.add_argument("--config", default=None, help="Path to forge.yaml (default: $FORGE_CONFIG or ./forge.yaml)")
    parser.add_argument(
        "--data-dir",
        default=os.environ.get("FORGE_DATA_DIR", "forge_data"),
        help="Directory for character ledgers",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create", help="Create a character")
    p.add_argument("name")
    p.add_argument("--world", default="")
    p.set_defaults(func=cmd_create)

    p = sub.add_parser("list", help="List characters")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("sheet", help="Show a character sheet")
    p.add_argument("character_id")
    p.add_argument("--prompt", action="store_true", help="Also print the prompt summary")
    p.set_defaults(func=cmd_sheet)

    for name, func in (("award", cmd_award), ("spend", cmd_spend)):
        p = sub.add_parser(name, help=f"{name.title()} CP")
        p.add_argument("character_id")
        p.add_argument("amount", type=int)
        p.add_argument("reason")
        p.set_defaults(func=func)

    p = sub.add_parser("tick", help="Record responses toward the cycle")
    p.add_argument("character_id")
    p.add_argument("--count", type=_positive_int, default=1)
    p.set_defaults(func=cmd_tick)

    p = sub.add_parser("set-tier", help="Manually override the stored tier")
    p.add_argument("character_id")
    p.add_argument("tier")
    p.set_defaults(func=cmd_set_tier)

    p = sub.add_parser("log", help="Show ledger events, newest first")
    p.add_argument("character_id")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(func=cmd_log)

    p = sub.add_parser("perks", help="List unlocked perks")
    p.add_argument("character_id")
    p.add_argument("--q", default=None, help="Search name and description")
    p.add_argument("--category", default=None)
    p.add_argument("--limit", type=int, default=None)
    p.set_defaults(func=cmd_perks)

    p = sub.add_parser("add-perk", help="Record an unlocked perk (does not spend CP)")
    p.add_argument("character_id")
    p.add_argument("name")
    p.add_argument("category")
    p.add_argument("source")
    p.add_argument("--cost", type=int, default=None, help="CP cost, for reference")
    p.add_argument("--description", default=None)
    p.set_defaults(func=cmd_add_perk)

    p = sub.add_parser("remove-perk", help="Remove an unlocked perk")
    p.add_argument("character_id")
    p.add_argument("perk_id")
    p.set_defaults(func=cmd_remove_perk)

    return parser


def log_level(args: argparse.Namespace) -> int:
    return logging.DEBUG if args.debug else logging.INFO


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the forge CLI."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=log_level(args),
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except ConfigurationInvalid as e:
        console.print(f"[red]{escape(str(e))}[/red]", soft_wrap=True)
        return 1

    manager = ForgeManager(config, args.data_dir)
    try:
        args.func(manager, args)
    except (ForgeError, ValidationError) as e:
        console.print(f"[red]{escape(str(e))}[/red]", soft_wrap=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
