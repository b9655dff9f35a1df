"""Command-line interface for inspecting and editing conversation memory.

Records live as JSON files under ``$CHAR_KNOWLEDGE_HOME/conversations``.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from .config import MemoryConfig, default_home, load_config
from .errors import FactNotFoundError, ImportValidationError
from .extractor import RuleExtractor
from .gate import ConversationContext
from .logging import JSONLLogger
from .manager import MemoryManager, WriteResult
from .models import FactStatus, FactType
from .repository import JSONFileRepository
from .rules import RuleSet


def _load_config(args: argparse.Namespace) -> MemoryConfig:
    config = load_config()
    if getattr(args, "experience", False):
        config.experience_rules = True
    return config


def _get_manager(args: argparse.Namespace) -> MemoryManager:
    """Create a MemoryManager backed by the JSON file repository."""
    home = default_home()
    config = _load_config(args)
    return MemoryManager(
        JSONFileRepository(home / "conversations"),
        config=config,
        event_logger=JSONLLogger(home / "logs"),
    )


def _context(args: argparse.Namespace) -> ConversationContext:
    return ConversationContext(
        conversation_id=args.conversation,
        persona_id=args.persona,
        is_multi_party=args.group,
    )


def _report_write(result: WriteResult) -> int:
    """Print the outcome of a write and return the exit code."""
    if not result.applied:
        print(f"Error: memory is not writable here ({result.decision.value}).")
        return 1
    if not result.persisted:
        print("Warning: change kept in memory but could not be saved.")
    print(f"added: {result.added}, updated: {result.updated}, removed: {result.removed}")
    return 0


def _print_facts(facts) -> None:
    for fact in facts:
        tags = f" [{', '.join(fact.tags)}]" if fact.tags else ""
        print(f"{fact.id}  {fact.type.value:<18} {fact.status.value:<8} {fact.confidence:.2f}  {fact.value}{tags}")


def cmd_extract(args: argparse.Namespace) -> int:
    """Show the facts an utterance would produce, without storing anything."""
    config = _load_config(args)
    facts = RuleExtractor(RuleSet.default(config)).extract(args.text, config)
    if not facts:
        print("No facts found.")
        return 0
    for fact in facts:
        print(f"{fact.type.value:<18} {fact.confidence:.2f}  {fact.value}")
    return 0


def cmd_rules(args: argparse.Namespace) -> int:
    """List extraction rules in evaluation order."""
    config = _load_config(args)
    rules = RuleSet.default(config)

    print(f"\n{'Name':<24} {'Type':<18} {'Conf':<6} Status")
    print("-" * 60)
    for rule in rules:
        status = "enabled" if rule.is_enabled(config) else "disabled"
        print(f"{rule.name:<24} {rule.fact_type.value:<18} {rule.confidence:<6.2f} {status}")
    print(f"\nTotal: {len(rules)} rule(s)")
    return 0


async def _observe(args: argparse.Namespace) -> int:
    manager = _get_manager(args)
    await manager.open(_context(args))
    result = await manager.observe(args.text)
    code = _report_write(result)
    _print_facts(result.facts)
    return code


def cmd_observe(args: argparse.Namespace) -> int:
    """Extract facts from a user message and merge them into memory."""
    return asyncio.run(_observe(args))


async def _inject(args: argparse.Namespace) -> int:
    manager = _get_manager(args)
    await manager.open(_context(args))
    result = manager.build_prompt(args.query)
    if result.cleared:
        print(f"No injection ({result.decision.value}).")
        return 0
    print(f"# depth: {result.depth}")
    print(result.text)
    return 0


def cmd_inject(args: argparse.Namespace) -> int:
    """Print the memory block that would be injected."""
    return asyncio.run(_inject(args))


async def _list(args: argparse.Namespace) -> int:
    manager = _get_manager(args)
    view = await manager.open(_context(args))
    owner = view.owner_char_id if view.owner_char_id is not None else "(unlocked)"
    print(f"Conversation: {view.conversation_id}")
    print(f"Owner: {owner}")
    print(f"Writable: {'yes' if view.is_owner else 'no (' + view.decision.value + ')'}")
    if not view.facts:
        print("No facts stored.")
        return 0
    print()
    _print_facts(view.facts)
    print(f"\nTotal: {len(view.facts)} fact(s)")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """Show owner status and stored facts."""
    return asyncio.run(_list(args))


async def _add(args: argparse.Namespace) -> int:
    manager = _get_manager(args)
    await manager.open(_context(args))
    result = await manager.add_fact(
        args.value,
        args.type,
        confidence=args.confidence,
        tags=args.tags.split(",") if args.tags else None,
    )
    code = _report_write(result)
    _print_facts(result.facts)
    return code


def cmd_add(args: argparse.Namespace) -> int:
    """Add a fact manually."""
    return asyncio.run(_add(args))


async def _edit(args: argparse.Namespace) -> int:
    manager = _get_manager(args)
    await manager.open(_context(args))
    try:
        result = await manager.edit_fact(
            args.fact_id,
            fact_type=args.type,
            value=args.value,
            status=args.status,
            confidence=args.confidence,
            tags=args.tags,
        )
    except FactNotFoundError as e:
        print(f"Error: {e}")
        return 1
    code = _report_write(result)
    _print_facts(result.facts)
    return code


def cmd_edit(args: argparse.Namespace) -> int:
    """Edit a stored fact."""
    return asyncio.run(_edit(args))


async def _delete(args: argparse.Namespace) -> int:
    manager = _get_manager(args)
    await manager.open(_context(args))
    result = await manager.delete_fact(args.fact_id)
    if result.applied and not result.removed:
        print(f"Error: Fact '{args.fact_id}' not found.")
        return 1
    return _report_write(result)


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete a stored fact."""
    return asyncio.run(_delete(args))


async def _export(args: argparse.Namespace) -> int:
    manager = _get_manager(args)
    await manager.open(_context(args))
    payload = manager.export_json()
    if args.output:
        Path(args.output).write_text(payload + "\n", encoding="utf-8")
        print(f"Exported to {args.output}")
    else:
        print(payload)
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Export a conversation's memory as JSON."""
    return asyncio.run(_export(args))


async def _import(args: argparse.Namespace) -> int:
    path = Path(args.file)
    try:
        payload = path.read_text(encoding="utf-8")
    except OSError as e:
        print(f"Error: cannot read {path}: {e}")
        return 1

    manager = _get_manager(args)
    await manager.open(_context(args))
    try:
        result = await manager.import_json(payload)
    except ImportValidationError as e:
        print(f"Error: import failed: {e}")
        return 1
    return _report_write(result)


def cmd_import(args: argparse.Namespace) -> int:
    """Replace a conversation's memory with an exported file."""
    return asyncio.run(_import(args))


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="char-knowledge",
        description="Inspect and edit per-conversation character memory",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    context = argparse.ArgumentParser(add_help=False)
    context.add_argument("conversation", help="Conversation id")
    context.add_argument("--persona", "-p", default=None, help="Active persona (character) id")
    context.add_argument("--group", action="store_true", help="Multi-party conversation")

    rules_flags = argparse.ArgumentParser(add_help=False)
    rules_flags.add_argument(
        "--experience", action="store_true", help="Enable the opt-in experience rules"
    )

    fact_types = [t.value for t in FactType]
    statuses = [s.value for s in FactStatus]

    extract_parser = subparsers.add_parser(
        "extract", parents=[rules_flags], help="Extract facts from text without storing them"
    )
    extract_parser.add_argument("text", help="Utterance to analyze")
    extract_parser.set_defaults(func=cmd_extract)

    rules_parser = subparsers.add_parser("rules", parents=[rules_flags], help="List extraction rules")
    rules_parser.set_defaults(func=cmd_rules)

    observe_parser = subparsers.add_parser(
        "observe", parents=[context, rules_flags], help="Merge facts from a user message"
    )
    observe_parser.add_argument("text", help="User message")
    observe_parser.set_defaults(func=cmd_observe)

    inject_parser = subparsers.add_parser(
        "inject", parents=[context], help="Print the memory block for the next generation"
    )
    inject_parser.add_argument("--query", "-q", default=None, help="Text to rank facts against")
    inject_parser.set_defaults(func=cmd_inject)

    list_parser = subparsers.add_parser("list", parents=[context], help="List stored facts")
    list_parser.set_defaults(func=cmd_list)

    add_parser = subparsers.add_parser("add", parents=[context], help="Add a fact")
    add_parser.add_argument("value", help="Fact text")
    add_parser.add_argument("--type", "-t", choices=fact_types, default=FactType.OTHER.value)
    add_parser.add_argument("--confidence", "-c", type=float, default=0.5)
    add_parser.add_argument("--tags", default=None, help="Comma-separated tags")
    add_parser.set_defaults(func=cmd_add)

    edit_parser = subparsers.add_parser("edit", parents=[context], help="Edit a fact")
    edit_parser.add_argument("fact_id", help="Fact id")
    edit_parser.add_argument("--type", "-t", choices=fact_types, default=None)
    edit_parser.add_argument("--value", default=None)
    edit_parser.add_argument("--status", choices=statuses, default=None)
    edit_parser.add_argument("--confidence", "-c", type=float, default=None)
    edit_parser.add_argument("--tags", default=None, help="Comma-separated tags")
    edit_parser.set_defaults(func=cmd_edit)

    delete_parser = subparsers.add_parser("delete", parents=[context], help="Delete a fact")
    delete_parser.add_argument("fact_id", help="Fact id")
    delete_parser.set_defaults(func=cmd_delete)

    export_parser = subparsers.add_parser("export", parents=[context], help="Export memory as JSON")
    export_parser.add_argument("--output", "-o", default=None, help="Write to a file instead of stdout")
    export_parser.set_defaults(func=cmd_export)

    import_parser = subparsers.add_parser("import", parents=[context], help="Import memory from JSON")
    import_parser.add_argument("file", help="Exported JSON file")
    import_parser.set_defaults(func=cmd_import)

    return parser


def run_cli(args: list[str] | None = None) -> int:
    """Run the CLI.

    Args:
        args: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code.
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 1

    return parsed.func(parsed)


if __name__ == "__main__":
    sys.exit(run_cli())
