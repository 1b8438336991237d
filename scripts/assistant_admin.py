#!/usr/bin/env python3
"""
Maintenance commands for the help assistant's backing store.

Usage:
    python scripts/assistant_admin.py status
    python scripts/assistant_admin.py invalidate-cache MODULE_ID
    python scripts/assistant_admin.py clear-cache
    python scripts/assistant_admin.py clear-memory SESSION_ID
    python scripts/assistant_admin.py schema > schema.sql

Commands:
    status: Print indexed chunk and cache entry counts
    invalidate-cache: Delete cached answers that used a module (run after re-ingesting its docs)
    clear-cache: Delete every cached answer
    clear-memory: Delete one session's conversation memory
    schema: Print the SQL for the tables and search functions
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from help_assistant.core.config import get_settings
from help_assistant.core.logging import get_logger
from help_assistant.core.modules import get_all_module_ids
from help_assistant.db.assistant_store import SCHEMA_SQL, SupabaseAssistantStore
from help_assistant.db.supabase_client import get_supabase
from help_assistant.query.cache import QueryCache
from help_assistant.query.memory import ConversationMemoryStore

logger = get_logger(__name__)


def _store() -> SupabaseAssistantStore:
    return SupabaseAssistantStore(get_supabase())


def cmd_status(args: argparse.Namespace) -> int:
    store = _store()
    print(f"chunks:        {store.count_chunks()}")
    print(f"cache entries: {store.count_cache_entries()}")
    print(f"modules:       {', '.join(get_all_module_ids())}")
    return 0


def cmd_invalidate_cache(args: argparse.Namespace) -> int:
    if args.module not in get_all_module_ids():
        logger.warning(f"Module '{args.module}' is not in the catalog; invalidating anyway")
    deleted = QueryCache(_store(), get_settings()).invalidate(args.module)
    print(f"Deleted {deleted} cache entries for module {args.module}")
    return 0


def cmd_clear_cache(args: argparse.Namespace) -> int:
    deleted = QueryCache(_store(), get_settings()).clear_all()
    print(f"Deleted {deleted} cache entries")
    return 0


def cmd_clear_memory(args: argparse.Namespace) -> int:
    ConversationMemoryStore(_store(), get_settings()).clear(args.session_id)
    print(f"Cleared memory for session {args.session_id}")
    return 0


def cmd_schema(args: argparse.Namespace) -> int:
    print(SCHEMA_SQL.strip())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Help assistant maintenance commands")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("status", help="Show chunk and cache counts").set_defaults(
        func=cmd_status
    )

    invalidate = subparsers.add_parser(
        "invalidate-cache", help="Delete cached answers that used a module"
    )
    invalidate.add_argument("module", help="Module id, e.g. appointments")
    invalidate.set_defaults(func=cmd_invalidate_cache)

    subparsers.add_parser("clear-cache", help="Delete every cached answer").set_defaults(
        func=cmd_clear_cache
    )

    memory = subparsers.add_parser("clear-memory", help="Delete one session's memory")
    memory.add_argument("session_id", help="Session id")
    memory.set_defaults(func=cmd_clear_memory)

    subparsers.add_parser("schema", help="Print the backing store SQL").set_defaults(
        func=cmd_schema
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        return args.func(args)
    except Exception as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
