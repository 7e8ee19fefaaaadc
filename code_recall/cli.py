"""
Command-line interface for code-recall.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from .config import load_config
from .embedding import EmbeddingError
from .engine import RecallEngine, format_search_results
from .extraction import messages_from_entries
from .llm import LLMError, LLMFactory, provider_completion
from .observability import setup_logging
from .signature import extract_signature, extract_signature_lines, supported_languages
from .store import MemoryStoreError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="code-recall",
        description="code-recall - semantic memory for source code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show the structural signature of a file
  code-recall signature src/events/service.ts

  # Remember a fact for the current project
  code-recall remember "The events table uses soft-deletes"

  # Search remembered facts
  code-recall search "event deletion"

  # Extract memories from a saved session transcript
  code-recall extract session.json --llm anthropic
        """
    )

    parser.add_argument("--project", help="Project directory (default: current directory)")
    parser.add_argument("--db-path", help="Memory database path (default: per-project under ~/.code-recall)")
    parser.add_argument("--config", help="Path to a .code-recall.yml configuration file")
    parser.add_argument(
        "--llm",
        choices=LLMFactory.list_providers(),
        help="LLM provider used for memory extraction"
    )
    parser.add_argument("--model", help="LLM model name")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    signature_parser = subparsers.add_parser("signature", help="Print a file's structural signature")
    signature_parser.add_argument("file", help="Source file")
    signature_parser.add_argument(
        "--lines",
        action="store_true",
        help="Print the first line of each declaration instead of names"
    )

    subparsers.add_parser("memories", help="List stored memories")

    search_parser = subparsers.add_parser("search", help="Search stored memories")
    search_parser.add_argument("query", help="What to search for")
    search_parser.add_argument("--limit", type=int, help="Maximum results (default: 10)")

    remember_parser = subparsers.add_parser("remember", help="Store a fact")
    remember_parser.add_argument("text", help="Fact to remember")

    forget_parser = subparsers.add_parser("forget", help="Delete a memory by id")
    forget_parser.add_argument("id", type=int, help="Memory id")

    extract_parser = subparsers.add_parser("extract", help="Extract memories from a session transcript")
    extract_parser.add_argument("transcript", help="Transcript file (JSON array or JSON lines)")
    extract_parser.add_argument("--session-id", help="Session id recorded with the memories")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "signature":
        return handle_signature(args)

    try:
        return asyncio.run(run_engine_command(args))
    except (MemoryStoreError, EmbeddingError, LLMError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def handle_signature(args) -> int:
    path = Path(args.file)
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error reading {path}: {e}", file=sys.stderr)
        return 1

    extract = extract_signature_lines if args.lines else extract_signature
    signature = extract(str(path), content)
    if signature is None:
        languages = ", ".join(sorted(supported_languages()))
        print(f"No signature for {path} (supported languages: {languages})", file=sys.stderr)
        return 1

    print(signature)
    return 0


def create_engine(args) -> RecallEngine:
    overrides = {}
    if args.llm:
        overrides["llm_provider"] = args.llm
    if args.model:
        overrides["llm_model"] = args.model

    config = load_config(config_path=args.config, project_path=args.project, **overrides)
    return RecallEngine(project_path=args.project, config=config, db_path=args.db_path)


async def run_engine_command(args) -> int:
    engine = create_engine(args)
    try:
        if args.command == "memories":
            return await handle_memories(engine)
        elif args.command == "search":
            return await handle_search(engine, args)
        elif args.command == "remember":
            return await handle_remember(engine, args)
        elif args.command == "forget":
            return await handle_forget(engine, args)
        elif args.command == "extract":
            return await handle_extract(engine, args)
        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await engine.close()


async def handle_memories(engine: RecallEngine) -> int:
    memories = await engine.list_memories()
    if not memories:
        print("No memories stored yet.")
        return 0

    print(f"{len(memories)} memories:")
    for memory in memories:
        print(f"  {memory.id}. [{memory.created_at[:10]}] {memory.text}")
    return 0


async def handle_search(engine: RecallEngine, args) -> int:
    if await engine.count() == 0:
        print("No memories stored yet.")
        return 0

    matches = await engine.search(args.query, limit=args.limit)
    if not matches:
        print("No relevant memories found.")
        return 0

    print(format_search_results(matches))
    return 0


async def handle_remember(engine: RecallEngine, args) -> int:
    text = args.text.strip()
    memory_id = await engine.remember(text)
    print(f"Remembered (id: {memory_id}): {text}")
    return 0


async def handle_forget(engine: RecallEngine, args) -> int:
    await engine.forget(args.id)
    print(f"Deleted memory {args.id}")
    return 0


async def handle_extract(engine: RecallEngine, args) -> int:
    entries = load_transcript(Path(args.transcript))
    messages = messages_from_entries(entries)
    if not messages:
        print("No user or assistant messages in transcript.")
        return 0

    provider = LLMFactory.create_from_config(engine.config.llm.to_llm_config())
    outcome = await engine.extract_and_store(
        messages,
        provider_completion(provider),
        session_id=args.session_id or str(Path(args.transcript).resolve()),
    )

    print(
        f"Extracted {outcome.extracted} memories: stored {outcome.stored}, "
        f"skipped {outcome.skipped} duplicates."
    )
    return 0


def load_transcript(path: Path) -> List[Any]:
    """
    Read transcript entries from a JSON array or a JSON-lines file.

    Raises:
        ValueError: If the file is neither.
    """
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except ValueError:
        data = None

    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return [data]

    entries = []
    for number, line in enumerate(text.splitlines(), 1):
        if not line.strip():
            continue
        try:
            entries.append(json.loads(line))
        except ValueError as e:
            raise ValueError(f"{path}:{number}: invalid JSON ({e})") from e
    return entries


if __name__ == "__main__":
    sys.exit(main())
