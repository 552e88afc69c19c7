"""Command-line front end.

Usage:
    storyforge analyze docs/requirements.md
    storyforge analyze docs/requirements.md --no-golden --target 12
    storyforge feedback run_<id> --file feedback.json --accepted --author ana
    storyforge runs
    storyforge memory add --type rule --title "IVA" --content "Precios sin IVA" --tags fiscal,precios
    storyforge memory list
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from storyforge.config import PipelineSettings
from storyforge.errors import StoryforgeError
from storyforge.feedback import FeedbackApplier
from storyforge.learning import LearningStore
from storyforge.memory import MemoryItemType, MemoryStore, new_memory_item
from storyforge.pipeline import BacklogPipeline, PipelineOptions
from storyforge.retrieval.documents import load_text_document
from storyforge.runs import RunRegistry
from storyforge.storage import JsonFileRecordStore
from storyforge.telemetry import init_telemetry

logger = logging.getLogger(__name__)

LANCEDB_DIRNAME = "lancedb"
RECORDS_DIRNAME = "records"


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def read_feedback_file(path: Path) -> dict:
    """Read a feedback file: a list of stories or ``{"correctedStories": [...]}``.

    Object files may also carry ``notes``, ``author`` and ``accepted``.
    """
    raw = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(raw, list):
        return {"correctedStories": raw}
    if isinstance(raw, dict):
        return raw
    raise StoryforgeError(f"Feedback file must hold a list or an object: {path}")


def _stores(settings: PipelineSettings) -> tuple[JsonFileRecordStore, LearningStore, RunRegistry]:
    records = JsonFileRecordStore(settings.data_dir / RECORDS_DIRNAME)
    return records, LearningStore(records), RunRegistry(records)


def run_analyze(args: argparse.Namespace, settings: PipelineSettings) -> int:
    from storyforge.llm import StrandsCompletionClient
    from storyforge.llm.model_provider import ModelSettings
    from storyforge.memory import LanceMemoryIndex
    from storyforge.retrieval.embedder import TitanEmbedder
    from storyforge.retrieval.vector_store import LanceChunkStore

    path = Path(args.document)
    evidence = load_text_document(path)

    records, learning, registry = _stores(settings)
    pipeline = BacklogPipeline(
        client=StrandsCompletionClient(ModelSettings.from_env()),
        embedder=TitanEmbedder(),
        store=LanceChunkStore(settings.data_dir / LANCEDB_DIRNAME),
        learning=learning,
        registry=registry,
        settings=settings,
        memory=MemoryStore(records),
        memory_index=LanceMemoryIndex(settings.data_dir / LANCEDB_DIRNAME),
    )
    options = PipelineOptions(use_golden=not args.no_golden, target_override=args.target)
    result = pipeline.run(evidence, options, stored_path=str(path.resolve()))
    _print_json(result.to_dict())
    return 0


def run_feedback(args: argparse.Namespace, settings: PipelineSettings) -> int:
    payload = read_feedback_file(Path(args.file))

    accepted = payload.get("accepted", True)
    if not isinstance(accepted, bool):
        raise StoryforgeError(f"\"accepted\" must be true or false, got {accepted!r}")
    if args.accepted:
        accepted = True
    elif args.rejected:
        accepted = False

    records, learning, registry = _stores(settings)
    applier = FeedbackApplier(registry, learning, records, settings)
    result = applier.apply(
        args.run_id,
        payload.get("correctedStories") or [],
        author=args.author or payload.get("author"),
        notes=args.notes or payload.get("notes"),
        accepted=accepted,
    )
    _print_json(result.to_dict())
    return 0


def run_list(args: argparse.Namespace, settings: PipelineSettings) -> int:
    _records, _learning, registry = _stores(settings)
    _print_json([r.to_wire() for r in registry.list()])
    return 0


def run_memory_add(args: argparse.Namespace, settings: PipelineSettings) -> int:
    records, _learning, _registry = _stores(settings)
    item = new_memory_item(
        args.type,
        args.title,
        args.content,
        tags=[t.strip() for t in (args.tags or "").split(",") if t.strip()],
        item_id=args.id,
    )
    _print_json(MemoryStore(records).upsert(item).to_wire())
    return 0


def run_memory_list(args: argparse.Namespace, settings: PipelineSettings) -> int:
    records, _learning, _registry = _stores(settings)
    _print_json([item.to_wire() for item in MemoryStore(records).items()])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storyforge",
        description="Generate a validated user-story backlog from a requirements document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Run the pipeline on a document")
    analyze.add_argument("document", help="Path to a .txt or .md requirements document")
    analyze.add_argument(
        "--no-golden",
        action="store_true",
        help="Do not build the golden style guide from reference stories",
    )
    analyze.add_argument(
        "--target",
        type=int,
        default=0,
        help="Override the computed target story count (default: computed)",
    )
    analyze.set_defaults(handler=run_analyze)

    feedback = subparsers.add_parser("feedback", help="Apply human corrections to a run")
    feedback.add_argument("run_id", help="Completed run id")
    feedback.add_argument("--file", required=True, help="JSON file with corrected stories")
    verdict = feedback.add_mutually_exclusive_group()
    verdict.add_argument(
        "--accepted", action="store_true", help="Explicit approval; bypasses learning thresholds"
    )
    verdict.add_argument("--rejected", action="store_true", help="Learning stays threshold-gated")
    feedback.add_argument("--notes", help="Free-text reviewer notes")
    feedback.add_argument("--author", help="Reviewer name")
    feedback.set_defaults(handler=run_feedback)

    runs = subparsers.add_parser("runs", help="List registered runs")
    runs.set_defaults(handler=run_list)

    memory = subparsers.add_parser("memory", help="Manage curated project memory")
    memory_commands = memory.add_subparsers(dest="memory_command", required=True)

    memory_add = memory_commands.add_parser("add", help="Add or replace a memory item")
    memory_add.add_argument(
        "--type", required=True, choices=[t.value for t in MemoryItemType], help="Item type"
    )
    memory_add.add_argument("--title", required=True, help="Short title")
    memory_add.add_argument("--content", required=True, help="Item text")
    memory_add.add_argument("--tags", help="Comma-separated tags")
    memory_add.add_argument("--id", help="Existing item id to replace (default: new id)")
    memory_add.set_defaults(handler=run_memory_add)

    memory_list = memory_commands.add_parser("list", help="List memory items")
    memory_list.set_defaults(handler=run_memory_list)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    init_telemetry()
    settings = PipelineSettings.from_env()

    try:
        exit_code = args.handler(args, settings)
    except (StoryforgeError, ValueError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
