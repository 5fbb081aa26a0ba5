#!/usr/bin/env python3
"""
Listing Guard

Checks a marketplace listing (title, description, tags, category, price)
against prohibited-term rules and policy section summaries, optionally asks
Claude for additional flagged terms, and prints a scored compliance report.

Usage:
    python main.py --title "..." --description "..." [--tags "a, b"] [--category C] [--price P]
    python main.py --file listing.txt [--json report.json]
    python main.py --enqueue-sections raw_sections.json
    python main.py --process-sections [N]

Rules and policy sections are read from data/ unless overridden with
--rules / --policies / --fallback-rules (JSON or XLSX).
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

from listing_review.config import (
    ANTHROPIC_API_KEY, LLM_FALLBACK_MODELS, AI_TIMEOUT_SECONDS,
    RULES_PATH, POLICIES_PATH, FALLBACK_RULES_PATH,
)
from listing_review.extractors import FileStore, DataUnavailableError, compose_listing_text
from listing_review.database import DatabaseStore, enqueue_sections, run_worker, job_progress
from listing_review.analysis import ClaudeAugmenter
from listing_review.pipeline import run_analysis, ListingValidationError
from listing_review.output import print_rich_summary

_VALUE_FLAGS = {
    "--title": "title",
    "--description": "description",
    "--tags": "tags",
    "--category": "category",
    "--price": "price",
    "--file": "file",
    "--rules": "rules",
    "--policies": "policies",
    "--fallback-rules": "fallback_rules",
    "--json": "json",
    "--enqueue-sections": "enqueue",
}


def _usage() -> None:
    print("Usage: python main.py [--title T] [--description D] [--tags T] [--category C] [--price P]")
    print("                      [--file listing.txt] [--rules PATH] [--policies PATH]")
    print("                      [--fallback-rules PATH] [--db] [--no-ai] [--json OUT]")
    print("       python main.py --enqueue-sections raw_sections.json")
    print("       python main.py --process-sections [N]")
    print("\nExamples:")
    print('  python main.py --title "Vintage Nike poster" --description "Original print" --no-ai')
    print("  python main.py --file listing.txt --json report.json")
    print("  python main.py --process-sections 5        # summarize up to 5 queued policy sections")


def parse_args(args: list[str]) -> dict:
    opts: dict = {"db": False, "no_ai": False, "process_sections": None}
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in _VALUE_FLAGS and i + 1 < len(args):
            opts[_VALUE_FLAGS[arg]] = args[i + 1]
            i += 2
        elif arg == "--db":
            opts["db"] = True
            i += 1
        elif arg == "--no-ai":
            opts["no_ai"] = True
            i += 1
        elif arg == "--process-sections":
            opts["process_sections"] = 0
            if i + 1 < len(args) and args[i + 1].isdigit():
                opts["process_sections"] = int(args[i + 1])
                i += 1
            i += 1
        elif arg in ("-h", "--help"):
            opts["help"] = True
            i += 1
        else:
            print(f"Error: unknown or incomplete argument '{arg}'")
            sys.exit(1)
    return opts


def _process_sections(limit: int) -> None:
    if not ANTHROPIC_API_KEY:
        print("Error: ANTHROPIC_API_KEY is not set; cannot summarize policy sections.")
        sys.exit(1)
    print(f"Processing queued policy sections{f' (max {limit})' if limit else ''}...")
    stats = run_worker(max_jobs=limit or None)
    progress = job_progress()
    print(f"  {stats['completed']} completed, {stats['failed']} failed this run")
    print(f"  Queue: {progress['pending']} pending, {progress['completed']} completed, "
          f"{progress['failed']} failed of {progress['total']}")


def _enqueue(path: Path) -> None:
    if not path.exists():
        print(f"Error: File not found: {path}")
        sys.exit(1)
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("sections", [])
    added = enqueue_sections(data)
    print(f"Queued {added} new policy sections ({len(data) - added} already known or invalid).")


def main(argv: Optional[list[str]] = None) -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    # ---- Parse args ----
    args = sys.argv[1:] if argv is None else argv
    opts = parse_args(args)
    if not args or opts.get("help"):
        _usage()
        sys.exit(0)

    if opts.get("enqueue"):
        _enqueue(Path(opts["enqueue"]))
        return
    if opts["process_sections"] is not None:
        _process_sections(opts["process_sections"])
        return

    # ---- Listing text ----
    if opts.get("file"):
        listing_path = Path(opts["file"])
        if not listing_path.exists():
            print(f"Error: File not found: {listing_path}")
            sys.exit(1)
        listing_text = listing_path.read_text(encoding="utf-8")
    else:
        listing_text = compose_listing_text(
            title=opts.get("title", ""),
            description=opts.get("description", ""),
            tags=opts.get("tags", ""),
            category=opts.get("category", ""),
            price=opts.get("price", ""),
        )

    # ---- Data + AI setup ----
    store = FileStore(
        rules_path=Path(opts.get("rules") or RULES_PATH),
        policies_path=Path(opts.get("policies") or POLICIES_PATH),
        fallback_rules_path=Path(opts.get("fallback_rules") or FALLBACK_RULES_PATH),
    )
    if opts["db"]:
        store = DatabaseStore(store)

    augmenter = None
    if not opts["no_ai"]:
        if ANTHROPIC_API_KEY:
            augmenter = ClaudeAugmenter(models=LLM_FALLBACK_MODELS, policy_sections=_safe_sections(store))
        else:
            print("Warning: ANTHROPIC_API_KEY not set. Running without AI augmentation.")

    print("Listing Guard")
    print(f"AI augmentation: {', '.join(augmenter.models) if augmenter else 'off'}")
    print()

    def on_progress(step, total, msg):
        print(f"[Step {step}/{total}] {msg}" if not msg.startswith(" ") else msg)

    try:
        report, metadata = run_analysis(
            listing_text, store, augmenter=augmenter,
            timeout=AI_TIMEOUT_SECONDS, progress_callback=on_progress,
        )
    except ListingValidationError as e:
        print(f"Error: {e}. Provide --title/--description or --file.")
        sys.exit(1)
    except DataUnavailableError as e:
        print(f"Error: {e}")
        sys.exit(2)

    if opts.get("json"):
        out_path = Path(opts["json"])
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "w") as f:
            json.dump({"metadata": metadata, "report": report.to_payload()}, f, indent=2, ensure_ascii=False)
        print(f"  Report written to: {out_path}")

    # ---- Print summary (rich or plain) ----
    metadata["ai_model"] = metadata["ai_model"] if metadata["ai_used"] else "off"
    print_rich_summary(report, metadata)


def _safe_sections(store) -> list:
    """Policy sections for the AI prompt; the report path surfaces load errors itself."""
    try:
        return store.fetch_policy_sections()
    except (OSError, ValueError) as e:
        logging.getLogger(__name__).warning("Could not load policy sections for AI prompt: %s", e)
        return []


if __name__ == "__main__":
    main()
