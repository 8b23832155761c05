"""Analyze documents through a configured provider."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import argparse
import asyncio
from dataclasses import asdict
import json
import uuid
from typing import Any

from dotenv import load_dotenv

from orchestrator.analyzer import DocumentAnalyzer
from orchestrator.config import DEFAULT_CONFIG_PATH, OrchestratorSettings, load_orchestrator_config
from orchestrator.registry import build_registry
from orchestrator.utils.logging_config import setup_logging


def parse_args() -> argparse.Namespace:
    """Parse CLI args."""
    parser = argparse.ArgumentParser(description="Analyze documents with rate-limited AI providers")
    parser.add_argument("files", nargs="+", type=Path)
    parser.add_argument("--prompt", help="Prompt text sent with every document")
    parser.add_argument("--prompt-file", type=Path, help="Read the prompt from a file")
    parser.add_argument("--kind", default="document", help="Operation kind used in the cache key")
    parser.add_argument("--provider", default=None, help="Provider name; defaults to the configured default")
    parser.add_argument("--batch-id", default=None, help="Group results under this id (random when omitted)")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH)
    parser.add_argument("--log-dir", type=Path, default=None)
    parser.add_argument("--keep-batch", action="store_true", help="Do not drop cached results when done")
    parser.add_argument("--dry-run", action="store_true", help="Use the offline mock client")
    args = parser.parse_args()
    if not args.prompt and not args.prompt_file:
        parser.error("one of --prompt or --prompt-file is required")
    return args


def _with_dry_run_keys(settings: OrchestratorSettings) -> OrchestratorSettings:
    for name, provider in settings.providers.items():
        if not provider.keys:
            provider.keys = [f"dry-run-{name}"]
    return settings


async def async_main(args: argparse.Namespace) -> dict[str, Any]:
    settings = load_orchestrator_config(config_path=args.config)
    if args.dry_run:
        settings = _with_dry_run_keys(settings)

    prompt = args.prompt or args.prompt_file.read_text(encoding="utf-8")
    batch_id = args.batch_id or f"batch-{uuid.uuid4().hex[:8]}"
    documents = [(path.name, path.read_bytes()) for path in args.files]

    registry = build_registry(settings, dry_run=args.dry_run)
    analyzer = DocumentAnalyzer(registry)
    try:
        results = await analyzer.analyze_batch(
            documents,
            prompt,
            kind=args.kind,
            provider=args.provider,
            batch_id=batch_id,
        )
        stats = registry.all_stats()
        if not args.keep_batch:
            analyzer.finalize_batch(batch_id)
    finally:
        await registry.close()

    return {
        "batch_id": batch_id,
        "results": [asdict(result) for result in results],
        "stats": stats,
    }


def main() -> None:
    """CLI entry point."""
    load_dotenv()
    args = parse_args()
    setup_logging(log_dir=args.log_dir, name="orchestrator")
    summary = asyncio.run(async_main(args))
    print(json.dumps(summary, indent=2, ensure_ascii=False))
    if any(result["error"] for result in summary["results"]):
        sys.exit(1)


if __name__ == "__main__":
    main()
