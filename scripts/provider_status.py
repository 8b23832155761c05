"""Report provider configuration, key pool state and connectivity."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import argparse
import asyncio
import json
from typing import Any

from dotenv import load_dotenv

from orchestrator.config import DEFAULT_CONFIG_PATH, load_orchestrator_config
from orchestrator.fingerprint import make_fingerprint
from orchestrator.key_pool import Credential
from orchestrator.registry import build_registry
from orchestrator.utils.logging_config import setup_logging


PROBE_PROMPT = "Return the single word OK."


def parse_args() -> argparse.Namespace:
    """Parse CLI args."""
    parser = argparse.ArgumentParser(description="Show provider status and probe connectivity")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH)
    parser.add_argument("--no-probe", action="store_true", help="Skip the live connectivity probe")
    parser.add_argument("--dry-run", action="store_true", help="Probe with the offline mock client")
    return parser.parse_args()


async def probe_providers(*, config_path: Path, probe: bool, dry_run: bool) -> dict[str, Any]:
    """Send one tiny request through every provider that has credentials."""
    settings = load_orchestrator_config(config_path=config_path)
    configured = {
        name: {"keys_env": provider.keys_env, "keys": len(provider.keys), "model": provider.model}
        for name, provider in settings.providers.items()
    }
    if dry_run:
        for name, provider in settings.providers.items():
            provider.keys = provider.keys or [f"dry-run-{name}"]
    if not any(provider.keys for provider in settings.providers.values()):
        return {"configured": configured, "providers": {}, "all_ok": False}

    registry = build_registry(settings, dry_run=dry_run)
    status: dict[str, dict[str, Any]] = {}
    try:
        for name in registry.available_providers():
            facade = registry.require(name)
            client = registry.client(name)
            entry: dict[str, Any] = {"ok": None}
            if probe:

                async def operation(credential: Credential) -> str:
                    response = await client.generate(api_key=credential.value, prompt=PROBE_PROMPT, max_tokens=16)
                    return response.text

                try:
                    text = await facade.invoke(make_fingerprint(name, PROBE_PROMPT, "probe"), operation)
                    entry = {"ok": bool(text.strip()), "reply": text[:80]}
                except Exception as exc:
                    entry = {"ok": False, "error": repr(exc)}
            entry["stats"] = facade.get_stats()
            status[name] = entry
    finally:
        await registry.close()

    return {
        "configured": configured,
        "default_provider": registry.default_provider,
        "providers": status,
        "all_ok": all(entry["ok"] is not False for entry in status.values()),
    }


def main() -> None:
    """CLI entry point."""
    load_dotenv()
    args = parse_args()
    setup_logging(name="orchestrator")
    report = asyncio.run(
        probe_providers(config_path=args.config, probe=not args.no_probe, dry_run=args.dry_run)
    )
    print(json.dumps(report, indent=2))
    if not report["all_ok"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
