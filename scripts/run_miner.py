#!/usr/bin/env python3
# FILE: scripts/run_miner.py
"""
Run the gap loop over prebuilt repo cards and write canonical specs.

Usage:
    python scripts/run_miner.py repo_cards.json [--out specs] [--reports reports]

repo_cards.json holds a list of repo card objects (with their evidence).
Fetching is not done here, so enrichment leaves cards unchanged.
"""

import argparse
import asyncio
import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import load_settings
from topic_miner.bridge.canonical_json import pretty_json_string
from topic_miner.budget import BudgetManager
from topic_miner.events import EventLedger
from topic_miner.evidence import EnrichResult, RepoCard
from topic_miner.gap_loop import process_repos
from topic_miner.llm import OpenAIChatClient
from topic_miner.prompts import LLMSynthesizer

logger = logging.getLogger("run_miner")


async def keep_card(repo_card, focus_hint):
    return EnrichResult(updated_repo_card=repo_card, added_counts={})


def _slug(full_name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "__", full_name)


async def run(args) -> int:
    settings = load_settings()
    events = EventLedger(settings.events_path)
    budget = BudgetManager(settings.budget_config(), events=events)
    llm = OpenAIChatClient(settings.llm)

    with open(args.repo_cards, "r", encoding="utf-8") as f:
        cards = [RepoCard.from_dict(item) for item in json.load(f)]

    summary = await process_repos(
        cards,
        synthesize=LLMSynthesizer(llm),
        enrich=keep_card,
        llm=llm,
        config=settings.gap_loop_config(),
        budget=budget,
        events=events,
    )

    day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    out_dir = Path(args.out) / day
    report_dir = Path(args.reports) / day
    for outcome in summary.outcomes:
        slug = _slug(outcome.repo)
        if outcome.success and outcome.canonical is not None:
            out_dir.mkdir(parents=True, exist_ok=True)
            (out_dir / f"{slug}.json").write_text(pretty_json_string(outcome.canonical), encoding="utf-8")
        if outcome.reports:
            report_dir.mkdir(parents=True, exist_ok=True)
            for report in outcome.reports:
                path = report_dir / f"{slug}.iter{report.iteration}.json"
                path.write_text(json.dumps(report.to_dict(), indent=2) + "\n", encoding="utf-8")

    print(json.dumps({k: v for k, v in summary.to_dict().items() if k != "outcomes"}, indent=2))
    print(json.dumps({"budget": budget.snapshot()}, indent=2))
    return 0 if summary.failed == 0 else 1


def main():
    parser = argparse.ArgumentParser(description="Mine app specs from repo cards")
    parser.add_argument("repo_cards", help="JSON file with a list of repo cards")
    parser.add_argument("--out", default=os.path.join(os.getcwd(), "specs"), help="Spec output root")
    parser.add_argument("--reports", default=os.path.join(os.getcwd(), "reports"), help="Bridge report root")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
