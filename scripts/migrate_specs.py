#!/usr/bin/env python3
# FILE: scripts/migrate_specs.py
"""
Re-normalize stored specs into the current canonical shape (in place).

Usage:
    python scripts/migrate_specs.py [specs_root] [--dry-run]
"""

import argparse
import logging
import os
import sys
from pathlib import Path

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from topic_miner.specs import migrate_specs_tree


def main():
    parser = argparse.ArgumentParser(description="Migrate specs/<YYYY-MM-DD>/*.json")
    parser.add_argument(
        "specs_root",
        nargs="?",
        default=os.path.join(os.getcwd(), "specs"),
        help="Directory holding dated spec folders",
    )
    parser.add_argument("--dry-run", action="store_true", help="Report changes without writing")
    parser.add_argument("--verbose", action="store_true", help="Print fixes per file")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    results = migrate_specs_tree(args.specs_root, dry_run=args.dry_run)
    changed = sum(1 for r in results if r.changed)
    failed = [r for r in results if r.error]

    if args.verbose:
        for r in results:
            if r.fixes:
                print(f"{os.path.relpath(r.path)}:")
                for fix in r.fixes:
                    print(f"  - {fix}")

    print(f"specs migrate complete: files={len(results)}, changed={changed}, failed={len(failed)}")
    for r in failed:
        print(f"  ! {os.path.relpath(r.path)}: {r.error}", file=sys.stderr)
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
