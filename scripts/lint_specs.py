#!/usr/bin/env python3
# FILE: scripts/lint_specs.py
"""
Lint stored specs against the on-disk canonical contract.

Usage:
    python scripts/lint_specs.py            # ./specs
    python scripts/lint_specs.py path/to/specs
"""

import argparse
import logging
import os
import sys
from pathlib import Path

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from topic_miner.specs import collect_spec_files, lint_specs_tree


def main():
    parser = argparse.ArgumentParser(description="Lint specs/<YYYY-MM-DD>/*.json")
    parser.add_argument(
        "specs_root",
        nargs="?",
        default=os.path.join(os.getcwd(), "specs"),
        help="Directory holding dated spec folders",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    files = collect_spec_files(args.specs_root)
    results = lint_specs_tree(args.specs_root)
    total = sum(len(v) for v in results.values())

    if total == 0:
        print(f"specs lint complete: files={len(files)}, violations=0")
        return

    print(f"specs lint failed: files={len(files)}, violations={total}", file=sys.stderr)
    for file in sorted(results):
        print(f"\n{os.path.relpath(file)}", file=sys.stderr)
        for violation in results[file]:
            print(f"  - {violation}", file=sys.stderr)
    sys.exit(1)


if __name__ == "__main__":
    main()
