# FILE: topic_miner/specs/__init__.py
"""On-disk spec linting and migration (specs/<YYYY-MM-DD>/*.json)."""

from topic_miner.specs.lint import (
    LintViolation,
    collect_spec_files,
    lint_spec_document,
    lint_spec_file,
    lint_specs_tree,
)
from topic_miner.specs.migrate import MigrationResult, migrate_spec_document, migrate_spec_file, migrate_specs_tree

__all__ = [
    "LintViolation",
    "MigrationResult",
    "collect_spec_files",
    "lint_spec_document",
    "lint_spec_file",
    "lint_specs_tree",
    "migrate_spec_document",
    "migrate_spec_file",
    "migrate_specs_tree",
]
