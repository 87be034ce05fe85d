# FILE: topic_miner/__init__.py
"""GitHub topic miner: evidence-grounded app spec synthesis.

Packages:
- bridge: wire -> canonical pipeline (parse, validate, normalize, gates, repair)
- gap_loop: per-repo retry loop with evidence enrichment
- llm: JSON extraction and chat client adapters
- specs: on-disk spec linting and migration
"""

__version__ = "0.3.0"
