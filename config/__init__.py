# FILE: config/__init__.py
"""Configuration package for the topic miner.

Contains:
- settings.py: env/dotenv driven MinerSettings tree
"""

from config.settings import (
    PROVIDER_DEFAULTS,
    PRUNING_STRATEGIES,
    LLMSettings,
    GapLoopSettings,
    PruningSettings,
    BudgetSettings,
    QualitySettings,
    MinerSettings,
    load_settings,
)

__all__ = [
    "PROVIDER_DEFAULTS",
    "PRUNING_STRATEGIES",
    "LLMSettings",
    "GapLoopSettings",
    "PruningSettings",
    "BudgetSettings",
    "QualitySettings",
    "MinerSettings",
    "load_settings",
]
