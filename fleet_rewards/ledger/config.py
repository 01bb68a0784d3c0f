"""
Ledger config: typed wrappers over fleet_rewards.core.config.settings.
"""
from __future__ import annotations

from fleet_rewards.core.config import settings


def get_default_currency() -> str:
    return settings.reward_currency
