"""
Withdrawal config: typed wrappers over fleet_rewards.core.config.settings.
"""
from __future__ import annotations

from fleet_rewards.core.config import settings


def get_min_withdrawal_cents() -> int:
    return settings.min_withdrawal_cents
