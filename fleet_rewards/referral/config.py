"""
Referral program config: typed wrappers over fleet_rewards.core.config.settings.
"""
from __future__ import annotations

from fleet_rewards.core.config import settings


def get_signup_credit_cents() -> int:
    return settings.signup_referral_credit_cents


def get_code_length() -> int:
    return settings.referral_code_length


def get_code_max_attempts() -> int:
    return settings.referral_code_max_attempts


def get_expiry_days() -> int:
    return settings.referral_expiry_days


def get_public_origin() -> str:
    return settings.public_origin.rstrip("/")
