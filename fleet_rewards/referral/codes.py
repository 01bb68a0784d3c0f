"""
Referral code alphabet, generation and share links.
"""
from __future__ import annotations

import secrets
from urllib.parse import urlencode

from fleet_rewards.referral.config import get_code_length, get_public_origin

# No 0/O or 1/I.
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_referral_code(length: int | None = None) -> str:
    size = length or get_code_length()
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(size))


def normalize_code(code: str | None) -> str | None:
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


def build_share_link(code: str, origin: str | None = None) -> str:
    base = (origin or get_public_origin()).rstrip("/")
    return f"{base}/signup?{urlencode({'ref': code})}"
