from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProfileSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    full_name: str | None = None
    email: str
    user_type: str | None = None


class RewardAccountOut(BaseModel):
    balance_cents: int
    currency: str


class RewardAccountAdminOut(BaseModel):
    """Reward account with its owner's profile (admin listing)."""
    user_id: str
    balance_cents: int
    currency: str
    user_profile: ProfileSummary | None = None


class LedgerEntryOut(BaseModel):
    id: str
    amount_cents: int
    entry_type: str
    currency: str
    description: str | None = None
    related_user_id: str | None = None
    referral_id: str | None = None
    edge_event_id: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
