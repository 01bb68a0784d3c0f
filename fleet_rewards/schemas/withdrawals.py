from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from fleet_rewards.schemas.rewards import ProfileSummary


class WithdrawalCreate(BaseModel):
    user_notes: str | None = Field(default=None, max_length=2000)


class WithdrawalCreatedOut(BaseModel):
    withdrawal_id: str
    status: str


class WithdrawalProcess(BaseModel):
    new_status: Literal["processing", "completed", "rejected", "cancelled"]
    rejection_reason: str | None = Field(default=None, max_length=2000)
    admin_notes: str | None = Field(default=None, max_length=2000)


class WithdrawalProcessOut(BaseModel):
    success: bool


class WithdrawalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    status: str
    user_notes: str | None = None
    admin_notes: str | None = None
    rejection_reason: str | None = None
    amount_cents: int | None = None
    currency: str | None = None
    created_at: datetime
    updated_at: datetime
    processed_at: datetime | None = None


class WithdrawalAdminOut(WithdrawalOut):
    user_profile: ProfileSummary | None = None
