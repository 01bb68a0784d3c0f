from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ReferralCreate(BaseModel):
    inviter_id: str | None = None  # defaults to the caller
    invitee_email: str | None = Field(default=None, max_length=320)


class ReferralIssuedOut(BaseModel):
    referral_id: str
    referral_code: str
    status: str
    share_url: str


class ReferralOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    invitee_email: str | None = None
    invitee_user_id: str | None = None
    referral_code: str
    status: str
    created_at: datetime
    accepted_at: datetime | None = None


class SignupEventIn(BaseModel):
    user_id: str
    email: str | None = None
    referral_code: str | None = None

    @field_validator("user_id")
    @classmethod
    def _user_id_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("user_id must not be blank")
        return value


class SignupCreditOut(BaseModel):
    status: Literal["credited", "credited_already", "no_referral_found", "pending"]
    referral_id: str | None = None
    inviter_id: str | None = None
    amount_cents: int | None = None
