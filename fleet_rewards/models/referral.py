from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, Index, String, func

from fleet_rewards.db.base import Base

REFERRAL_PENDING = "pending"
REFERRAL_ACCEPTED = "accepted"
REFERRAL_EXPIRED = "expired"
REFERRAL_CANCELLED = "cancelled"
REFERRAL_STATUSES = (REFERRAL_PENDING, REFERRAL_ACCEPTED, REFERRAL_EXPIRED, REFERRAL_CANCELLED)


class Referral(Base):
    __tablename__ = "referrals"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'expired', 'cancelled')",
            name="ck_referrals_status",
        ),
        CheckConstraint(
            "(status = 'accepted') = (invitee_user_id IS NOT NULL)",
            name="ck_referrals_invitee_iff_accepted",
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    inviter_id = Column(String, nullable=False, index=True)
    invitee_email = Column(String, nullable=True)
    invitee_user_id = Column(String, nullable=True, index=True)
    referral_code = Column(String(16), unique=True, nullable=False)
    status = Column(String, nullable=False, default=REFERRAL_PENDING)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    accepted_at = Column(DateTime(timezone=True), nullable=True)


Index("ix_referrals_invitee_email_lower", func.lower(Referral.invitee_email))
