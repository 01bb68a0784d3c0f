from datetime import datetime, timezone

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, String

from fleet_rewards.db.base import Base


class RewardAccount(Base):
    """Materialized balance. Only LedgerStore writes balance_cents."""

    __tablename__ = "reward_accounts"
    __table_args__ = (
        CheckConstraint("balance_cents >= 0", name="ck_reward_accounts_balance_non_negative"),
    )

    user_id = Column(String, primary_key=True)
    balance_cents = Column(BigInteger, nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
