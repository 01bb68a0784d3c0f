from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Index, String, Text, text

from fleet_rewards.db.base import Base

WITHDRAWAL_PENDING = "pending"
WITHDRAWAL_PROCESSING = "processing"
WITHDRAWAL_COMPLETED = "completed"
WITHDRAWAL_REJECTED = "rejected"
WITHDRAWAL_CANCELLED = "cancelled"
WITHDRAWAL_STATUSES = (
    WITHDRAWAL_PENDING,
    WITHDRAWAL_PROCESSING,
    WITHDRAWAL_COMPLETED,
    WITHDRAWAL_REJECTED,
    WITHDRAWAL_CANCELLED,
)
OPEN_WITHDRAWAL_STATUSES = frozenset({WITHDRAWAL_PENDING, WITHDRAWAL_PROCESSING})
TERMINAL_WITHDRAWAL_STATUSES = frozenset(
    {WITHDRAWAL_COMPLETED, WITHDRAWAL_REJECTED, WITHDRAWAL_CANCELLED}
)

_OPEN_PREDICATE = "status IN ('pending', 'processing')"


class WithdrawalRequest(Base):
    __tablename__ = "withdrawal_requests"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'rejected', 'cancelled')",
            name="ck_withdrawal_requests_status",
        ),
        CheckConstraint(
            "status <> 'rejected' OR rejection_reason IS NOT NULL",
            name="ck_withdrawal_requests_rejection_reason",
        ),
        # One open request per user.
        Index(
            "uq_withdrawal_requests_open_per_user",
            "user_id",
            unique=True,
            postgresql_where=text(_OPEN_PREDICATE),
            sqlite_where=text(_OPEN_PREDICATE),
        ),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default=WITHDRAWAL_PENDING)
    user_notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    amount_cents = Column(BigInteger, nullable=True)  # set on completion
    currency = Column(String(3), nullable=True)
    processed_by = Column(String, nullable=True)
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
    processed_at = Column(DateTime(timezone=True), nullable=True)
