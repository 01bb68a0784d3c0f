"""
RewardLedgerEntry: append-only record of balance-affecting events.
edge_event_id is the idempotency key: one row per logical event, ever.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import BigInteger, Column, DateTime, String, event

from fleet_rewards.core.errors import InvalidStateError
from fleet_rewards.db.base import Base, JSONType

ENTRY_INVITE_SENT = "invite_sent"
ENTRY_SIGNUP_REFERRAL_CREDIT = "signup_referral_credit"
ENTRY_WITHDRAWAL_DEBIT = "withdrawal_debit"
ENTRY_TYPES = (ENTRY_INVITE_SENT, ENTRY_SIGNUP_REFERRAL_CREDIT, ENTRY_WITHDRAWAL_DEBIT)
DEBIT_ENTRY_TYPES = frozenset({ENTRY_WITHDRAWAL_DEBIT})


class RewardLedgerEntry(Base):
    __tablename__ = "reward_ledger_entries"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    amount_cents = Column(BigInteger, nullable=False)  # signed: credits > 0, debits < 0
    entry_type = Column(String, nullable=False)
    currency = Column(String(3), nullable=False)
    description = Column(String, nullable=True)
    related_user_id = Column(String, nullable=True)
    referral_id = Column(String, nullable=True, index=True)
    edge_event_id = Column(String, unique=True, nullable=False)
    entry_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


@event.listens_for(RewardLedgerEntry, "before_update")
def _reject_update(mapper, connection, target):
    raise InvalidStateError(f"ledger entry {target.id} is immutable")


@event.listens_for(RewardLedgerEntry, "before_delete")
def _reject_delete(mapper, connection, target):
    raise InvalidStateError(f"ledger entry {target.id} cannot be deleted")
