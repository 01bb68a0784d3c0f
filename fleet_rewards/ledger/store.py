"""
LedgerStore: the single choke point for reward balance mutation.

Every balance change is an appended RewardLedgerEntry plus a conditional
UPDATE of reward_accounts in the same savepoint. Methods flush but never
commit: the calling workflow owns the transaction.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fleet_rewards.core.errors import InsufficientFundsError, InvalidArgumentError
from fleet_rewards.ledger.config import get_default_currency
from fleet_rewards.models.profile import Profile
from fleet_rewards.models.reward_account import RewardAccount
from fleet_rewards.models.reward_ledger_entry import (
    DEBIT_ENTRY_TYPES,
    ENTRY_TYPES,
    RewardLedgerEntry,
)
from fleet_rewards.utils.metrics import insufficient_funds_total, ledger_entries_total

logger = logging.getLogger(__name__)


class ApplyOutcome(str, enum.Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"


@dataclass
class ApplyResult:
    outcome: ApplyOutcome
    entry: RewardLedgerEntry
    balance_cents: int

    @property
    def already_applied(self) -> bool:
        return self.outcome is ApplyOutcome.ALREADY_APPLIED


@dataclass
class Balance:
    balance_cents: int
    currency: str


@dataclass
class Drift:
    user_id: str
    stored_cents: int
    ledger_cents: int

    @property
    def delta_cents(self) -> int:
        return self.ledger_cents - self.stored_cents


@dataclass
class AccountWithProfile:
    account: RewardAccount
    profile: Profile | None = field(default=None)


class LedgerStore:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_entry(
        self,
        user_id: str,
        amount_cents: int,
        entry_type: str,
        edge_event_id: str,
        currency: str | None = None,
        *,
        description: str | None = None,
        related_user_id: str | None = None,
        referral_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ApplyResult:
        """
        Append one ledger entry and move the balance by ``amount_cents``.
        Idempotent on ``edge_event_id``: a repeat returns ALREADY_APPLIED and
        changes nothing. Debits that would overdraw raise InsufficientFundsError.
        """
        if entry_type not in ENTRY_TYPES:
            raise InvalidArgumentError(f"unknown entry_type: {entry_type}")
        if entry_type in DEBIT_ENTRY_TYPES and amount_cents >= 0:
            raise InvalidArgumentError(f"{entry_type} amount must be negative")
        if entry_type not in DEBIT_ENTRY_TYPES and amount_cents < 0:
            raise InvalidArgumentError(f"{entry_type} amount must not be negative")
        if not edge_event_id:
            raise InvalidArgumentError("edge_event_id is required")

        existing = self.find_entry(edge_event_id)
        if existing is not None:
            return self._already_applied(existing)

        account = self._get_or_create_account(user_id, currency)
        if currency and currency.upper() != account.currency:
            raise InvalidArgumentError(
                f"account {user_id} is in {account.currency}, entry is in {currency.upper()}"
            )

        entry = RewardLedgerEntry(
            user_id=user_id,
            amount_cents=amount_cents,
            entry_type=entry_type,
            currency=account.currency,
            description=description,
            related_user_id=related_user_id,
            referral_id=referral_id,
            edge_event_id=edge_event_id,
            entry_metadata=metadata or {},
        )
        try:
            with self.db.begin_nested():
                self.db.add(entry)
                self.db.flush()
                if amount_cents != 0:
                    result = self.db.execute(
                        update(RewardAccount)
                        .where(
                            RewardAccount.user_id == user_id,
                            RewardAccount.balance_cents + amount_cents >= 0,
                        )
                        .values(
                            balance_cents=RewardAccount.balance_cents + amount_cents,
                            updated_at=datetime.now(timezone.utc),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        insufficient_funds_total.inc()
                        raise InsufficientFundsError(
                            f"balance of {user_id} cannot cover {amount_cents}"
                        )
        except IntegrityError:
            existing = self.find_entry(edge_event_id)
            if existing is None:
                raise
            return self._already_applied(existing)

        balance = self._stored_balance(user_id)
        ledger_entries_total.labels(entry_type=entry_type, outcome=ApplyOutcome.APPLIED.value).inc()
        logger.info(
            "ledger_entry_applied",
            extra={
                "user_id": user_id,
                "entry_type": entry_type,
                "amount_cents": amount_cents,
                "balance_cents": balance,
                "edge_event_id": edge_event_id,
            },
        )
        return ApplyResult(ApplyOutcome.APPLIED, entry, balance)

    def reconcile(self, repair: bool = False) -> list[Drift]:
        """
        Compare each stored balance with the sum of its ledger entries.
        With ``repair`` the stored balance is reset to the ledger sum.

        Candidates are re-checked with the account row locked before they
        are reported or repaired.
        """
        sums = dict(
            self.db.execute(
                select(RewardLedgerEntry.user_id, func.sum(RewardLedgerEntry.amount_cents))
                .group_by(RewardLedgerEntry.user_id)
            ).all()
        )
        candidates = []
        accounts = (
            self.db.query(RewardAccount)
            .order_by(RewardAccount.user_id)
            .populate_existing()
            .all()
        )
        for account in accounts:
            if int(sums.pop(account.user_id, 0) or 0) != account.balance_cents:
                candidates.append(account.user_id)
        # entries without an account row
        candidates.extend(user_id for user_id, total in sorted(sums.items()) if total)

        drifts = []
        for user_id in candidates:
            if repair:
                account = self._get_or_create_account(user_id, None)
            else:
                account = self.lock_account(user_id)
            stored_cents = account.balance_cents if account is not None else 0
            ledger_cents = self._ledger_sum(user_id)
            if stored_cents == ledger_cents:
                continue
            drifts.append(Drift(user_id, stored_cents, ledger_cents))
            logger.error(
                "ledger_balance_drift",
                extra={
                    "user_id": user_id,
                    "stored_cents": stored_cents,
                    "ledger_cents": ledger_cents,
                },
            )
            if repair:
                account.balance_cents = ledger_cents
                self.db.add(account)
        if repair and drifts:
            self.db.flush()
        return drifts

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, user_id: str) -> Balance:
        account = self.db.get(RewardAccount, user_id)
        if account is None:
            return Balance(balance_cents=0, currency=get_default_currency())
        return Balance(balance_cents=self._stored_balance(user_id), currency=account.currency)

    def lock_account(self, user_id: str) -> RewardAccount | None:
        return (
            self.db.query(RewardAccount)
            .filter(RewardAccount.user_id == user_id)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )

    def find_entry(self, edge_event_id: str) -> RewardLedgerEntry | None:
        return (
            self.db.query(RewardLedgerEntry)
            .filter(RewardLedgerEntry.edge_event_id == edge_event_id)
            .one_or_none()
        )

    def list_entries(self, user_id: str, limit: int = 50, offset: int = 0) -> list[RewardLedgerEntry]:
        return (
            self.db.query(RewardLedgerEntry)
            .filter(RewardLedgerEntry.user_id == user_id)
            .order_by(RewardLedgerEntry.created_at.desc(), RewardLedgerEntry.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def list_accounts(self) -> list[AccountWithProfile]:
        rows = self.db.execute(
            select(RewardAccount, Profile)
            .outerjoin(Profile, Profile.id == RewardAccount.user_id)
            .order_by(RewardAccount.balance_cents.desc())
            .execution_options(populate_existing=True)
        ).all()
        return [AccountWithProfile(account=account, profile=profile) for account, profile in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_or_create_account(self, user_id: str, currency: str | None) -> RewardAccount:
        account = self.lock_account(user_id)
        if account is not None:
            return account
        account = RewardAccount(
            user_id=user_id,
            balance_cents=0,
            currency=(currency or get_default_currency()).upper(),
        )
        try:
            with self.db.begin_nested():
                self.db.add(account)
                self.db.flush()
        except IntegrityError:
            # created by a concurrent first entry
            account = self.lock_account(user_id)
            if account is None:
                raise
        return account

    def _stored_balance(self, user_id: str) -> int:
        return int(
            self.db.execute(
                select(RewardAccount.balance_cents).where(RewardAccount.user_id == user_id)
            ).scalar_one()
        )

    def _ledger_sum(self, user_id: str) -> int:
        return int(
            self.db.execute(
                select(func.coalesce(func.sum(RewardLedgerEntry.amount_cents), 0))
                .where(RewardLedgerEntry.user_id == user_id)
            ).scalar_one()
        )

    def _already_applied(self, entry: RewardLedgerEntry) -> ApplyResult:
        ledger_entries_total.labels(
            entry_type=entry.entry_type, outcome=ApplyOutcome.ALREADY_APPLIED.value
        ).inc()
        logger.info(
            "ledger_entry_already_applied",
            extra={"user_id": entry.user_id, "edge_event_id": entry.edge_event_id},
        )
        return ApplyResult(ApplyOutcome.ALREADY_APPLIED, entry, self._stored_balance(entry.user_id))
