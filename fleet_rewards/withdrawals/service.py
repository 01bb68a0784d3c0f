"""
WithdrawalService: cash-out requests and their administrator-driven lifecycle.

    pending -> processing | completed | rejected | cancelled
    processing -> completed | rejected | cancelled

Terminal states are absorbing. The ledger is debited only on completion,
for the full balance, keyed withdrawal:{request_id}.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fleet_rewards.core.errors import (
    ConflictError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
)
from fleet_rewards.ledger.store import LedgerStore
from fleet_rewards.models.profile import Profile
from fleet_rewards.models.reward_ledger_entry import ENTRY_WITHDRAWAL_DEBIT
from fleet_rewards.models.withdrawal_request import (
    OPEN_WITHDRAWAL_STATUSES,
    TERMINAL_WITHDRAWAL_STATUSES,
    WITHDRAWAL_CANCELLED,
    WITHDRAWAL_COMPLETED,
    WITHDRAWAL_PENDING,
    WITHDRAWAL_PROCESSING,
    WITHDRAWAL_REJECTED,
    WithdrawalRequest,
)
from fleet_rewards.services.audit.service import AuditService
from fleet_rewards.services.profiles import ProfileDirectory
from fleet_rewards.utils.metrics import withdrawal_transitions_total
from fleet_rewards.withdrawals.config import get_min_withdrawal_cents

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    WITHDRAWAL_PENDING: frozenset(
        {WITHDRAWAL_PROCESSING, WITHDRAWAL_COMPLETED, WITHDRAWAL_REJECTED, WITHDRAWAL_CANCELLED}
    ),
    WITHDRAWAL_PROCESSING: frozenset(
        {WITHDRAWAL_COMPLETED, WITHDRAWAL_REJECTED, WITHDRAWAL_CANCELLED}
    ),
}
ADMIN_TARGET_STATUSES = ALLOWED_TRANSITIONS[WITHDRAWAL_PENDING]


def withdrawal_edge_event_id(request_id: str) -> str:
    return f"withdrawal:{request_id}"


@dataclass
class WithdrawalWithProfile:
    request: WithdrawalRequest
    profile: Profile | None = None


class WithdrawalService:
    def __init__(
        self,
        db: Session,
        profiles: ProfileDirectory | None = None,
        ledger: LedgerStore | None = None,
    ):
        self.db = db
        self.profiles = profiles or ProfileDirectory(db)
        self.ledger = ledger or LedgerStore(db)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def create_request(self, user_id: str, user_notes: str | None = None) -> WithdrawalRequest:
        """
        Open a withdrawal request. Requires the minimum balance and no other
        open request; does not touch the ledger.
        """
        try:
            # Row lock serializes concurrent creates for the same account.
            account = self.ledger.lock_account(user_id)
            balance = account.balance_cents if account else 0
            minimum = get_min_withdrawal_cents()
            if balance < minimum:
                raise PreconditionFailedError(
                    f"balance {balance} is below the withdrawal minimum {minimum}"
                )

            if self._open_request(user_id) is not None:
                raise ConflictError("a withdrawal request is already pending")

            request = WithdrawalRequest(
                user_id=user_id,
                status=WITHDRAWAL_PENDING,
                user_notes=(user_notes or "").strip() or None,
                currency=account.currency,
            )
            try:
                with self.db.begin_nested():
                    self.db.add(request)
                    self.db.flush()
            except IntegrityError as exc:
                if self._open_request(user_id) is None:
                    raise
                raise ConflictError("a withdrawal request is already pending") from exc
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        withdrawal_transitions_total.labels(status=WITHDRAWAL_PENDING).inc()
        logger.info(
            "withdrawal_requested",
            extra={"user_id": user_id, "withdrawal_id": request.id, "balance_cents": balance},
        )
        return request

    def cancel_request(self, request_id: str, user_id: str) -> WithdrawalRequest:
        """Owner cancels a pending request. Repeating the cancel is a no-op."""
        try:
            request = self._get(request_id)
            if request.user_id != user_id:
                raise PermissionDeniedError("only the owner can cancel a withdrawal request")
            if request.status == WITHDRAWAL_CANCELLED:
                return request
            if request.status != WITHDRAWAL_PENDING:
                raise InvalidStateError(f"cannot cancel a {request.status} request")

            if not self._compare_and_set(request, WITHDRAWAL_CANCELLED, processed_by=user_id):
                return self._settle_race(request_id, WITHDRAWAL_CANCELLED)
            AuditService(self.db).log(
                "user", user_id, "withdrawal_cancelled", "withdrawal_request", request_id
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        withdrawal_transitions_total.labels(status=WITHDRAWAL_CANCELLED).inc()
        logger.info(
            "withdrawal_cancelled_by_user",
            extra={"user_id": user_id, "withdrawal_id": request_id},
        )
        return request

    def list_for_user(self, user_id: str) -> list[WithdrawalRequest]:
        return (
            self.db.query(WithdrawalRequest)
            .filter(WithdrawalRequest.user_id == user_id)
            .order_by(WithdrawalRequest.created_at.desc())
            .all()
        )

    # ------------------------------------------------------------------
    # Administrator actions
    # ------------------------------------------------------------------

    def process_request(
        self,
        request_id: str,
        new_status: str,
        admin_id: str,
        rejection_reason: str | None = None,
        admin_notes: str | None = None,
    ) -> bool:
        """
        Drive a request to ``new_status``. Re-applying the status a request
        already has returns True without side effects.
        """
        if not self.profiles.is_admin(admin_id):
            raise PermissionDeniedError("administrator access required")
        if new_status not in ADMIN_TARGET_STATUSES:
            raise InvalidArgumentError(f"unsupported target status: {new_status}")
        rejection_reason = (rejection_reason or "").strip() or None
        if new_status == WITHDRAWAL_REJECTED and not rejection_reason:
            raise InvalidArgumentError("rejection_reason is required when rejecting")
        admin_notes = (admin_notes or "").strip() or None

        try:
            request = self._get(request_id)
            old_status = request.status
            if old_status == new_status:
                return True
            if new_status not in ALLOWED_TRANSITIONS.get(old_status, frozenset()):
                raise InvalidStateError(f"cannot move a {old_status} request to {new_status}")

            values = {"processed_by": admin_id}
            if admin_notes is not None:
                values["admin_notes"] = admin_notes
            if new_status == WITHDRAWAL_REJECTED:
                values["rejection_reason"] = rejection_reason

            if new_status == WITHDRAWAL_COMPLETED:
                applied = self._debit_full_balance(request)
                values["amount_cents"] = -applied.entry.amount_cents
                values["currency"] = applied.entry.currency

            if not self._compare_and_set(request, new_status, **values):
                self.db.rollback()
                self._settle_race(request_id, new_status)
                return True

            AuditService(self.db).log(
                "admin",
                admin_id,
                "withdrawal_processed",
                "withdrawal_request",
                request_id,
                {
                    "old_status": old_status,
                    "new_status": new_status,
                    "rejection_reason": rejection_reason,
                    "amount_cents": values.get("amount_cents"),
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        withdrawal_transitions_total.labels(status=new_status).inc()
        logger.info(
            "withdrawal_processed",
            extra={
                "withdrawal_id": request_id,
                "admin_id": admin_id,
                "old_status": old_status,
                "new_status": new_status,
                "amount_cents": values.get("amount_cents"),
            },
        )
        return True

    def list_all(self) -> list[WithdrawalWithProfile]:
        rows = self.db.execute(
            select(WithdrawalRequest, Profile)
            .outerjoin(Profile, Profile.id == WithdrawalRequest.user_id)
            .order_by(WithdrawalRequest.created_at.desc())
        ).all()
        return [WithdrawalWithProfile(request=request, profile=profile) for request, profile in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _debit_full_balance(self, request: WithdrawalRequest):
        edge_event_id = withdrawal_edge_event_id(request.id)
        existing = self.ledger.find_entry(edge_event_id)
        if existing is not None:
            return self.ledger.apply_entry(
                request.user_id, existing.amount_cents, ENTRY_WITHDRAWAL_DEBIT, edge_event_id
            )
        self.ledger.lock_account(request.user_id)
        balance = self.ledger.get_balance(request.user_id)
        if balance.balance_cents <= 0:
            raise InvalidStateError("nothing to withdraw: balance is zero")
        return self.ledger.apply_entry(
            request.user_id,
            -balance.balance_cents,
            ENTRY_WITHDRAWAL_DEBIT,
            edge_event_id,
            description="Withdrawal completed",
            metadata={"withdrawal_id": request.id},
        )

    def _compare_and_set(self, request: WithdrawalRequest, new_status: str, **values) -> bool:
        now = datetime.now(timezone.utc)
        values["status"] = new_status
        values["updated_at"] = now
        if new_status in TERMINAL_WITHDRAWAL_STATUSES:
            values["processed_at"] = now
        result = self.db.execute(
            update(WithdrawalRequest)
            .where(WithdrawalRequest.id == request.id, WithdrawalRequest.status == request.status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return False
        self.db.flush()
        self.db.refresh(request)
        return True

    def _settle_race(self, request_id: str, wanted_status: str) -> WithdrawalRequest:
        """Another writer moved the request first; fine only if it landed where we wanted."""
        request = self._get(request_id)
        if request.status != wanted_status:
            raise InvalidStateError(f"request is now {request.status}")
        return request

    def _get(self, request_id: str) -> WithdrawalRequest:
        request = (
            self.db.query(WithdrawalRequest)
            .filter(WithdrawalRequest.id == request_id)
            .populate_existing()
            .one_or_none()
        )
        if request is None:
            raise NotFoundError(f"withdrawal request {request_id} not found")
        return request

    def _open_request(self, user_id: str) -> WithdrawalRequest | None:
        return (
            self.db.query(WithdrawalRequest)
            .filter(
                WithdrawalRequest.user_id == user_id,
                WithdrawalRequest.status.in_(OPEN_WITHDRAWAL_STATUSES),
            )
            .first()
        )
