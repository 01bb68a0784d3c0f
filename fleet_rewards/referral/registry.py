"""
ReferralRegistry: issuing, resolving and the one-time acceptance of referrals.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fleet_rewards.core.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ResourceExhaustedError,
)
from fleet_rewards.ledger.store import LedgerStore
from fleet_rewards.models.referral import (
    REFERRAL_ACCEPTED,
    REFERRAL_CANCELLED,
    REFERRAL_EXPIRED,
    REFERRAL_PENDING,
    Referral,
)
from fleet_rewards.models.reward_ledger_entry import ENTRY_INVITE_SENT
from fleet_rewards.referral.codes import generate_referral_code, normalize_code
from fleet_rewards.referral.config import get_code_max_attempts
from fleet_rewards.services.audit.service import AuditService
from fleet_rewards.services.profiles import ProfileDirectory
from fleet_rewards.utils.metrics import referrals_issued_total

logger = logging.getLogger(__name__)


@dataclass
class IssuedReferral:
    referral: Referral
    created: bool


def _normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    email = email.strip()
    return email or None


class ReferralRegistry:
    def __init__(
        self,
        db: Session,
        profiles: ProfileDirectory | None = None,
        ledger: LedgerStore | None = None,
        code_generator: Callable[[], str] = generate_referral_code,
    ):
        self.db = db
        self.profiles = profiles or ProfileDirectory(db)
        self.ledger = ledger or LedgerStore(db)
        self.code_generator = code_generator

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_referral(self, inviter_id: str, invitee_email: str | None = None) -> IssuedReferral:
        """
        Mint a pending referral for ``inviter_id``. Re-inviting the same email
        while a pending referral exists returns that referral unchanged.
        """
        try:
            if not self.profiles.profile_exists(inviter_id):
                raise NotFoundError(f"inviter {inviter_id} not found")

            invitee_email = _normalize_email(invitee_email)
            existing = self.find_pending_for_email(inviter_id, invitee_email)
            if existing:
                referrals_issued_total.labels(outcome="reused").inc()
                logger.info(
                    "referral_reused",
                    extra={"inviter_id": inviter_id, "referral_id": existing.id},
                )
                return IssuedReferral(existing, created=False)

            referral = self._insert_with_unique_code(inviter_id, invitee_email)

            self.ledger.apply_entry(
                inviter_id,
                0,
                ENTRY_INVITE_SENT,
                f"invite:{inviter_id}:{referral.id}",
                description="Invite sent",
                referral_id=referral.id,
                metadata={"source": "issue_referral"},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        referrals_issued_total.labels(outcome="created").inc()
        logger.info(
            "referral_issued",
            extra={"inviter_id": inviter_id, "referral_id": referral.id},
        )
        return IssuedReferral(referral, created=True)

    def find_pending_for_email(self, inviter_id: str, invitee_email: str | None) -> Referral | None:
        invitee_email = _normalize_email(invitee_email)
        if not invitee_email:
            return None
        return (
            self.db.query(Referral)
            .filter(
                Referral.inviter_id == inviter_id,
                Referral.status == REFERRAL_PENDING,
                func.lower(Referral.invitee_email) == invitee_email.lower(),
            )
            .order_by(Referral.created_at.desc())
            .first()
        )

    def _insert_with_unique_code(self, inviter_id: str, invitee_email: str | None) -> Referral:
        max_attempts = get_code_max_attempts()
        for attempt in range(1, max_attempts + 1):
            code = self.code_generator()
            if self._code_taken(code):
                logger.info("referral_code_collision", extra={"attempt": attempt})
                continue
            referral = Referral(
                inviter_id=inviter_id,
                invitee_email=invitee_email,
                referral_code=code,
                status=REFERRAL_PENDING,
            )
            try:
                with self.db.begin_nested():
                    self.db.add(referral)
                    self.db.flush()
            except IntegrityError:
                # code taken by a concurrent insert
                if not self._code_taken(code):
                    raise
                logger.info("referral_code_collision", extra={"attempt": attempt})
                continue
            return referral
        raise ResourceExhaustedError(
            f"could not allocate a unique referral code in {max_attempts} attempts"
        )

    def _code_taken(self, code: str) -> bool:
        return (
            self.db.query(Referral.id).filter(Referral.referral_code == code).first()
            is not None
        )

    # ------------------------------------------------------------------
    # Resolve / accept
    # ------------------------------------------------------------------

    def resolve_referral(
        self, code: str | None = None, invitee_email: str | None = None
    ) -> Referral | None:
        """Pending referral by exact code, else newest pending one for the email."""
        code = normalize_code(code)
        if code:
            referral = (
                self.db.query(Referral)
                .filter(Referral.referral_code == code, Referral.status == REFERRAL_PENDING)
                .one_or_none()
            )
            if referral:
                return referral

        invitee_email = _normalize_email(invitee_email)
        if invitee_email:
            return (
                self.db.query(Referral)
                .filter(
                    Referral.status == REFERRAL_PENDING,
                    func.lower(Referral.invitee_email) == invitee_email.lower(),
                )
                .order_by(Referral.created_at.desc())
                .first()
            )
        return None

    def accept_referral(self, referral_id: str, invitee_user_id: str) -> bool:
        """Compare-and-swap pending -> accepted. False when another attempt won."""
        result = self.db.execute(
            update(Referral)
            .where(Referral.id == referral_id, Referral.status == REFERRAL_PENDING)
            .values(
                status=REFERRAL_ACCEPTED,
                invitee_user_id=invitee_user_id,
                accepted_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.flush()
        return result.rowcount > 0

    def find_accepted_for_invitee(self, invitee_user_id: str) -> Referral | None:
        return (
            self.db.query(Referral)
            .filter(
                Referral.invitee_user_id == invitee_user_id,
                Referral.status == REFERRAL_ACCEPTED,
            )
            .populate_existing()
            .first()
        )

    # ------------------------------------------------------------------
    # Inviter actions
    # ------------------------------------------------------------------

    def list_referrals(self, inviter_id: str) -> list[Referral]:
        return (
            self.db.query(Referral)
            .filter(Referral.inviter_id == inviter_id)
            .order_by(Referral.created_at.desc())
            .all()
        )

    def cancel_referral(self, referral_id: str, inviter_id: str) -> Referral:
        try:
            referral = self.db.get(Referral, referral_id)
            if referral is None:
                raise NotFoundError(f"referral {referral_id} not found")
            if referral.inviter_id != inviter_id:
                raise PermissionDeniedError("only the inviter can cancel a referral")
            if referral.status == REFERRAL_CANCELLED:
                return referral

            result = self.db.execute(
                update(Referral)
                .where(Referral.id == referral_id, Referral.status == REFERRAL_PENDING)
                .values(status=REFERRAL_CANCELLED)
                .execution_options(synchronize_session=False)
            )
            self.db.refresh(referral)
            if result.rowcount == 0:
                if referral.status == REFERRAL_CANCELLED:
                    return referral
                raise InvalidStateError(f"referral is already {referral.status}")

            AuditService(self.db).log(
                "user", inviter_id, "referral_cancelled", "referral", referral_id
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "referral_cancelled",
            extra={"inviter_id": inviter_id, "referral_id": referral_id},
        )
        return referral

    # ------------------------------------------------------------------
    # Expiry (called by Celery beat)
    # ------------------------------------------------------------------

    def expire_stale_referrals(self, older_than_days: int) -> int:
        """Move pending referrals older than ``older_than_days`` to expired."""
        if older_than_days <= 0:
            return 0
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        try:
            result = self.db.execute(
                update(Referral)
                .where(Referral.status == REFERRAL_PENDING, Referral.created_at < cutoff)
                .values(status=REFERRAL_EXPIRED)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return result.rowcount
