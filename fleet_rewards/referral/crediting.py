"""
SignupCreditWorkflow: turns an at-least-once signup event into exactly one
referral credit for the inviter.

Acceptance (conditional update on status = pending) and the credit entry
(unique edge_event_id) commit together; redeliveries observe either zero
updated rows or an ALREADY_APPLIED ledger outcome and report
``credited_already``.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleet_rewards.core.errors import RetryableError
from fleet_rewards.ledger.store import LedgerStore
from fleet_rewards.models.referral import Referral
from fleet_rewards.models.reward_ledger_entry import ENTRY_SIGNUP_REFERRAL_CREDIT
from fleet_rewards.referral.config import get_signup_credit_cents
from fleet_rewards.referral.registry import ReferralRegistry
from fleet_rewards.services.profiles import ProfileDirectory
from fleet_rewards.utils.metrics import signup_credit_total

logger = logging.getLogger(__name__)


class SignupCreditStatus(str, enum.Enum):
    CREDITED = "credited"
    CREDITED_ALREADY = "credited_already"
    NO_REFERRAL_FOUND = "no_referral_found"
    PENDING = "pending"  # invitee profile not created yet; redeliver later


@dataclass
class SignupEvent:
    user_id: str
    email: str | None = None
    referral_code: str | None = None


@dataclass
class SignupCreditResult:
    status: SignupCreditStatus
    referral_id: str | None = None
    inviter_id: str | None = None
    amount_cents: int | None = None


def signup_edge_event_id(invitee_id: str, referral_id: str) -> str:
    return f"signup:{invitee_id}:{referral_id}"


class SignupCreditWorkflow:
    def __init__(
        self,
        db: Session,
        profiles: ProfileDirectory | None = None,
        registry: ReferralRegistry | None = None,
        ledger: LedgerStore | None = None,
    ):
        self.db = db
        self.profiles = profiles or ProfileDirectory(db)
        self.ledger = ledger or LedgerStore(db)
        self.registry = registry or ReferralRegistry(db, profiles=self.profiles, ledger=self.ledger)

    def handle_signup(self, event: SignupEvent) -> SignupCreditResult:
        """
        Process one delivery of a signup event.
        Raises RetryableError on storage failures; every other outcome is a result.
        """
        try:
            result = self._handle(event)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("signup_credit_storage_error", extra={"invitee_id": event.user_id})
            raise RetryableError("storage error while crediting signup") from exc
        except Exception:
            self.db.rollback()
            raise

        signup_credit_total.labels(status=result.status.value).inc()
        logger.info(
            "signup_credit_handled",
            extra={
                "invitee_id": event.user_id,
                "status": result.status.value,
                "referral_id": result.referral_id,
                "inviter_id": result.inviter_id,
            },
        )
        return result

    def _handle(self, event: SignupEvent) -> SignupCreditResult:
        invitee_id = event.user_id
        if not self.profiles.profile_exists(invitee_id):
            return SignupCreditResult(SignupCreditStatus.PENDING)

        accepted = self.registry.find_accepted_for_invitee(invitee_id)
        if accepted is not None:
            # Re-apply through the idempotent ledger; a no-op unless an earlier
            # delivery accepted without crediting.
            self._credit(accepted, invitee_id)
            return SignupCreditResult(
                SignupCreditStatus.CREDITED_ALREADY,
                referral_id=accepted.id,
                inviter_id=accepted.inviter_id,
            )

        email = event.email or self.profiles.get_email(invitee_id)
        referral = self.registry.resolve_referral(event.referral_code, email)
        if referral is None:
            return SignupCreditResult(SignupCreditStatus.NO_REFERRAL_FOUND)
        if referral.inviter_id == invitee_id:
            logger.warning(
                "signup_self_referral_ignored",
                extra={"invitee_id": invitee_id, "referral_id": referral.id},
            )
            return SignupCreditResult(SignupCreditStatus.NO_REFERRAL_FOUND)

        if not self.registry.accept_referral(referral.id, invitee_id):
            return SignupCreditResult(
                SignupCreditStatus.CREDITED_ALREADY,
                referral_id=referral.id,
                inviter_id=referral.inviter_id,
            )

        applied = self._credit(referral, invitee_id)
        status = (
            SignupCreditStatus.CREDITED_ALREADY
            if applied.already_applied
            else SignupCreditStatus.CREDITED
        )
        return SignupCreditResult(
            status,
            referral_id=referral.id,
            inviter_id=referral.inviter_id,
            amount_cents=applied.entry.amount_cents,
        )

    def _credit(self, referral: Referral, invitee_id: str):
        return self.ledger.apply_entry(
            referral.inviter_id,
            get_signup_credit_cents(),
            ENTRY_SIGNUP_REFERRAL_CREDIT,
            signup_edge_event_id(invitee_id, referral.id),
            description="Referral signup credit",
            related_user_id=invitee_id,
            referral_id=referral.id,
            metadata={"source": "signup_credit"},
        )
