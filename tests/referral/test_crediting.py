"""Tests for SignupCreditWorkflow: exactly-once credit under redelivery."""
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from fleet_rewards.core.errors import RetryableError
from fleet_rewards.ledger.store import LedgerStore
from fleet_rewards.models.reward_ledger_entry import RewardLedgerEntry
from fleet_rewards.referral.crediting import (
    SignupCreditStatus,
    SignupCreditWorkflow,
    SignupEvent,
    signup_edge_event_id,
)
from fleet_rewards.referral.registry import ReferralRegistry


@pytest.fixture
def inviter(make_profile):
    return make_profile("inviter-a", email="a@example.com")


def _issue(db, inviter_id, code="K7H2QX9P", email=None):
    registry = ReferralRegistry(db, code_generator=lambda: code)
    return registry.issue_referral(inviter_id, email).referral


class TestHandleSignup:
    def test_code_signup_credits_inviter_once(self, db, inviter, make_profile):
        referral = _issue(db, inviter.id)
        make_profile("invitee-b", email="b@example.com")
        workflow = SignupCreditWorkflow(db)
        event = SignupEvent(user_id="invitee-b", referral_code="K7H2QX9P")

        result = workflow.handle_signup(event)

        assert result.status is SignupCreditStatus.CREDITED
        assert result.referral_id == referral.id
        assert result.inviter_id == inviter.id
        assert result.amount_cents == 100
        assert LedgerStore(db).get_balance(inviter.id).balance_cents == 100

        redelivered = workflow.handle_signup(event)

        assert redelivered.status is SignupCreditStatus.CREDITED_ALREADY
        assert LedgerStore(db).get_balance(inviter.id).balance_cents == 100

    def test_many_redeliveries_single_entry(self, db, inviter, make_profile):
        referral = _issue(db, inviter.id)
        make_profile("invitee-b")
        workflow = SignupCreditWorkflow(db)
        event = SignupEvent(user_id="invitee-b", referral_code="K7H2QX9P")

        statuses = [workflow.handle_signup(event).status for _ in range(5)]

        assert statuses.count(SignupCreditStatus.CREDITED) == 1
        credits = (
            db.query(RewardLedgerEntry)
            .filter(RewardLedgerEntry.edge_event_id == signup_edge_event_id("invitee-b", referral.id))
            .count()
        )
        assert credits == 1
        assert LedgerStore(db).get_balance(inviter.id).balance_cents == 100

    def test_email_match_without_code(self, db, inviter, make_profile):
        referral = _issue(db, inviter.id, email="friend@example.com")
        make_profile("invitee-b", email="friend@example.com")

        result = SignupCreditWorkflow(db).handle_signup(
            SignupEvent(user_id="invitee-b", email="FRIEND@example.com")
        )

        assert result.status is SignupCreditStatus.CREDITED
        assert result.referral_id == referral.id

    def test_falls_back_to_profile_email(self, db, inviter, make_profile):
        _issue(db, inviter.id, email="friend@example.com")
        make_profile("invitee-b", email="friend@example.com")

        result = SignupCreditWorkflow(db).handle_signup(SignupEvent(user_id="invitee-b"))

        assert result.status is SignupCreditStatus.CREDITED

    def test_no_referral_found(self, db, inviter, make_profile):
        _issue(db, inviter.id)
        make_profile("invitee-b")

        result = SignupCreditWorkflow(db).handle_signup(
            SignupEvent(user_id="invitee-b", referral_code="ZZZZZZZZ")
        )

        assert result.status is SignupCreditStatus.NO_REFERRAL_FOUND
        assert LedgerStore(db).get_balance(inviter.id).balance_cents == 0

    def test_pending_until_profile_exists(self, db, inviter, make_profile):
        _issue(db, inviter.id)
        workflow = SignupCreditWorkflow(db)
        event = SignupEvent(user_id="invitee-b", referral_code="K7H2QX9P")

        assert workflow.handle_signup(event).status is SignupCreditStatus.PENDING

        make_profile("invitee-b")
        assert workflow.handle_signup(event).status is SignupCreditStatus.CREDITED

    def test_self_referral_ignored(self, db, inviter):
        referral = _issue(db, inviter.id)

        result = SignupCreditWorkflow(db).handle_signup(
            SignupEvent(user_id=inviter.id, referral_code="K7H2QX9P")
        )

        assert result.status is SignupCreditStatus.NO_REFERRAL_FOUND
        assert ReferralRegistry(db).resolve_referral("K7H2QX9P").id == referral.id

    def test_second_referral_for_same_invitee_not_credited(self, db, inviter, make_profile):
        other = make_profile("inviter-c")
        _issue(db, inviter.id, code="AAAAAAAA")
        _issue(db, other.id, code="BBBBBBBB")
        make_profile("invitee-b")
        workflow = SignupCreditWorkflow(db)

        workflow.handle_signup(SignupEvent(user_id="invitee-b", referral_code="AAAAAAAA"))
        result = workflow.handle_signup(SignupEvent(user_id="invitee-b", referral_code="BBBBBBBB"))

        assert result.status is SignupCreditStatus.CREDITED_ALREADY
        assert LedgerStore(db).get_balance(other.id).balance_cents == 0

    def test_credit_amount_from_settings(self, db, inviter, make_profile):
        _issue(db, inviter.id)
        make_profile("invitee-b")

        with patch("fleet_rewards.referral.crediting.get_signup_credit_cents", return_value=250):
            result = SignupCreditWorkflow(db).handle_signup(
                SignupEvent(user_id="invitee-b", referral_code="K7H2QX9P")
            )

        assert result.amount_cents == 250
        assert LedgerStore(db).get_balance(inviter.id).balance_cents == 250


class TestAcceptanceRace:
    def _accepted_after_resolve(self, workflow, winner_id):
        registry = workflow.registry
        original_resolve = registry.resolve_referral

        def resolve(code=None, invitee_email=None):
            referral = original_resolve(code, invitee_email)
            registry.accept_referral(referral.id, winner_id)
            return referral

        return patch.object(registry, "resolve_referral", side_effect=resolve)

    def test_concurrent_delivery_wins_acceptance(self, db, inviter, make_profile):
        referral = _issue(db, inviter.id)
        make_profile("invitee-b")
        workflow = SignupCreditWorkflow(db)

        with self._accepted_after_resolve(workflow, "invitee-b"):
            result = workflow.handle_signup(SignupEvent(user_id="invitee-b", referral_code="K7H2QX9P"))

        assert result.status is SignupCreditStatus.CREDITED_ALREADY
        assert result.referral_id == referral.id
        assert result.inviter_id == inviter.id
        assert LedgerStore(db).find_entry(signup_edge_event_id("invitee-b", referral.id)) is None

    def test_other_invitee_wins_acceptance(self, db, inviter, make_profile):
        referral = _issue(db, inviter.id)
        make_profile("invitee-b")
        workflow = SignupCreditWorkflow(db)

        with patch.object(workflow.registry, "find_accepted_for_invitee", return_value=None):
            with self._accepted_after_resolve(workflow, "invitee-c"):
                result = workflow.handle_signup(
                    SignupEvent(user_id="invitee-b", referral_code="K7H2QX9P")
                )

        assert result.status is SignupCreditStatus.CREDITED_ALREADY
        assert LedgerStore(db).get_balance(inviter.id).balance_cents == 0
        assert db.query(RewardLedgerEntry).filter(RewardLedgerEntry.amount_cents > 0).count() == 0
        assert ReferralRegistry(db).find_accepted_for_invitee("invitee-c").id == referral.id


class TestStorageFailure:
    def test_storage_error_is_retryable(self):
        db = MagicMock()
        profiles = MagicMock()
        profiles.profile_exists.side_effect = OperationalError("SELECT 1", {}, Exception("down"))

        workflow = SignupCreditWorkflow(db, profiles=profiles, registry=MagicMock(), ledger=MagicMock())
        with pytest.raises(RetryableError):
            workflow.handle_signup(SignupEvent(user_id="invitee-b", referral_code="K7H2QX9P"))

        db.rollback.assert_called_once()
        db.commit.assert_not_called()
