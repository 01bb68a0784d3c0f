"""Tests for WithdrawalService: eligibility, one open request, admin lifecycle."""
from unittest.mock import patch

import pytest
from sqlalchemy import update

from fleet_rewards.core.errors import (
    ConflictError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    PreconditionFailedError,
)
from fleet_rewards.ledger.store import LedgerStore
from fleet_rewards.models.audit_log import AuditLog
from fleet_rewards.models.reward_ledger_entry import (
    ENTRY_SIGNUP_REFERRAL_CREDIT,
    RewardLedgerEntry,
)
from fleet_rewards.models.withdrawal_request import WithdrawalRequest
from fleet_rewards.withdrawals.service import WithdrawalService, withdrawal_edge_event_id


def _credit(db, user_id, amount, key):
    LedgerStore(db).apply_entry(user_id, amount, ENTRY_SIGNUP_REFERRAL_CREDIT, key)
    db.commit()


def _balance(db, user_id):
    return LedgerStore(db).get_balance(user_id).balance_cents


@pytest.fixture
def driver(make_profile):
    return make_profile("driver-1", email="driver@example.com")


@pytest.fixture
def admin(make_profile):
    return make_profile("admin-1", email="ops@example.com", is_admin=True)


@pytest.fixture
def pending_request(db, driver):
    _credit(db, driver.id, 2500, "seed:1")
    return WithdrawalService(db).create_request(driver.id, "e-transfer please")


class TestCreateRequest:
    def test_below_minimum_then_eligible(self, db, driver):
        service = WithdrawalService(db)
        _credit(db, driver.id, 1500, "seed:1")

        with pytest.raises(PreconditionFailedError):
            service.create_request(driver.id)

        _credit(db, driver.id, 500, "seed:2")
        request = service.create_request(driver.id)

        assert request.status == "pending"
        assert request.currency == "CAD"
        assert _balance(db, driver.id) == 2000

    def test_no_account_is_below_minimum(self, db, driver):
        with pytest.raises(PreconditionFailedError):
            WithdrawalService(db).create_request(driver.id)

    def test_creation_does_not_touch_ledger(self, db, pending_request):
        assert _balance(db, pending_request.user_id) == 2500
        assert db.query(RewardLedgerEntry).count() == 1

    def test_second_open_request_conflicts(self, db, driver, pending_request):
        with pytest.raises(ConflictError):
            WithdrawalService(db).create_request(driver.id)

    def test_processing_request_also_blocks(self, db, driver, admin, pending_request):
        service = WithdrawalService(db)
        service.process_request(pending_request.id, "processing", admin.id)

        with pytest.raises(ConflictError):
            service.create_request(driver.id)

    def test_new_request_after_rejection(self, db, driver, admin, pending_request):
        service = WithdrawalService(db)
        service.process_request(pending_request.id, "rejected", admin.id, rejection_reason="duplicate")

        request = service.create_request(driver.id)
        assert request.id != pending_request.id

    def test_minimum_from_settings(self, db, driver):
        _credit(db, driver.id, 600, "seed:1")
        with patch("fleet_rewards.withdrawals.service.get_min_withdrawal_cents", return_value=500):
            request = WithdrawalService(db).create_request(driver.id)
        assert request.status == "pending"

    def test_notes_are_stripped(self, db, driver):
        _credit(db, driver.id, 2000, "seed:1")
        request = WithdrawalService(db).create_request(driver.id, "   ")
        assert request.user_notes is None


class TestCancelRequest:
    def test_owner_cancels_pending(self, db, driver, pending_request):
        request = WithdrawalService(db).cancel_request(pending_request.id, driver.id)

        assert request.status == "cancelled"
        assert request.processed_at is not None
        assert _balance(db, driver.id) == 2500

    def test_cancel_twice_is_noop(self, db, driver, pending_request):
        service = WithdrawalService(db)
        service.cancel_request(pending_request.id, driver.id)
        assert service.cancel_request(pending_request.id, driver.id).status == "cancelled"

    def test_other_user_cannot_cancel(self, db, pending_request):
        with pytest.raises(PermissionDeniedError):
            WithdrawalService(db).cancel_request(pending_request.id, "someone-else")

    def test_processing_cannot_be_cancelled_by_owner(self, db, driver, admin, pending_request):
        service = WithdrawalService(db)
        service.process_request(pending_request.id, "processing", admin.id)

        with pytest.raises(InvalidStateError):
            service.cancel_request(pending_request.id, driver.id)

    def test_unknown_request(self, db, driver):
        with pytest.raises(NotFoundError):
            WithdrawalService(db).cancel_request("missing", driver.id)


class TestProcessRequest:
    def test_complete_debits_full_balance(self, db, driver, admin, pending_request):
        service = WithdrawalService(db)

        assert service.process_request(pending_request.id, "completed", admin.id) is True

        request = service.list_for_user(driver.id)[0]
        assert request.status == "completed"
        assert request.amount_cents == 2500
        assert request.processed_by == admin.id
        assert request.processed_at is not None
        assert _balance(db, driver.id) == 0
        entry = LedgerStore(db).find_entry(withdrawal_edge_event_id(pending_request.id))
        assert entry.amount_cents == -2500
        assert entry.entry_type == "withdrawal_debit"

    def test_double_completion_debits_once(self, db, driver, admin, pending_request):
        service = WithdrawalService(db)
        service.process_request(pending_request.id, "completed", admin.id)
        _credit(db, driver.id, 300, "seed:2")

        assert service.process_request(pending_request.id, "completed", admin.id) is True

        assert _balance(db, driver.id) == 300
        debits = (
            db.query(RewardLedgerEntry)
            .filter(RewardLedgerEntry.entry_type == "withdrawal_debit")
            .count()
        )
        assert debits == 1

    def test_processing_then_completed(self, db, driver, admin, pending_request):
        service = WithdrawalService(db)
        service.process_request(pending_request.id, "processing", admin.id)
        service.process_request(pending_request.id, "completed", admin.id)

        assert _balance(db, driver.id) == 0

    def test_reject_requires_reason(self, db, driver, admin, pending_request):
        service = WithdrawalService(db)

        with pytest.raises(InvalidArgumentError):
            service.process_request(pending_request.id, "rejected", admin.id)
        with pytest.raises(InvalidArgumentError):
            service.process_request(pending_request.id, "rejected", admin.id, rejection_reason="  ")

        service.process_request(
            pending_request.id, "rejected", admin.id, rejection_reason="fraud suspected"
        )

        request = service.list_for_user(driver.id)[0]
        assert request.status == "rejected"
        assert request.rejection_reason == "fraud suspected"
        assert _balance(db, driver.id) == 2500

    def test_terminal_states_are_absorbing(self, db, admin, pending_request):
        service = WithdrawalService(db)
        service.process_request(pending_request.id, "rejected", admin.id, rejection_reason="fraud suspected")

        with pytest.raises(InvalidStateError):
            service.process_request(pending_request.id, "completed", admin.id)
        with pytest.raises(InvalidStateError):
            service.process_request(pending_request.id, "processing", admin.id)

    def test_same_status_is_noop(self, db, admin, pending_request):
        service = WithdrawalService(db)
        service.process_request(pending_request.id, "cancelled", admin.id)

        assert service.process_request(pending_request.id, "cancelled", admin.id) is True
        assert db.query(AuditLog).filter(AuditLog.action == "withdrawal_processed").count() == 1

    def test_non_admin_rejected(self, db, driver, pending_request):
        with pytest.raises(PermissionDeniedError):
            WithdrawalService(db).process_request(pending_request.id, "completed", driver.id)

    def test_unsupported_target_status(self, db, admin, pending_request):
        with pytest.raises(InvalidArgumentError):
            WithdrawalService(db).process_request(pending_request.id, "pending", admin.id)

    def test_completion_with_empty_balance(self, db, driver, admin, pending_request):
        LedgerStore(db).apply_entry(driver.id, -2500, "withdrawal_debit", "manual:1")
        db.commit()

        with pytest.raises(InvalidStateError):
            WithdrawalService(db).process_request(pending_request.id, "completed", admin.id)

        assert WithdrawalService(db).list_for_user(driver.id)[0].status == "pending"

    def test_admin_notes_and_audit(self, db, admin, pending_request):
        service = WithdrawalService(db)
        service.process_request(pending_request.id, "processing", admin.id, admin_notes=" batch 12 ")

        audit = db.query(AuditLog).filter(AuditLog.entity_id == pending_request.id).one()
        assert audit.actor_type == "admin"
        assert audit.payload["old_status"] == "pending"
        assert audit.payload["new_status"] == "processing"
        assert service.list_all()[0].request.admin_notes == "batch 12"


class TestListAll:
    def test_joins_profile(self, db, driver, pending_request):
        rows = WithdrawalService(db).list_all()

        assert len(rows) == 1
        assert rows[0].request.id == pending_request.id
        assert rows[0].profile.email == "driver@example.com"


def _moved_by_another_writer(db, status):
    """Commit ``status`` for the request just before the conditional update runs."""
    original = WithdrawalService._compare_and_set

    def compare_and_set(service, request, new_status, **values):
        # keep the stale in-memory status the caller read
        db.expunge(request)
        db.execute(
            update(WithdrawalRequest)
            .where(WithdrawalRequest.id == request.id)
            .values(status=status)
        )
        db.commit()
        return original(service, request, new_status, **values)

    return patch.object(
        WithdrawalService, "_compare_and_set", autospec=True, side_effect=compare_and_set
    )


class TestConcurrentTransitions:
    def test_process_lost_race_to_same_status(self, db, admin, pending_request):
        with _moved_by_another_writer(db, "processing"):
            assert WithdrawalService(db).process_request(pending_request.id, "processing", admin.id) is True

        assert db.get(WithdrawalRequest, pending_request.id).status == "processing"
        assert db.query(AuditLog).count() == 0

    def test_process_lost_race_to_other_status(self, db, admin, pending_request):
        with _moved_by_another_writer(db, "cancelled"):
            with pytest.raises(InvalidStateError):
                WithdrawalService(db).process_request(pending_request.id, "processing", admin.id)

        assert db.get(WithdrawalRequest, pending_request.id).status == "cancelled"
        assert db.query(AuditLog).count() == 0

    def test_cancel_lost_race_to_cancel(self, db, driver, pending_request):
        with _moved_by_another_writer(db, "cancelled"):
            request = WithdrawalService(db).cancel_request(pending_request.id, driver.id)

        assert request.status == "cancelled"
        assert db.query(AuditLog).count() == 0

    def test_cancel_lost_race_to_processing(self, db, driver, pending_request):
        with _moved_by_another_writer(db, "processing"):
            with pytest.raises(InvalidStateError):
                WithdrawalService(db).cancel_request(pending_request.id, driver.id)

        assert db.get(WithdrawalRequest, pending_request.id).status == "processing"

    def test_completion_locks_account_before_reading_balance(self, db, driver, admin, pending_request):
        service = WithdrawalService(db)
        calls = []
        original_lock = service.ledger.lock_account
        original_balance = service.ledger.get_balance

        def lock_account(user_id):
            calls.append("lock")
            return original_lock(user_id)

        def get_balance(user_id):
            calls.append("balance")
            return original_balance(user_id)

        with patch.object(service.ledger, "lock_account", side_effect=lock_account), patch.object(
            service.ledger, "get_balance", side_effect=get_balance
        ):
            service.process_request(pending_request.id, "completed", admin.id)

        assert calls.index("lock") < calls.index("balance")
        assert _balance(db, driver.id) == 0
