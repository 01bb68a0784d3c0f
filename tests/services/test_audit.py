"""Tests for AuditService."""
from fleet_rewards.services.audit.service import AuditService


def test_log_and_list_for_entity(db):
    audit = AuditService(db)
    audit.log("admin", "admin-1", "withdrawal_processed", "withdrawal_request", "w1", {"new_status": "processing"})
    audit.log("user", "driver-1", "withdrawal_cancelled", "withdrawal_request", "w1")
    audit.log("user", "driver-2", "referral_cancelled", "referral", "r1")
    db.commit()

    rows = audit.list_for_entity("withdrawal_request", "w1")

    assert [r.action for r in rows] == ["withdrawal_processed", "withdrawal_cancelled"]
    assert rows[0].payload == {"new_status": "processing"}
    assert rows[1].payload == {}
