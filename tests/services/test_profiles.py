"""Tests for ProfileDirectory."""
from fleet_rewards.services.profiles import ProfileDirectory


def test_lookups(db, make_profile):
    make_profile("driver-1", email="driver@example.com")
    make_profile("admin-1", email="ops@example.com", is_admin=True)
    profiles = ProfileDirectory(db)

    assert profiles.profile_exists("driver-1") is True
    assert profiles.profile_exists("ghost") is False
    assert profiles.is_admin("admin-1") is True
    assert profiles.is_admin("driver-1") is False
    assert profiles.is_admin("ghost") is False
    assert profiles.get_email("driver-1") == "driver@example.com"
    assert profiles.get_email("ghost") is None
    assert profiles.get("driver-1").full_name == "Test Driver"
