"""Tests for the JSON log formatter."""
import json
import logging

from fleet_rewards.core.logging import JsonFormatter


def _record(msg, **extra):
    record = logging.LogRecord("fleet_rewards.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_extra_fields_lifted():
    line = JsonFormatter().format(
        _record("ledger_entry_applied", user_id="driver-1", amount_cents=100, unrelated="x")
    )
    payload = json.loads(line)

    assert payload["message"] == "ledger_entry_applied"
    assert payload["level"] == "INFO"
    assert payload["user_id"] == "driver-1"
    assert payload["amount_cents"] == 100
    assert "unrelated" not in payload


def test_none_fields_omitted():
    payload = json.loads(JsonFormatter().format(_record("x", referral_id=None)))
    assert "referral_id" not in payload


def test_exception_included():
    try:
        raise ValueError("boom")
    except ValueError:
        import sys

        record = _record("failed")
        record.exc_info = sys.exc_info()
    payload = json.loads(JsonFormatter().format(record))
    assert "ValueError: boom" in payload["exception"]


def test_drift_fields_lifted():
    payload = json.loads(
        JsonFormatter().format(
            _record("ledger_balance_drift", user_id="driver-1", stored_cents=1000, ledger_cents=300)
        )
    )
    assert payload["stored_cents"] == 1000
    assert payload["ledger_cents"] == 300
