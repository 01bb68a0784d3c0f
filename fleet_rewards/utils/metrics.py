"""
Prometheus-based metrics for production monitoring.
Provides /metrics endpoint for scraping.
"""
from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response


# Counters
ledger_entries_total = Counter(
    "reward_ledger_entries_total",
    "Reward ledger apply attempts",
    ["entry_type", "outcome"],  # applied, already_applied
)

referrals_issued_total = Counter(
    "referrals_issued_total",
    "Referral issue calls",
    ["outcome"],  # created, reused
)

signup_credit_total = Counter(
    "signup_credit_total",
    "Signup credit outcomes",
    ["status"],  # credited, credited_already, no_referral_found, pending
)

withdrawal_transitions_total = Counter(
    "withdrawal_transitions_total",
    "Withdrawal request status transitions",
    ["status"],
)

insufficient_funds_total = Counter(
    "reward_insufficient_funds_total",
    "Debits rejected for insufficient balance",
)

# Gauges
ledger_balance_drift_accounts = Gauge(
    "reward_ledger_balance_drift_accounts",
    "Accounts whose stored balance differs from the ledger sum at last reconciliation",
)


# Metrics endpoint router
router = APIRouter()


@router.get("/metrics")
def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint for scraping."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
