"""
Celery periodic task: compare stored reward balances with ledger sums.
"""
import logging

from fleet_rewards.core.celery_app import celery_app, worker_session
from fleet_rewards.ledger.store import LedgerStore
from fleet_rewards.utils.metrics import ledger_balance_drift_accounts

logger = logging.getLogger(__name__)


@celery_app.task(name="fleet_rewards.ledger.tasks.reconcile_reward_balances")
def reconcile_reward_balances(repair: bool = False) -> dict:
    """Report drifted accounts; only rewrites balances when ``repair`` is set."""
    db = worker_session()
    try:
        drifts = LedgerStore(db).reconcile(repair=repair)
        if repair:
            db.commit()
        else:
            db.rollback()
        ledger_balance_drift_accounts.set(0 if repair else len(drifts))
        logger.info(
            "reconcile_reward_balances_done",
            extra={"count": len(drifts)},
        )
        return {
            "drifted": len(drifts),
            "repaired": len(drifts) if repair else 0,
            "users": [d.user_id for d in drifts],
        }
    except Exception:
        db.rollback()
        logger.exception("reconcile_reward_balances_error")
        raise
    finally:
        db.close()
