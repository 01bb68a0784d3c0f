"""
Celery periodic task: expire pending referrals past the configured age.
"""
import logging

from fleet_rewards.core.celery_app import celery_app, worker_session
from fleet_rewards.referral.config import get_expiry_days
from fleet_rewards.referral.registry import ReferralRegistry

logger = logging.getLogger(__name__)


@celery_app.task(name="fleet_rewards.referral.tasks.expire_stale_referrals")
def expire_stale_referrals() -> dict:
    """Move stale pending referrals to expired. No-op when expiry is disabled."""
    days = get_expiry_days()
    if days <= 0:
        return {"expired": 0}
    db = worker_session()
    try:
        expired = ReferralRegistry(db).expire_stale_referrals(days)
        logger.info("expire_stale_referrals_done", extra={"count": expired})
        return {"expired": expired}
    except Exception:
        db.rollback()
        logger.exception("expire_stale_referrals_error")
        return {"expired": 0, "error": "exception"}
    finally:
        db.close()
