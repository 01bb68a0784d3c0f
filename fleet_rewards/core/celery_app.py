"""
Celery application: broker and result backend from settings.
Tasks are in fleet_rewards.ledger.tasks and fleet_rewards.referral.tasks.
Each worker process builds its own engine on startup (worker_process_init).
"""
from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init, worker_process_shutdown
from sqlalchemy.orm import Session

from fleet_rewards.core.config import settings
from fleet_rewards.db.session import build_engine, build_session_factory

celery_app = Celery(
    "fleet_rewards",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "fleet_rewards.ledger.tasks",
        "fleet_rewards.referral.tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_time_limit=600,
    result_expires=86400,
    beat_schedule={
        "reconcile-reward-balances": {
            "task": "fleet_rewards.ledger.tasks.reconcile_reward_balances",
            "schedule": crontab(minute=15),
        },
        "expire-stale-referrals": {
            "task": "fleet_rewards.referral.tasks.expire_stale_referrals",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)


class _WorkerDatabase:
    engine = None
    session_factory = None


@worker_process_init.connect
def init_worker_database(**_) -> None:
    _WorkerDatabase.engine = build_engine(settings.database_url)
    _WorkerDatabase.session_factory = build_session_factory(_WorkerDatabase.engine)


@worker_process_shutdown.connect
def dispose_worker_database(**_) -> None:
    if _WorkerDatabase.engine is not None:
        _WorkerDatabase.engine.dispose()
    _WorkerDatabase.engine = None
    _WorkerDatabase.session_factory = None


def worker_session() -> Session:
    if _WorkerDatabase.session_factory is None:
        # eager mode / solo pool: no worker_process_init
        init_worker_database()
    return _WorkerDatabase.session_factory()
