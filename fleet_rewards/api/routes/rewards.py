from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fleet_rewards.api.deps import get_current_user_id, require_admin
from fleet_rewards.db.session import get_db
from fleet_rewards.ledger.store import LedgerStore
from fleet_rewards.schemas.rewards import (
    LedgerEntryOut,
    ProfileSummary,
    RewardAccountAdminOut,
    RewardAccountOut,
)


router = APIRouter(tags=["rewards"])


@router.get("/reward-account", response_model=RewardAccountOut)
def get_reward_account(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> RewardAccountOut:
    balance = LedgerStore(db).get_balance(user_id)
    return RewardAccountOut(balance_cents=balance.balance_cents, currency=balance.currency)


@router.get("/reward-account/ledger", response_model=list[LedgerEntryOut])
def list_ledger_entries(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> list[LedgerEntryOut]:
    entries = LedgerStore(db).list_entries(user_id, limit=limit, offset=offset)
    return [
        LedgerEntryOut(
            id=entry.id,
            amount_cents=entry.amount_cents,
            entry_type=entry.entry_type,
            currency=entry.currency,
            description=entry.description,
            related_user_id=entry.related_user_id,
            referral_id=entry.referral_id,
            edge_event_id=entry.edge_event_id,
            metadata=entry.entry_metadata or {},
            created_at=entry.created_at,
        )
        for entry in entries
    ]


@router.get("/reward-accounts", response_model=list[RewardAccountAdminOut])
def list_reward_accounts(
    admin_id: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[RewardAccountAdminOut]:
    return [
        RewardAccountAdminOut(
            user_id=row.account.user_id,
            balance_cents=row.account.balance_cents,
            currency=row.account.currency,
            user_profile=ProfileSummary.model_validate(row.profile) if row.profile else None,
        )
        for row in LedgerStore(db).list_accounts()
    ]
