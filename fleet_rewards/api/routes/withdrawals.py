from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from fleet_rewards.api.deps import get_current_user_id, require_admin
from fleet_rewards.db.session import get_db
from fleet_rewards.schemas.rewards import ProfileSummary
from fleet_rewards.schemas.withdrawals import (
    WithdrawalAdminOut,
    WithdrawalCreate,
    WithdrawalCreatedOut,
    WithdrawalOut,
    WithdrawalProcess,
    WithdrawalProcessOut,
)
from fleet_rewards.withdrawals.service import WithdrawalService


router = APIRouter(prefix="/withdrawals", tags=["withdrawals"])


@router.post("", response_model=WithdrawalCreatedOut, status_code=status.HTTP_201_CREATED)
def create_withdrawal(
    payload: WithdrawalCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> WithdrawalCreatedOut:
    request = WithdrawalService(db).create_request(user_id, payload.user_notes)
    return WithdrawalCreatedOut(withdrawal_id=request.id, status=request.status)


@router.get("/mine", response_model=list[WithdrawalOut])
def list_my_withdrawals(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> list[WithdrawalOut]:
    return [WithdrawalOut.model_validate(r) for r in WithdrawalService(db).list_for_user(user_id)]


@router.post("/{withdrawal_id}/cancel", response_model=WithdrawalOut)
def cancel_withdrawal(
    withdrawal_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> WithdrawalOut:
    request = WithdrawalService(db).cancel_request(withdrawal_id, user_id)
    return WithdrawalOut.model_validate(request)


# ----- Admin -----


@router.get("", response_model=list[WithdrawalAdminOut])
def list_withdrawals(
    admin_id: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[WithdrawalAdminOut]:
    out = []
    for row in WithdrawalService(db).list_all():
        item = WithdrawalAdminOut.model_validate(row.request)
        if row.profile is not None:
            item.user_profile = ProfileSummary.model_validate(row.profile)
        out.append(item)
    return out


@router.post("/{withdrawal_id}/process", response_model=WithdrawalProcessOut)
def process_withdrawal(
    withdrawal_id: str,
    payload: WithdrawalProcess,
    admin_id: str = Depends(require_admin),
    db: Session = Depends(get_db),
) -> WithdrawalProcessOut:
    success = WithdrawalService(db).process_request(
        withdrawal_id,
        payload.new_status,
        admin_id,
        rejection_reason=payload.rejection_reason,
        admin_notes=payload.admin_notes,
    )
    return WithdrawalProcessOut(success=success)
