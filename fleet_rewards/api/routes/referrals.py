from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from fleet_rewards.api.deps import (
    get_current_user_id,
    get_invite_rate_limiter,
    verify_signup_webhook,
)
from fleet_rewards.db.session import get_db
from fleet_rewards.referral.codes import build_share_link
from fleet_rewards.referral.crediting import (
    SignupCreditStatus,
    SignupCreditWorkflow,
    SignupEvent,
)
from fleet_rewards.referral.registry import ReferralRegistry
from fleet_rewards.schemas.referrals import (
    ReferralCreate,
    ReferralIssuedOut,
    ReferralOut,
    SignupCreditOut,
    SignupEventIn,
)
from fleet_rewards.services.invite_rate_limit import InviteRateLimiter
from fleet_rewards.services.profiles import ProfileDirectory


router = APIRouter(tags=["referrals"])


@router.post("/referrals", response_model=ReferralIssuedOut)
def issue_referral(
    payload: ReferralCreate,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    rate_limiter: InviteRateLimiter = Depends(get_invite_rate_limiter),
) -> ReferralIssuedOut:
    inviter_id = (payload.inviter_id or "").strip() or user_id
    if inviter_id != user_id and not ProfileDirectory(db).is_admin(user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot issue referrals for another user",
        )
    registry = ReferralRegistry(db)
    # a resend of a pending invite does not count against the daily limit
    reused = registry.find_pending_for_email(inviter_id, payload.invitee_email)
    if reused is None and not rate_limiter.allow(inviter_id):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Daily invite limit reached",
        )

    issued = registry.issue_referral(inviter_id, payload.invitee_email)
    response.status_code = status.HTTP_201_CREATED if issued.created else status.HTTP_200_OK
    referral = issued.referral
    return ReferralIssuedOut(
        referral_id=referral.id,
        referral_code=referral.referral_code,
        status=referral.status,
        share_url=build_share_link(referral.referral_code),
    )


@router.get("/referrals", response_model=list[ReferralOut])
def list_referrals(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> list[ReferralOut]:
    referrals = ReferralRegistry(db).list_referrals(user_id)
    return [ReferralOut.model_validate(r) for r in referrals]


@router.post("/referrals/{referral_id}/cancel", response_model=ReferralOut)
def cancel_referral(
    referral_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ReferralOut:
    referral = ReferralRegistry(db).cancel_referral(referral_id, user_id)
    return ReferralOut.model_validate(referral)


@router.post(
    "/signup-credit",
    response_model=SignupCreditOut,
    dependencies=[Depends(verify_signup_webhook)],
)
def signup_credit(
    payload: SignupEventIn,
    response: Response,
    db: Session = Depends(get_db),
) -> SignupCreditOut:
    """Signup event hook. Safe to redeliver; ``pending`` asks the sender to retry later."""
    result = SignupCreditWorkflow(db).handle_signup(
        SignupEvent(
            user_id=payload.user_id,
            email=payload.email,
            referral_code=payload.referral_code,
        )
    )
    if result.status is SignupCreditStatus.PENDING:
        response.status_code = status.HTTP_202_ACCEPTED
    return SignupCreditOut(
        status=result.status.value,
        referral_id=result.referral_id,
        inviter_id=result.inviter_id,
        amount_cents=result.amount_cents,
    )
