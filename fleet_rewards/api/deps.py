"""
Request dependencies: caller identity from the auth gateway, admin gate,
webhook secret and Redis-backed collaborators.
"""
import hmac

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from fleet_rewards.core.config import settings
from fleet_rewards.db.session import get_db
from fleet_rewards.services.invite_rate_limit import InviteRateLimiter
from fleet_rewards.services.profiles import ProfileDirectory


def get_current_user_id(request: Request) -> str:
    user_id = (request.headers.get(settings.user_id_header) or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user_id


def require_admin(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> str:
    if not ProfileDirectory(db).is_admin(user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return user_id


def verify_signup_webhook(request: Request) -> None:
    expected = settings.signup_webhook_secret
    if not expected:
        return
    provided = request.headers.get(settings.signup_webhook_secret_header) or ""
    if not hmac.compare_digest(provided.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret",
        )


def get_invite_rate_limiter(request: Request) -> InviteRateLimiter:
    return InviteRateLimiter(request.app.state.redis)
