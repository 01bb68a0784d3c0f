from sqlalchemy import select
from sqlalchemy.orm import Session

from fleet_rewards.models.profile import Profile


class ProfileDirectory:
    """Read-only access to the identity store's profiles."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Profile | None:
        return self.db.get(Profile, user_id)

    def profile_exists(self, user_id: str) -> bool:
        stmt = select(Profile.id).where(Profile.id == user_id).exists()
        return self.db.query(stmt).scalar() or False

    def is_admin(self, user_id: str) -> bool:
        return (
            self.db.execute(select(Profile.is_admin).where(Profile.id == user_id)).scalar()
            is True
        )

    def get_email(self, user_id: str) -> str | None:
        return self.db.execute(select(Profile.email).where(Profile.id == user_id)).scalar()
