"""
Profile: read-only view of the identity store's profiles table.
Rows are owned by the profile service; this repository never writes them.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String

from fleet_rewards.db.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, index=True)
    full_name = Column(String, nullable=True)
    user_type = Column(String, nullable=True)  # driver / owner
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
