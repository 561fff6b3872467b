# models/user.py
"""
User model - identity and referral link.
Users are never deleted, only deactivated.
"""
import uuid

from sqlalchemy import Column, String, DECIMAL, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, TimestampMixin


def _new_user_id() -> str:
    return uuid.uuid4().hex


class User(Base, TimestampMixin):
    __tablename__ = 'users'

    # Canonical 32-char hex id (see settlement.utils.ids.normalize_id)
    userID = Column(String(32), primary_key=True, default=_new_user_id)

    # Upline sponsor (level 1); NULL for root users
    referredBy = Column(String(32), ForeignKey('users.userID'), nullable=True, index=True)

    name = Column(String, nullable=True)
    email = Column(String, nullable=True, index=True)

    # Lifetime counters
    depositTotal = Column(DECIMAL(18, 4), nullable=False, default=0)
    roiEarnedTotal = Column(DECIMAL(18, 4), nullable=False, default=0)

    isActive = Column(Boolean, nullable=False, default=False)

    # Per-user daily mining rate in percent; NULL = global default
    miningDailyRateOverridePct = Column(DECIMAL(8, 4), nullable=True)

    # Relationships
    sponsor = relationship('User', remote_side=[userID], backref='referrals')
    balance = relationship('Balance', back_populates='user', uselist=False)

    def __repr__(self):
        return f"<User(userID={self.userID}, referredBy={self.referredBy}, active={self.isActive})>"
