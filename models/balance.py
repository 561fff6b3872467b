# models/balance.py
"""
Balance model - one wallet row per user.
All monetary fields are changed through additive SQL increments
(see settlement.services.balance_store), never overwritten.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, TimestampMixin


class Balance(Base, TimestampMixin):
    __tablename__ = 'balances'

    balanceID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(String(32), ForeignKey('users.userID'), nullable=False, unique=True)

    # Spendable funds
    current = Column(DECIMAL(18, 4), nullable=False, default=0)
    totalBalance = Column(DECIMAL(18, 4), nullable=False, default=0)
    totalEarning = Column(DECIMAL(18, 4), nullable=False, default=0)

    # Sum of unreleased lots, kept in step with lockedCapitalLots
    lockedCapital = Column(DECIMAL(18, 4), nullable=False, default=0)

    # Team rewards waiting for claim / already claimed
    teamRewardsAvailable = Column(DECIMAL(18, 4), nullable=False, default=0)
    teamRewardsClaimed = Column(DECIMAL(18, 4), nullable=False, default=0)
    teamRewardsLastClaimedAt = Column(DateTime, nullable=True)

    # Relationships
    user = relationship('User', back_populates='balance')
    lockedCapitalLots = relationship(
        'LockedCapitalLot',
        back_populates='balance',
        order_by='LockedCapitalLot.lockStart',
    )

    def __repr__(self):
        return f"<Balance(userID={self.userID}, current={self.current}, teamAvailable={self.teamRewardsAvailable})>"
