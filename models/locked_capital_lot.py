# models/locked_capital_lot.py
"""
LockedCapitalLot model - time-boxed capital excluded from withdrawals.
The amount is immutable; only released/releasedAt transition.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, TimestampMixin


class LockedCapitalLot(Base, TimestampMixin):
    __tablename__ = 'locked_capital_lots'

    lotID = Column(Integer, primary_key=True, autoincrement=True)
    balanceID = Column(Integer, ForeignKey('balances.balanceID'), nullable=False, index=True)
    userID = Column(String(32), nullable=False, index=True)

    amount = Column(DECIMAL(18, 4), nullable=False)
    lockStart = Column(DateTime, nullable=False)
    lockEnd = Column(DateTime, nullable=False, index=True)

    released = Column(Boolean, nullable=False, default=False)
    releasedAt = Column(DateTime, nullable=True)

    # Ledger entry that brought the capital in (e.g. the deposit)
    sourceEntryID = Column(Integer, nullable=True)

    balance = relationship('Balance', back_populates='lockedCapitalLots')

    def __repr__(self):
        return f"<LockedCapitalLot(lotID={self.lotID}, amount={self.amount}, lockEnd={self.lockEnd}, released={self.released})>"
