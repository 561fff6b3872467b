# models/ledger_entry.py
"""
LedgerEntry model - append-only record of every monetary movement.
System of record for idempotency: (userID, uniqueKey) is unique.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Boolean, JSON, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from models.base import Base, TimestampMixin


class LedgerEntry(Base, TimestampMixin):
    __tablename__ = 'transactions'
    __table_args__ = (
        UniqueConstraint('userID', 'uniqueKey', name='uq_transactions_user_unique_key'),
        Index('ix_transactions_user_claimable', 'userID', 'type', 'claimable'),
    )

    entryID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(String(32), ForeignKey('users.userID'), nullable=False, index=True)

    type = Column(String(20), nullable=False)  # deposit, earn, commission, bonus, teamReward
    amount = Column(DECIMAL(18, 4), nullable=False)
    status = Column(String(20), nullable=False, default="approved")  # pending, approved, rejected

    # Team rewards stay claimable until claim settlement moves them
    claimable = Column(Boolean, nullable=False, default=False)
    claimedAt = Column(DateTime, nullable=True)

    # Deterministic idempotency key; NULL for entries without one
    uniqueKey = Column(String(200), nullable=True, index=True)

    # source tag, percent, base amount, event references
    meta = Column(JSON, nullable=False, default=dict)

    user = relationship('User', backref='ledgerEntries')

    def __repr__(self):
        return f"<LedgerEntry(entryID={self.entryID}, user={self.userID}, type={self.type}, amount={self.amount})>"
