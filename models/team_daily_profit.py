# models/team_daily_profit.py
"""
TeamDailyProfit model - one row per (member, UTC day).
Written by mining accrual, read by the team earnings distributor.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Boolean, ForeignKey, UniqueConstraint
from models.base import Base, TimestampMixin


class TeamDailyProfit(Base, TimestampMixin):
    __tablename__ = 'team_daily_profits'
    __table_args__ = (
        UniqueConstraint('memberID', 'dayKey', name='uq_team_daily_profits_member_day'),
    )

    profitID = Column(Integer, primary_key=True, autoincrement=True)
    memberID = Column(String(32), ForeignKey('users.userID'), nullable=False, index=True)

    dayKey = Column(String(10), nullable=False)  # YYYY-MM-DD of the UTC day
    profitDate = Column(DateTime, nullable=False, index=True)  # last instant of that day

    profitAmount = Column(DECIMAL(18, 4), nullable=False)
    activeOnDate = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<TeamDailyProfit(member={self.memberID}, day={self.dayKey}, profit={self.profitAmount})>"
