# background/settlement_scheduler.py
"""
Settlement Scheduler - runs the daily settlement jobs.
Uses APScheduler; every job opens its own database session.
"""
import logging
from typing import Any, Dict
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from core.db import get_db_session_ctx
from settlement.config.payouts import get_team_earnings_utc_offset_hours
from settlement.services.locked_capital_service import LockedCapitalService
from settlement.services.mining_profit_service import MiningProfitService
from settlement.services.team_earnings_service import TeamEarningsService
from settlement.utils.time_windows import utc_now

logger = logging.getLogger(__name__)

# Minutes past midnight to leave for late writes of the closing day
DAILY_JOB_MINUTE = 5


def business_midnight_utc_hour(utc_offset_hours: int) -> int:
    """UTC hour at which the business day (fixed offset) starts."""
    return (-utc_offset_hours) % 24


class SettlementScheduler:
    """
    Background scheduler for settlement jobs.

    Jobs:
    - Mining accrual: 00:05 UTC
    - Team earnings: 00:05 business-day local time
    - Locked capital release: every hour
    """

    def __init__(self):
        self.isRunning = False

        self.scheduler = AsyncIOScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,
                'max_instances': 1,
                'misfire_grace_time': 300
            }
        )

        self.stats: Dict[str, Any] = {
            "tasksExecuted": 0,
            "errors": 0,
            "lastError": None,
            "startedAt": None,
            "lastExecutedAt": None,
            "lastMiningSummary": None,
            "lastTeamSummary": None,
            "lastReleaseSummary": None
        }

    def registerJobs(self) -> None:
        """Register all jobs without starting the scheduler."""
        # ═══════════════════════════════════════════════════════════════
        # JOB 1: Mining accrual (previous UTC day)
        # ═══════════════════════════════════════════════════════════════
        self.scheduler.add_job(
            func=self._safe_mining_wrapper,
            trigger=CronTrigger(hour=0, minute=DAILY_JOB_MINUTE, timezone='UTC'),
            id='daily_mining',
            name='Daily Mining Accrual (00:05 UTC)',
            replace_existing=True
        )
        logger.info("✓ Job registered: Daily Mining Accrual (00:05 UTC)")

        # ═══════════════════════════════════════════════════════════════
        # JOB 2: Team earnings (previous business day)
        # ═══════════════════════════════════════════════════════════════
        offset = get_team_earnings_utc_offset_hours()
        teamHour = business_midnight_utc_hour(offset)
        self.scheduler.add_job(
            func=self._safe_team_earnings_wrapper,
            trigger=CronTrigger(hour=teamHour, minute=DAILY_JOB_MINUTE, timezone='UTC'),
            id='daily_team_earnings',
            name=f'Daily Team Earnings ({teamHour:02d}:05 UTC)',
            replace_existing=True
        )
        logger.info(f"✓ Job registered: Daily Team Earnings ({teamHour:02d}:05 UTC, offset {offset:+d}h)")

        # ═══════════════════════════════════════════════════════════════
        # JOB 3: Locked capital release (every hour)
        # ═══════════════════════════════════════════════════════════════
        self.scheduler.add_job(
            func=self._safe_release_locks_wrapper,
            trigger=IntervalTrigger(hours=1),
            id='release_locked_capital',
            name='Locked Capital Release',
            replace_existing=True
        )
        logger.info("✓ Job registered: Locked Capital Release (every 1 hour)")

    async def start(self):
        """Register jobs and start the scheduler."""
        if self.isRunning:
            logger.warning("Settlement Scheduler already running")
            return

        logger.info("=" * 60)
        logger.info("Starting Settlement Scheduler with APScheduler")
        logger.info("=" * 60)

        self.isRunning = True
        self.stats["startedAt"] = utc_now()

        self.registerJobs()
        self.scheduler.start()

        logger.info("=" * 60)
        logger.info("✅ Settlement Scheduler started successfully")
        logger.info(f"Active jobs: {len(self.scheduler.get_jobs())}")
        logger.info("=" * 60)

    async def stop(self):
        """Stop scheduler gracefully."""
        if not self.isRunning:
            return

        logger.info("Stopping Settlement Scheduler...")
        self.isRunning = False

        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)

        logger.info("✓ Settlement Scheduler stopped")

    # ═══════════════════════════════════════════════════════════════════
    # SAFE WRAPPERS (error handling for APScheduler jobs)
    # ═══════════════════════════════════════════════════════════════════

    async def _safe_mining_wrapper(self):
        """Safe wrapper for mining accrual."""
        try:
            await self.runMining()
        except Exception as e:
            logger.error(f"Error in mining accrual job: {e}", exc_info=True)
            self._recordError(e)

    async def _safe_team_earnings_wrapper(self):
        """Safe wrapper for team earnings."""
        try:
            await self.runTeamEarnings()
        except Exception as e:
            logger.error(f"Error in team earnings job: {e}", exc_info=True)
            self._recordError(e)

    async def _safe_release_locks_wrapper(self):
        """Safe wrapper for lock release."""
        try:
            await self.releaseLocks()
        except Exception as e:
            logger.error(f"Error in lock release job: {e}", exc_info=True)
            self._recordError(e)

    def _recordError(self, error: Exception) -> None:
        self.stats["errors"] += 1
        self.stats["lastError"] = str(error)

    def _recordSuccess(self, key: str, summary: Any) -> None:
        self.stats["tasksExecuted"] += 1
        self.stats["lastExecutedAt"] = utc_now()
        self.stats[key] = summary

    # ═══════════════════════════════════════════════════════════════════
    # JOBS
    # ═══════════════════════════════════════════════════════════════════

    async def runMining(self, referenceDate=None):
        """Accrue mining profit for the previous UTC day."""
        with get_db_session_ctx() as session:
            summary = await MiningProfitService(session).runDailyMiningProfit(referenceDate or utc_now())

        self._recordSuccess("lastMiningSummary", summary)
        return summary

    async def runTeamEarnings(self, referenceDate=None):
        """Distribute team rewards for the previous business day."""
        with get_db_session_ctx() as session:
            summary = await TeamEarningsService(session).runDailyTeamEarnings(referenceDate or utc_now())

        self._recordSuccess("lastTeamSummary", summary)
        return summary

    async def releaseLocks(self, asOf=None):
        """Release matured capital lots."""
        with get_db_session_ctx() as session:
            summary = await LockedCapitalService(session).releaseMaturedLots(asOf or utc_now())

        self._recordSuccess("lastReleaseSummary", summary)
        return summary

    def getStats(self) -> Dict[str, Any]:
        stats = self.stats.copy()
        stats["jobs"] = [job.id for job in self.scheduler.get_jobs()]
        return stats
