import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import get_settings
from jobs import CycleResult, RecurringTransactionRunner, ReportJobRunner


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(
        self,
        report_runner: Optional[ReportJobRunner] = None,
        recurring_runner: Optional[RecurringTransactionRunner] = None,
    ) -> None:
        settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)
        self._report_runner = report_runner
        self._recurring_runner = recurring_runner

    @property
    def report_runner(self) -> ReportJobRunner:
        if self._report_runner is None:
            self._report_runner = ReportJobRunner()
        return self._report_runner

    @property
    def recurring_runner(self) -> RecurringTransactionRunner:
        if self._recurring_runner is None:
            self._recurring_runner = RecurringTransactionRunner()
        return self._recurring_runner

    def run_reports(self, source: str = "manual") -> CycleResult:
        logger.info(f"scheduler_run: job=reports source={source}")
        try:
            result = self.report_runner.run()
        except Exception:
            logger.exception(f"scheduler_run: job=reports source={source} aborted")
            raise
        logger.info(
            f"scheduler_run: job=reports source={source} "
            f"processed={result.processed} failed={result.failed}"
        )
        return result

    def run_recurring(self, source: str = "manual") -> CycleResult:
        logger.info(f"scheduler_run: job=recurring source={source}")
        try:
            result = self.recurring_runner.run()
        except Exception:
            logger.exception(f"scheduler_run: job=recurring source={source} aborted")
            raise
        logger.info(
            f"scheduler_run: job=recurring source={source} "
            f"processed={result.processed} failed={result.failed}"
        )
        return result

    def start(self) -> None:
        trigger = CronTrigger(hour=0, minute=5)
        self.scheduler.add_job(
            self.run_recurring,
            trigger,
            args=["daily_00:05"],
            id="recurring_daily",
            replace_existing=True,
            misfire_grace_time=3600,
            max_instances=1,
            coalesce=True,
        )

        trigger = CronTrigger(day=1, hour=2, minute=30)
        self.scheduler.add_job(
            self.run_reports,
            trigger,
            args=["monthly_1st_02:30"],
            id="reports_monthly",
            replace_existing=True,
            misfire_grace_time=6 * 3600,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        logger.info("Scheduler started with daily 00:05 recurring and monthly reports")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
