"""Periodic batch jobs: the report cycle and recurring transaction posting.

Both runners stream their candidates from a read-only session and give every
record its own unit of work, so a fault in one record is logged, counted and
left behind while the rest of the cycle carries on. Schedule state always
moves past the current cycle, whatever happened to the record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, unit_of_work
from errors import TransientIOError
from insights import GeminiInsightGenerator, InsightGenerator
from mailer import Mailer, SmtpMailer, render_report_email
from models import ReportSetting, ReportStatus, Transaction, User
from periods import Period, previous_month
from recurrence import RecurringEngine, local_now, next_report_date
from services import (
    ReportAggregator,
    ReportHistoryService,
    ReportSettingService,
    ReportSummary,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RecordState(str, Enum):
    pending = "pending"
    aggregating = "aggregating"
    notifying = "notifying"
    skipped = "skipped"
    committing = "committing"
    done = "done"
    failed = "failed"


@dataclass
class CycleResult:
    processed: int = 0
    failed: int = 0
    success: bool = True

    def as_dict(self) -> dict[str, object]:
        return {
            "processed": self.processed,
            "failed": self.failed,
            "success": self.success,
        }


def _stream(candidates: Iterator[T], result: CycleResult, job: str) -> Iterator[T]:
    # A cursor that breaks mid-stream ends the cycle; committed records stay put.
    while True:
        try:
            item = next(candidates)
        except StopIteration:
            return
        except SQLAlchemyError:
            logger.exception(f"{job}: cursor failed mid-cycle")
            result.success = False
            return
        yield item


class ReportJobRunner:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        *,
        mailer: Optional[Mailer] = None,
        insight_generator: Optional[InsightGenerator] = None,
        commit_timeout_secs: Optional[float] = None,
    ) -> None:
        self.session_factory = session_factory
        self.mailer = mailer or SmtpMailer()
        self.insight_generator = insight_generator or GeminiInsightGenerator()
        self.commit_timeout_secs = (
            commit_timeout_secs
            if commit_timeout_secs is not None
            else get_settings().commit_timeout_secs
        )

    def run(self, now: Optional[datetime] = None) -> CycleResult:
        """Process every enabled report setting that is due at ``now``.

        Raises ``TransientIOError`` only when the due cursor cannot be opened.
        """
        now = now or local_now()
        period = previous_month(now)
        result = CycleResult()
        read_session = self.session_factory()
        try:
            try:
                due = ReportSettingService(read_session).due_settings(now)
            except SQLAlchemyError as exc:
                raise TransientIOError("Could not open due report settings") from exc

            aggregator = ReportAggregator(read_session, self.insight_generator)
            logger.info(
                f"report_job: started now={now.isoformat()} period={period.label}"
            )
            for setting in _stream(due, result, "report_job"):
                if self._process(read_session, aggregator, setting, period, now):
                    result.processed += 1
                else:
                    result.failed += 1
        finally:
            read_session.close()

        logger.info(
            f"report_job: finished processed={result.processed} "
            f"failed={result.failed} success={result.success}"
        )
        return result

    def _process(
        self,
        read_session: Session,
        aggregator: ReportAggregator,
        setting: ReportSetting,
        period: Period,
        now: datetime,
    ) -> bool:
        setting_id = setting.id
        user_id = setting.user_id
        frequency = setting.frequency.value
        state = RecordState.pending
        try:
            user = read_session.get(User, user_id)
            if user is None or not user.email:
                logger.warning(
                    f"report_job: user not found setting_id={setting_id} "
                    f"user_id={user_id}"
                )
                self._advance_after_fault(setting_id, now)
                return False

            state = RecordState.aggregating
            summary = aggregator.generate(user.id, period.start, period.end)
            if summary is None:
                state = RecordState.skipped
                status = ReportStatus.no_activity
                label = period.label
            else:
                state = RecordState.notifying
                sent = self._dispatch(user, summary, frequency)
                status = ReportStatus.sent if sent else ReportStatus.failed
                label = summary.period

            state = RecordState.committing
            self._commit(setting_id, user.id, status, label, now)
            state = RecordState.done
            logger.info(
                f"report_job: record done setting_id={setting_id} "
                f"user_id={user_id} status={status.value}"
            )
            return True
        except Exception:
            logger.exception(
                f"report_job: record failed setting_id={setting_id} "
                f"user_id={user_id} state={RecordState.failed.value} at={state.value}"
            )
            self._advance_after_fault(setting_id, now)
            return False

    def _dispatch(self, user: User, summary: ReportSummary, frequency: str) -> bool:
        try:
            subject, text_body, html_body = render_report_email(
                user.name or "User", summary, frequency
            )
            return bool(self.mailer.send(user.email, subject, text_body, html_body))
        except Exception as exc:
            logger.warning(f"report_job: email failed user_id={user.id} error={exc}")
            return False

    def _commit(
        self,
        setting_id: int,
        user_id: int,
        status: ReportStatus,
        label: str,
        now: datetime,
    ) -> None:
        with unit_of_work(
            self.session_factory, commit_timeout_secs=self.commit_timeout_secs
        ) as uow:
            setting = uow.get(ReportSetting, setting_id)
            if setting is None:
                raise LookupError(f"Report setting {setting_id} disappeared")
            ReportHistoryService(uow, user_id).record(label, status, now)
            setting.next_report_date = next_report_date(now)
            if status == ReportStatus.sent:
                setting.last_sent_date = now

    def _advance_after_fault(self, setting_id: int, now: datetime) -> None:
        try:
            with unit_of_work(
                self.session_factory, commit_timeout_secs=self.commit_timeout_secs
            ) as uow:
                setting = uow.get(ReportSetting, setting_id)
                if setting is not None:
                    setting.next_report_date = next_report_date(now)
        except Exception:
            logger.exception(
                f"report_job: could not advance setting_id={setting_id}"
            )


class RecurringTransactionRunner:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        *,
        commit_timeout_secs: Optional[float] = None,
    ) -> None:
        self.session_factory = session_factory
        self.commit_timeout_secs = (
            commit_timeout_secs
            if commit_timeout_secs is not None
            else get_settings().commit_timeout_secs
        )

    def run(self, now: Optional[datetime] = None) -> CycleResult:
        now = now or local_now()
        today = now.date()
        result = CycleResult()
        read_session = self.session_factory()
        try:
            stmt = (
                select(Transaction.id)
                .where(
                    Transaction.is_recurring.is_(True),
                    Transaction.next_recurring_date <= today,
                )
                .order_by(Transaction.next_recurring_date, Transaction.id)
                .execution_options(yield_per=500)
            )
            try:
                due = iter(read_session.scalars(stmt))
            except SQLAlchemyError as exc:
                raise TransientIOError(
                    "Could not open due recurring transactions"
                ) from exc

            for template_id in _stream(due, result, "recurring_job"):
                if self._process(template_id, today):
                    result.processed += 1
                else:
                    result.failed += 1
        finally:
            read_session.close()

        logger.info(
            f"recurring_job: finished processed={result.processed} "
            f"failed={result.failed} success={result.success}"
        )
        return result

    def _process(self, template_id: int, today: date) -> bool:
        try:
            with unit_of_work(
                self.session_factory, commit_timeout_secs=self.commit_timeout_secs
            ) as uow:
                template = uow.get(Transaction, template_id)
                if template is None:
                    raise LookupError(f"Transaction {template_id} disappeared")
                posted = RecurringEngine(uow).catch_up(template, today)
            logger.info(
                f"recurring_job: template done id={template_id} posted={posted}"
            )
            return True
        except Exception:
            logger.exception(f"recurring_job: template failed id={template_id}")
            return False
