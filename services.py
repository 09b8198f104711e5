from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterator, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from config import get_settings
from errors import NotFoundError, NoTransactionsFound, ValidationError
from insights import GeminiInsightGenerator, InsightGenerator, InsightRequest
from mailer import Mailer, SmtpMailer, render_report_email
from models import (
    Report,
    ReportFrequency,
    ReportSetting,
    ReportStatus,
    Transaction,
    TransactionType,
    User,
)
from periods import period_label
from recurrence import initial_next_recurring_date, local_now, next_report_date
from schemas import (
    Pagination,
    ReportOut,
    ReportPage,
    ReportSettingUpdate,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

REPORT_TOP_CATEGORIES = 5


def get_current_user_id() -> int:
    return get_settings().default_user_id


@dataclass(frozen=True)
class CategoryShare:
    name: str
    amount: int
    percent: float


@dataclass(frozen=True)
class ReportSummary:
    period: str
    income: int
    expenses: int
    balance: int
    savings_rate: float
    top_categories: list[CategoryShare] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)


class TransactionStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find(self, user_id: int, start: date, end: date) -> Sequence[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == user_id,
                Transaction.date.between(start, end),
            )
            .order_by(Transaction.date, Transaction.id)
        )
        return self.session.scalars(stmt).all()


def _percent(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 2)


def rank_categories(
    transactions: Sequence[Transaction], total_expenses: int, limit: int
) -> list[CategoryShare]:
    by_category: dict[str, int] = {}
    for txn in transactions:
        if txn.type != TransactionType.expense:
            continue
        by_category[txn.category] = (
            by_category.get(txn.category, 0) + txn.amount_cents
        )
    ranked = sorted(by_category.items(), key=lambda item: (-item[1], item[0]))
    return [
        CategoryShare(
            name=name, amount=amount, percent=_percent(amount, total_expenses)
        )
        for name, amount in ranked[:limit]
    ]


class ReportAggregator:
    """Summarises one user's transactions over an inclusive date window."""

    def __init__(
        self,
        session: Session,
        insight_generator: Optional[InsightGenerator] = None,
        *,
        top_n: int = REPORT_TOP_CATEGORIES,
    ) -> None:
        self.session = session
        self.store = TransactionStore(session)
        self.insight_generator = insight_generator or GeminiInsightGenerator()
        self.top_n = top_n

    def generate(
        self, user_id: int, start: date, end: date
    ) -> Optional[ReportSummary]:
        transactions = self.store.find(user_id, start, end)
        if not transactions:
            return None

        income = sum(
            t.amount_cents for t in transactions if t.type == TransactionType.income
        )
        expenses = sum(
            t.amount_cents for t in transactions if t.type == TransactionType.expense
        )
        balance = income - expenses
        savings_rate = _percent(balance, income) if income > 0 else 0.0
        top_categories = rank_categories(transactions, expenses, self.top_n)
        label = period_label(start, end)

        insights = self._insights(
            InsightRequest(
                period_label=label,
                income_cents=income,
                expense_cents=expenses,
                balance_cents=balance,
                savings_rate=savings_rate,
                categories={c.name: (c.amount, c.percent) for c in top_categories},
            )
        )
        return ReportSummary(
            period=label,
            income=income,
            expenses=expenses,
            balance=balance,
            savings_rate=savings_rate,
            top_categories=top_categories,
            insights=insights,
        )

    def _insights(self, request: InsightRequest) -> list[str]:
        try:
            insights = self.insight_generator.generate_insights(request)
        except Exception as exc:
            logger.warning(f"aggregator: insight generator raised error={exc}")
            return []
        if not isinstance(insights, list):
            return []
        return [item for item in insights if isinstance(item, str)]


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(
        self, payload: TransactionIn, today: Optional[date] = None
    ) -> Transaction:
        next_recurring_date = None
        if payload.is_recurring and payload.recurring_interval is not None:
            next_recurring_date = initial_next_recurring_date(
                payload.date, payload.recurring_interval, today
            )
        txn = Transaction(
            user_id=self.user_id,
            title=payload.title.strip(),
            description=payload.description,
            type=payload.type,
            amount_cents=payload.amount_cents,
            category=payload.category.strip(),
            date=payload.date,
            payment_method=payload.payment_method,
            is_recurring=payload.is_recurring,
            recurring_interval=(
                payload.recurring_interval if payload.is_recurring else None
            ),
            next_recurring_date=next_recurring_date,
            last_processed=None,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def update(
        self,
        transaction_id: int,
        payload: TransactionUpdate,
        today: Optional[date] = None,
    ) -> Transaction:
        """Apply a partial update and reschedule the recurrence.

        The next occurrence is recomputed from the merged date, interval and
        recurring flag, so moving a template's date or interval takes effect
        on the next run.
        """
        txn = self.get(transaction_id)
        is_recurring = (
            payload.is_recurring
            if payload.is_recurring is not None
            else txn.is_recurring
        )
        interval = payload.recurring_interval or txn.recurring_interval
        txn_date = payload.date or txn.date
        if is_recurring and interval is None:
            raise ValidationError(
                "Recurring transactions require a recurring interval"
            )

        if payload.title is not None:
            txn.title = payload.title.strip()
        if payload.description is not None:
            txn.description = payload.description
        if payload.category is not None:
            txn.category = payload.category.strip()
        if payload.type is not None:
            txn.type = payload.type
        if payload.payment_method is not None:
            txn.payment_method = payload.payment_method
        if payload.amount_cents is not None:
            txn.amount_cents = payload.amount_cents

        txn.date = txn_date
        txn.is_recurring = is_recurring
        if is_recurring:
            txn.recurring_interval = interval
            txn.next_recurring_date = initial_next_recurring_date(
                txn_date, interval, today
            )
        else:
            txn.recurring_interval = None
            txn.next_recurring_date = None
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def duplicate(self, transaction_id: int) -> Transaction:
        source = self.get(transaction_id)
        copy = Transaction(
            user_id=self.user_id,
            title=f"Duplicate - {source.title}",
            description=(
                f"{source.description} (Duplicate)"
                if source.description
                else "Duplicated transaction"
            ),
            type=source.type,
            amount_cents=source.amount_cents,
            category=source.category,
            date=source.date,
            payment_method=source.payment_method,
            is_recurring=False,
            recurring_interval=None,
            next_recurring_date=None,
            last_processed=None,
        )
        self.session.add(copy)
        self.session.commit()
        self.session.refresh(copy)
        return copy

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def bulk_delete(self, transaction_ids: Sequence[int]) -> int:
        result = self.session.execute(
            delete(Transaction).where(
                Transaction.user_id == self.user_id,
                Transaction.id.in_(list(transaction_ids)),
            )
        )
        if not result.rowcount:
            self.session.rollback()
            raise NotFoundError("No transactions found")
        self.session.commit()
        return result.rowcount

    def bulk_create(self, payloads: Sequence[TransactionIn]) -> int:
        # imported rows are one-off entries; they never become templates
        rows = [
            Transaction(
                user_id=self.user_id,
                title=payload.title.strip(),
                description=payload.description,
                type=payload.type,
                amount_cents=payload.amount_cents,
                category=payload.category.strip(),
                date=payload.date,
                payment_method=payload.payment_method,
                is_recurring=False,
                recurring_interval=None,
                next_recurring_date=None,
                last_processed=None,
            )
            for payload in payloads
        ]
        self.session.add_all(rows)
        self.session.commit()
        return len(rows)


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def create(
        self, email: str, name: Optional[str] = None, now: Optional[datetime] = None
    ) -> User:
        clean_email = email.strip().lower()
        if not clean_email or "@" not in clean_email:
            raise ValidationError("A valid email address is required")
        existing = self.session.scalar(select(User).where(User.email == clean_email))
        if existing:
            raise ValidationError("User with this email already exists")

        user = User(email=clean_email, name=name)
        self.session.add(user)
        self.session.flush()
        ReportSettingService(self.session).create_default(user.id, now)
        self.session.commit()
        self.session.refresh(user)
        return user


class ReportSettingService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _find(self, user_id: int) -> Optional[ReportSetting]:
        return self.session.scalar(
            select(ReportSetting).where(ReportSetting.user_id == user_id)
        )

    def get(self, user_id: int) -> ReportSetting:
        setting = self._find(user_id)
        if not setting:
            raise NotFoundError("Report setting not found")
        return setting

    def create_default(
        self, user_id: int, now: Optional[datetime] = None
    ) -> ReportSetting:
        now = now or local_now()
        setting = ReportSetting(
            user_id=user_id,
            is_enabled=False,
            frequency=ReportFrequency.monthly,
            last_sent_date=None,
            next_report_date=next_report_date(now),
        )
        self.session.add(setting)
        self.session.flush()
        return setting

    def update(
        self,
        user_id: int,
        payload: ReportSettingUpdate,
        now: Optional[datetime] = None,
    ) -> ReportSetting:
        setting = self.get(user_id)
        now = now or local_now()
        if payload.frequency is not None:
            setting.frequency = payload.frequency
        if payload.is_enabled is not None:
            if payload.is_enabled and not setting.is_enabled:
                # re-arm from the present so a long-disabled row is not due at once
                setting.next_report_date = next_report_date(now)
            setting.is_enabled = payload.is_enabled
        self.session.commit()
        self.session.refresh(setting)
        return setting

    def due_settings(self, now: datetime) -> Iterator[ReportSetting]:
        stmt = (
            select(ReportSetting)
            .where(
                ReportSetting.is_enabled.is_(True),
                ReportSetting.next_report_date <= now,
            )
            .order_by(ReportSetting.next_report_date, ReportSetting.id)
            .execution_options(yield_per=100)
        )
        return iter(self.session.scalars(stmt))


class ReportHistoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def record(
        self,
        period: str,
        status: ReportStatus,
        sent_date: datetime,
    ) -> Report:
        report = Report(
            user_id=self.user_id,
            sent_date=sent_date,
            period=period,
            status=status,
        )
        self.session.add(report)
        self.session.flush()
        return report

    def list(self, pagination: Pagination) -> ReportPage:
        base = select(Report).where(Report.user_id == self.user_id)
        total_count = int(
            self.session.scalar(
                select(func.count()).select_from(base.subquery())
            )
            or 0
        )
        offset = (pagination.page_number - 1) * pagination.page_size
        rows = self.session.scalars(
            base.order_by(Report.created_at.desc(), Report.id.desc())
            .offset(offset)
            .limit(pagination.page_size)
        ).all()
        return ReportPage(
            items=[ReportOut.model_validate(row) for row in rows],
            total_count=total_count,
            total_pages=math.ceil(total_count / pagination.page_size),
            page_number=pagination.page_number,
            page_size=pagination.page_size,
        )


@dataclass(frozen=True)
class AdHocReport:
    summary: ReportSummary
    email_sent: bool


class ReportService:
    """Synchronous report generation: the summary is always returned, the
    email is best effort."""

    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        *,
        insight_generator: Optional[InsightGenerator] = None,
        mailer: Optional[Mailer] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.aggregator = ReportAggregator(session, insight_generator)
        self.mailer = mailer or SmtpMailer()

    def generate(
        self, start: date, end: date, now: Optional[datetime] = None
    ) -> AdHocReport:
        if start > end:
            raise ValidationError("Start date must be before end date")
        user = UserService(self.session).get(self.user_id)
        summary = self.aggregator.generate(user.id, start, end)
        if summary is None:
            raise NoTransactionsFound("No transactions found for the given period.")

        now = now or local_now()
        email_sent = False
        try:
            subject, text_body, html_body = render_report_email(
                user.name or "User", summary, "custom"
            )
            email_sent = self.mailer.send(user.email, subject, text_body, html_body)
        except Exception as exc:
            logger.warning(
                f"report: ad hoc email failed user_id={user.id} error={exc}"
            )

        if email_sent:
            ReportHistoryService(self.session, user.id).record(
                summary.period, ReportStatus.sent, now
            )
            self.session.commit()
        return AdHocReport(summary=summary, email_sent=email_sent)
