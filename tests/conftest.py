from datetime import datetime
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
from insights import InsightRequest
from models import ReportFrequency, ReportSetting, User


class StubMailer:
    def __init__(self) -> None:
        self.fail_for: set[str] = set()
        self.raise_for: set[str] = set()
        self.sent: list[dict[str, str]] = []
        self.attempts: list[str] = []

    def send(self, to: str, subject: str, text_body: str, html_body: str) -> bool:
        self.attempts.append(to)
        if to in self.raise_for:
            raise ConnectionError("smtp unreachable")
        if to in self.fail_for:
            return False
        self.sent.append(
            {"to": to, "subject": subject, "text": text_body, "html": html_body}
        )
        return True


class StubInsights:
    def __init__(self, insights: Optional[list[str]] = None) -> None:
        self.insights = insights if insights is not None else ["Keep it up."]
        self.requests: list[InsightRequest] = []

    def generate_insights(self, request: InsightRequest) -> list[str]:
        self.requests.append(request)
        return list(self.insights)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Session:
    with session_factory() as session:
        yield session


@pytest.fixture
def mailer() -> StubMailer:
    return StubMailer()


@pytest.fixture
def insights() -> StubInsights:
    return StubInsights()


@pytest.fixture
def add_user(session):
    def _add_user(
        email: str,
        *,
        name: Optional[str] = "Test User",
        enabled: bool = True,
        next_report_date: datetime = datetime(2026, 10, 1),
        last_sent_date: Optional[datetime] = None,
    ) -> User:
        user = User(email=email, name=name)
        session.add(user)
        session.flush()
        session.add(
            ReportSetting(
                user_id=user.id,
                is_enabled=enabled,
                frequency=ReportFrequency.monthly,
                last_sent_date=last_sent_date,
                next_report_date=next_report_date,
            )
        )
        session.commit()
        return user

    return _add_user
