import pytest
from sqlalchemy import func, select

from database import unit_of_work
from models import User


def _user_count(session):
    session.expire_all()
    return session.scalar(select(func.count(User.id)))


def test_unit_of_work_commits_on_clean_exit(session, session_factory):
    with unit_of_work(session_factory, commit_timeout_secs=1) as uow:
        uow.add(User(email="kept@example.com", name="Kept"))

    assert _user_count(session) == 1


def test_unit_of_work_leaves_nothing_behind_on_error(session, session_factory):
    with pytest.raises(RuntimeError):
        with unit_of_work(session_factory, commit_timeout_secs=1) as uow:
            uow.add(User(email="lost@example.com", name="Lost"))
            uow.flush()
            raise RuntimeError("boom")

    assert _user_count(session) == 0
