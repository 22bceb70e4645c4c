"""Shared fixtures: a throwaway SQLite database per test and seeded users."""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import app.models  # noqa: F401  (registers every table on Base.metadata)
from app import database
from app.database import Base
from app.models.user import User, UserRole
from app.services.workflow import locks


@dataclass
class Cast:
    applicant: User
    other_applicant: User
    reviewer: User
    second_reviewer: User
    manager: User


class Clock:
    """Strictly increasing timestamps so history order is deterministic."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(minutes=1)
        return self.current


@pytest.fixture(autouse=True)
def fresh_locks():
    locks.registry.reset()
    yield
    locks.registry.reset()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ceish.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(db_engine, monkeypatch):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    # error_logger opens its own sessions through app.database
    monkeypatch.setattr(database, "async_session", factory)
    return factory


@pytest_asyncio.fixture
async def cast(sessions) -> Cast:
    people = {
        "applicant": User(
            email="ana.vera@espol.edu.ec", first_name="Ana", middle_name="Lucia",
            first_surname="Vera", second_surname="Mora", role=UserRole.APPLICANT,
        ),
        "other_applicant": User(
            email="luis.paz@espol.edu.ec", first_name="Luis",
            first_surname="Paz", role=UserRole.APPLICANT,
        ),
        "reviewer": User(
            email="rita.cano@espol.edu.ec", first_name="Rita",
            first_surname="Cano", role=UserRole.REVIEWER,
        ),
        "second_reviewer": User(
            email="omar.leon@espol.edu.ec", first_name="Omar",
            first_surname="Leon", role=UserRole.REVIEWER,
        ),
        "manager": User(
            email="marta.gil@espol.edu.ec", first_name="Marta",
            first_surname="Gil", role=UserRole.MANAGER,
        ),
    }
    async with sessions() as db:
        db.add_all(people.values())
        await db.commit()
    return Cast(**people)


@pytest.fixture
def clock() -> Clock:
    return Clock(datetime(2023, 5, 15, 12, 0, tzinfo=timezone.utc))
