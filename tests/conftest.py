# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from datetime import datetime
from itertools import count

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("NOTIFICATION_WORKER_ENABLED", "false")

from consensus_engine.core.settings import settings
from consensus_engine.db.session import Base
from consensus_engine.db.session import get_db as app_get_session
from consensus_engine.main import app as fastapi_app
from consensus_engine.models import Follow, Profile, Question
from consensus_engine.services.vote_service import VoteService

TEST_DB_URL = "sqlite://"

_QUESTION_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    # Services commit and roll back on their own, so each test gets a plain
    # session and the tables are emptied afterwards.
    TestingSession = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.rollback()
        session.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def service(db_session: Session) -> VoteService:
    """Vote service bound to the test session."""
    return VoteService(db_session)


@pytest.fixture()
def make_question(db_session: Session) -> Callable[..., Question]:
    """Factory persisting questions with an empty tally."""

    def _make(
        content: str | None = None,
        *,
        author_id: str | None = "author",
        expires_at: datetime | None = None,
        deleted: bool = False,
        is_ai: bool = False,
    ) -> Question:
        question = Question(
            content=content or f"Question {next(_QUESTION_COUNTER)}?",
            author_id=author_id,
            expires_at=expires_at,
            deleted=deleted,
            is_ai=is_ai,
        )
        db_session.add(question)
        db_session.commit()
        return question

    return _make


@pytest.fixture()
def question(make_question: Callable[..., Question]) -> Question:
    """A single open question."""
    return make_question("Is pineapple acceptable on pizza?")


@pytest.fixture()
def make_profile(db_session: Session) -> Callable[..., Profile]:
    """Factory persisting public profiles."""

    def _make(
        user_id: str,
        username: str | None = None,
        *,
        avatar_url: str | None = None,
        timezone: str | None = None,
    ) -> Profile:
        profile = Profile(
            id=user_id,
            username=username or user_id,
            avatar_url=avatar_url,
            timezone=timezone,
        )
        db_session.add(profile)
        db_session.commit()
        return profile

    return _make


@pytest.fixture()
def follow(db_session: Session) -> Callable[[str, str], Follow]:
    """Persist a follow edge ``follower -> following``."""

    def _follow(follower_id: str, following_id: str) -> Follow:
        edge = Follow(follower_id=follower_id, following_id=following_id)
        db_session.add(edge)
        db_session.commit()
        return edge

    return _follow


def create_access_token(user_id: str) -> str:
    """Mint a bearer token the way the external auth service does."""
    return jwt.encode({"sub": user_id}, settings.secret_key, algorithm=settings.jwt_algorithm)


@pytest.fixture()
def auth_headers() -> Callable[[str], dict[str, str]]:
    """Return authorization headers for an arbitrary user id."""

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers
