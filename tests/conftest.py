from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.db import get_session
from app.main import app, get_box_office_client
from app.models import Base, Movie

AUTH_TOKEN = "test-token"


class FakeBoxOffice:
    """Stand-in for BoxOfficeClient that records lookups."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls: list[str] = []

    def fetch_by_title(self, title: str):
        self.calls.append(title)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def box_office():
    return FakeBoxOffice()


@pytest.fixture
def client(monkeypatch, session_factory, box_office):
    monkeypatch.setenv("AUTH_TOKEN", AUTH_TOKEN)
    get_settings.cache_clear()

    def _get_test_session():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_session] = _get_test_session
    app.dependency_overrides[get_box_office_client] = lambda: box_office
    yield TestClient(app)
    app.dependency_overrides.clear()
    get_settings.cache_clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {AUTH_TOKEN}"}


def _make_movie(
    movie_id: str,
    title: str,
    *,
    created_at: datetime | None = None,
    genre: str = "Drama",
    release_date: date = date(2024, 3, 1),
    distributor: str | None = None,
    budget: int | None = None,
    mpa_rating: str | None = None,
) -> Movie:
    return Movie(
        id=movie_id,
        title=title,
        genre=genre,
        release_date=release_date,
        distributor=distributor,
        budget=budget,
        mpa_rating=mpa_rating,
        created_at=created_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def make_movie():
    return _make_movie
