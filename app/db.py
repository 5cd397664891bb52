"""Database session management and repositories."""

from __future__ import annotations

import functools
import logging
import time
from datetime import date
from typing import Any, Callable, Iterator, TypeVar

from sqlalchemy import Numeric, Select, cast, create_engine, func, or_, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import get_settings
from app.models import Base, Movie, MovieBoxOffice, MovieRating, utcnow
from app.services.cursor import Cursor
from app.services.models import DEFAULT_PAGE_SIZE, INT64_MAX, ListFilters, RatingAggregate

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StorageError(Exception):
    """Base exception for persistence failures."""


class ConstraintViolation(StorageError):
    """Raised when a write violates a uniqueness or foreign-key constraint."""


class StorageUnavailable(StorageError):
    """Raised when the database cannot be reached."""


def _build_engine(url: str) -> Engine:
    connect_args: dict[str, Any] = {}
    if url.startswith("sqlite"):
        # Sync FastAPI dependencies and endpoints may run on different threads.
        connect_args["check_same_thread"] = False
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


engine = _build_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_models(bind: Engine | None = None) -> None:
    """Create tables if they do not exist (handy for local dev)."""
    Base.metadata.create_all(bind=bind or engine)


def get_session() -> Iterator[Session]:
    """FastAPI-friendly dependency that manages commits/rollbacks."""

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def ping(session: Session) -> None:
    session.execute(text("SELECT 1"))


def wait_for_database(
    bind: Engine | None = None,
    *,
    attempts: int = 5,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Block until the database answers, backing off linearly between attempts."""

    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            with (bind or engine).connect() as conn:
                conn.execute(text("SELECT 1"))
        except DBAPIError as exc:
            last_error = exc
            logger.warning("Database connection attempt %d/%d failed: %s", attempt, attempts, exc)
            if attempt < attempts:
                sleep(float(attempt))
            continue
        logger.info("Database connected")
        return
    raise StorageUnavailable(
        f"failed to connect to database after {attempts} attempts"
    ) from last_error


def _translate_errors(fn: Callable[..., T]) -> Callable[..., T]:
    """Map SQLAlchemy and driver exceptions onto the storage error taxonomy."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except IntegrityError as exc:
            raise ConstraintViolation(str(exc.orig)) from exc
        except OperationalError as exc:
            raise StorageUnavailable(str(exc.orig)) from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise StorageUnavailable(str(exc.orig)) from exc
            raise StorageError(str(exc)) from exc
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc
        except OverflowError as exc:
            raise StorageError(f"value out of range: {exc}") from exc

    return wrapper


@_translate_errors
def commit(session: Session) -> None:
    """Commit the unit of work, mapping failures onto storage errors."""
    session.commit()


def _upsert(
    session: Session,
    model: type[Base],
    values: dict[str, Any],
    *,
    key: list[str],
    update: dict[str, Any],
):
    """Build a dialect-specific atomic insert-or-update statement."""

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect in {"mysql", "mariadb"}:
        from sqlalchemy.dialects.mysql import insert

        return insert(model).values(**values).on_duplicate_key_update(**update)
    else:
        raise StorageError(f"upsert is not supported on dialect '{dialect}'")
    return insert(model).values(**values).on_conflict_do_update(index_elements=key, set_=update)


class MovieRepository:
    """High level data access helpers for movie and box-office records."""

    @_translate_errors
    def create(self, session: Session, movie: Movie) -> Movie:
        session.add(movie)
        session.flush()  # surface constraint violations here
        return movie

    @_translate_errors
    def get_by_title(self, session: Session, title: str) -> Movie | None:
        query = select(Movie).where(Movie.title == title)
        return session.execute(query).scalar_one_or_none()

    @_translate_errors
    def get_by_id(self, session: Session, movie_id: str) -> Movie | None:
        return session.get(Movie, movie_id)

    @_translate_errors
    def apply_enrichment(
        self,
        session: Session,
        movie: Movie,
        *,
        distributor: str | None,
        budget: int | None,
        mpa_rating: str | None,
    ) -> Movie:
        movie.distributor = distributor
        movie.budget = budget
        movie.mpa_rating = mpa_rating
        session.flush()
        return movie

    @_translate_errors
    def set_box_office(self, session: Session, movie_id: str, row: MovieBoxOffice) -> None:
        fetched_at = utcnow()
        fields = {
            "gross_usd": row.gross_usd,
            "opening_weekend_usa": row.opening_weekend_usa,
            "currency": row.currency,
            "source": row.source,
            "last_reported": row.last_reported,
        }
        stmt = _upsert(
            session,
            MovieBoxOffice,
            {"movie_id": movie_id, "fetched_at": fetched_at, **fields},
            key=["movie_id"],
            update={**fields, "fetched_at": fetched_at},
        )
        session.execute(stmt)

    @_translate_errors
    def get_box_office(self, session: Session, movie_id: str) -> MovieBoxOffice | None:
        query = select(MovieBoxOffice).where(MovieBoxOffice.movie_id == movie_id)
        return session.execute(query.execution_options(populate_existing=True)).scalar_one_or_none()

    @_translate_errors
    def list_movies(self, session: Session, filters: ListFilters) -> tuple[list[Movie], Cursor | None]:
        """Return one page of movies in ``(created_at, id)`` order plus the next cursor."""

        limit = filters.limit if filters.limit > 0 else DEFAULT_PAGE_SIZE
        query = select(Movie)

        if filters.cursor is not None:
            query = query.where(
                or_(
                    Movie.created_at > filters.cursor.created_at,
                    (Movie.created_at == filters.cursor.created_at) & (Movie.id > filters.cursor.id),
                )
            )
        if filters.query:
            query = query.where(Movie.title.icontains(filters.query, autoescape=True))
        if filters.year is not None:
            query = query.where(
                Movie.release_date >= date(filters.year, 1, 1),
                Movie.release_date < date(filters.year + 1, 1, 1),
            )
        if filters.genre:
            query = query.where(func.lower(Movie.genre) == filters.genre.lower())
        if filters.distributor:
            query = query.where(func.lower(Movie.distributor) == filters.distributor.lower())
        if filters.budget is not None:
            query = query.where(Movie.budget <= filters.budget)
        if filters.mpa_rating:
            query = query.where(Movie.mpa_rating == filters.mpa_rating)

        query = query.order_by(Movie.created_at, Movie.id).limit(min(limit, INT64_MAX - 1) + 1)
        movies = list(session.execute(query).scalars())

        next_cursor = None
        if len(movies) > limit:
            movies = movies[:limit]
            last = movies[-1]
            next_cursor = Cursor(created_at=last.created_at, id=last.id)
        return movies, next_cursor


class RatingRepository:
    """Data access helpers for per-rater movie ratings."""

    @_translate_errors
    def exists(self, session: Session, movie_id: str, rater_id: str) -> bool:
        query = select(func.count()).select_from(MovieRating).where(
            MovieRating.movie_id == movie_id,
            MovieRating.rater_id == rater_id,
        )
        return session.execute(query).scalar_one() > 0

    @_translate_errors
    def upsert(self, session: Session, rating: MovieRating) -> bool:
        """Insert or overwrite a rating; return True when one already existed."""

        existed = self.exists(session, rating.movie_id, rating.rater_id)
        updated_at = utcnow()
        stmt = _upsert(
            session,
            MovieRating,
            {
                "movie_id": rating.movie_id,
                "rater_id": rating.rater_id,
                "rating": rating.rating,
                "updated_at": updated_at,
            },
            key=["movie_id", "rater_id"],
            update={"rating": rating.rating, "updated_at": updated_at},
        )
        session.execute(stmt)
        return existed

    @staticmethod
    def aggregate_query(movie_id: str) -> Select:
        # round(double precision, int) does not exist on PostgreSQL
        average = func.round(cast(func.avg(MovieRating.rating), Numeric), 1)
        return select(
            func.coalesce(average, 0),
            func.count(),
        ).where(MovieRating.movie_id == movie_id)

    @_translate_errors
    def get_aggregate(self, session: Session, movie_id: str) -> RatingAggregate:
        average, count = session.execute(self.aggregate_query(movie_id)).one()
        return RatingAggregate(average=float(average), count=int(count))
