"""Service helpers for movie creation, enrichment, listing and ratings."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy.orm import Session

from app.core.ids import new_ulid
from app.db import MovieRepository, RatingRepository, StorageError, commit
from app.models import Movie, MovieBoxOffice, MovieRating
from app.services.boxoffice import BoxOfficeError
from app.services.cursor import encode_cursor
from app.services.models import (
    BoxOfficeData,
    ListFilters,
    MovieDraft,
    MoviePage,
    MovieWithBoxOffice,
    RatingAggregate,
)

logger = logging.getLogger(__name__)

BOX_OFFICE_SOURCE = "ExampleBoxOfficeAPI"
BOX_OFFICE_CURRENCY = "USD"
VALID_RATINGS = frozenset(step / 2 for step in range(1, 11))


class MovieNotFound(LookupError):
    """Raised when a movie referenced by title does not exist."""


class InvalidRating(ValueError):
    """Raised when a rating is not one of 0.5, 1.0, ..., 5.0."""


class BoxOfficeLookup(Protocol):
    def fetch_by_title(self, title: str) -> BoxOfficeData | None: ...


def merge_box_office_fields(movie: Movie, data: BoxOfficeData) -> dict[str, object]:
    """Fill only the optional fields the user left unset.

    User values win whenever they are not ``None``; fetched values are applied
    only when non-empty (strings) or positive (budget).
    """

    return {
        "distributor": movie.distributor if movie.distributor is not None else (data.distributor or None),
        "budget": movie.budget if movie.budget is not None else (data.budget if data.budget > 0 else None),
        "mpa_rating": movie.mpa_rating if movie.mpa_rating is not None else (data.mpa_rating or None),
    }


def build_box_office_row(movie_id: str, data: BoxOfficeData, *, fetched_at: datetime) -> MovieBoxOffice:
    return MovieBoxOffice(
        movie_id=movie_id,
        gross_usd=data.worldwide,
        opening_weekend_usa=data.opening_weekend_usa if data.opening_weekend_usa > 0 else None,
        currency=BOX_OFFICE_CURRENCY,
        source=BOX_OFFICE_SOURCE,
        last_reported=fetched_at,
    )


def create_movie(
    session: Session,
    repo: MovieRepository,
    client: BoxOfficeLookup,
    draft: MovieDraft,
) -> MovieWithBoxOffice:
    """Insert a movie, then enrich it with box-office data on a best-effort basis.

    Only a failure of the initial insert propagates. Every enrichment problem
    is logged and the movie is returned as stored.
    """

    movie = Movie(
        id=new_ulid(),
        title=draft.title,
        genre=draft.genre,
        release_date=draft.release_date,
        distributor=draft.distributor,
        budget=draft.budget,
        mpa_rating=draft.mpa_rating,
    )
    repo.create(session, movie)
    commit(session)
    logger.info("Created movie %s (%s)", movie.id, movie.title)

    enrich_movie(session, repo, client, movie)

    box_office = repo.get_box_office(session, movie.id)
    return MovieWithBoxOffice(movie=movie, box_office=box_office)


def enrich_movie(
    session: Session,
    repo: MovieRepository,
    client: BoxOfficeLookup,
    movie: Movie,
) -> None:
    try:
        data = client.fetch_by_title(movie.title)
    except BoxOfficeError as exc:
        logger.warning("Box office enrichment skipped for '%s': %s", movie.title, exc)
        return
    if data is None:
        logger.warning("Box office enrichment skipped for '%s': no data", movie.title)
        return

    merged = merge_box_office_fields(movie, data)
    if merged != {"distributor": movie.distributor, "budget": movie.budget, "mpa_rating": movie.mpa_rating}:
        try:
            repo.apply_enrichment(session, movie, **merged)
            commit(session)
        except StorageError as exc:
            session.rollback()
            logger.warning("Failed to apply box office fields to '%s': %s", movie.title, exc)

    row = build_box_office_row(movie.id, data, fetched_at=datetime.now(timezone.utc))
    try:
        repo.set_box_office(session, movie.id, row)
        commit(session)
    except StorageError as exc:
        session.rollback()
        logger.warning("Failed to store box office data for '%s': %s", movie.title, exc)


def get_movie(session: Session, repo: MovieRepository, title: str) -> MovieWithBoxOffice:
    movie = repo.get_by_title(session, title)
    if movie is None:
        raise MovieNotFound(title)
    return MovieWithBoxOffice(movie=movie, box_office=repo.get_box_office(session, movie.id))


def list_movies(session: Session, repo: MovieRepository, filters: ListFilters) -> MoviePage:
    """Run the keyset-paginated query and attach box-office rows to each item."""

    movies, next_cursor = repo.list_movies(session, filters)
    # One lookup per row; fine at page sizes this service serves.
    items = [
        MovieWithBoxOffice(movie=movie, box_office=repo.get_box_office(session, movie.id))
        for movie in movies
    ]
    return MoviePage(
        items=items,
        next_cursor=encode_cursor(next_cursor) if next_cursor is not None else None,
    )


def validate_rating(value: float) -> float:
    if value not in VALID_RATINGS:
        raise InvalidRating("rating must be in [0.5, 1.0, ..., 5.0]")
    return value


def submit_rating(
    session: Session,
    ratings: RatingRepository,
    movies: MovieRepository,
    *,
    title: str,
    rater_id: str,
    value: float,
) -> bool:
    """Store ``rater_id``'s rating for ``title``; return True when it replaced one."""

    validate_rating(value)
    movie = movies.get_by_title(session, title)
    if movie is None:
        raise MovieNotFound(title)
    existed = ratings.upsert(
        session,
        MovieRating(movie_id=movie.id, rater_id=rater_id, rating=value),
    )
    logger.info("Rating by %s for '%s' %s", rater_id, title, "updated" if existed else "created")
    return existed


def rating_summary(
    session: Session,
    ratings: RatingRepository,
    movies: MovieRepository,
    title: str,
) -> RatingAggregate:
    movie = movies.get_by_title(session, title)
    if movie is None:
        raise MovieNotFound(title)
    return ratings.get_aggregate(session, movie.id)
