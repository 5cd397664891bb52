"""Shared dataclasses for service layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from app.models import Movie, MovieBoxOffice
from app.services.cursor import Cursor

DEFAULT_PAGE_SIZE = 20

# Integer columns are BIGINT.
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


@dataclass(slots=True)
class MovieDraft:
    """User-supplied fields for a new movie, already validated."""

    title: str
    genre: str
    release_date: date
    distributor: str | None = None
    budget: int | None = None
    mpa_rating: str | None = None


@dataclass(slots=True)
class BoxOfficeData:
    """Structured result of a box-office lookup.

    Missing values from the provider are normalised to empty strings and zero
    so callers can treat "absent" and "empty" the same way.
    """

    title: str = ""
    distributor: str = ""
    release_date: str = ""
    budget: int = 0
    worldwide: int = 0
    opening_weekend_usa: int = 0
    mpa_rating: str = ""


@dataclass(slots=True)
class ListFilters:
    query: str | None = None
    year: int | None = None
    genre: str | None = None
    distributor: str | None = None
    budget: int | None = None
    mpa_rating: str | None = None
    limit: int = DEFAULT_PAGE_SIZE
    cursor: Cursor | None = None


@dataclass(slots=True)
class RatingAggregate:
    average: float = 0.0
    count: int = 0


@dataclass(slots=True)
class MovieWithBoxOffice:
    movie: Movie
    box_office: MovieBoxOffice | None = None


@dataclass(slots=True)
class MoviePage:
    items: list[MovieWithBoxOffice] = field(default_factory=list)
    next_cursor: str | None = None
