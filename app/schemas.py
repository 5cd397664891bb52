"""Request and response bodies for the HTTP API.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models import Movie, MovieBoxOffice
from app.services.models import INT64_MAX, INT64_MIN, MovieWithBoxOffice, RatingAggregate


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


#___________________________________________________________________________________________________
# Request schemas
#___________________________________________________________________________________________________

class CreateMovieRequest(_CamelModel):
    """Body of ``POST /movies``.

    Required fields are typed optional so that missing values produce the
    API's own 400 message instead of a generic validation error.
    """
    title: str | None = Field(None, description="Unique movie title")
    genre: str | None = Field(None, description="Genre label")
    release_date: str | None = Field(None, alias="releaseDate", description="YYYY-MM-DD")
    distributor: str | None = None
    budget: int | None = Field(None, ge=INT64_MIN, le=INT64_MAX)
    mpa_rating: str | None = Field(None, alias="mpaRating")


class SubmitRatingRequest(BaseModel):
    rating: float = Field(..., description="One of 0.5, 1.0, ..., 5.0")


#___________________________________________________________________________________________________
# Response schemas
#___________________________________________________________________________________________________

class RevenueResponse(_CamelModel):
    worldwide: int
    opening_weekend_usa: int | None = Field(None, alias="openingWeekendUSA")


class BoxOfficeResponse(_CamelModel):
    revenue: RevenueResponse
    currency: str
    source: str
    last_updated: datetime = Field(..., alias="lastUpdated")

    @classmethod
    def from_row(cls, row: MovieBoxOffice) -> "BoxOfficeResponse":
        return cls(
            revenue=RevenueResponse(worldwide=row.gross_usd, opening_weekend_usa=row.opening_weekend_usa),
            currency=row.currency,
            source=row.source,
            last_updated=row.last_reported,
        )


class MovieResponse(_CamelModel):
    id: str
    title: str
    release_date: date = Field(..., alias="releaseDate")
    genre: str
    distributor: str | None = None
    budget: int | None = None
    mpa_rating: str | None = Field(None, alias="mpaRating")
    box_office: BoxOfficeResponse | None = Field(None, alias="boxOffice")

    @classmethod
    def from_movie(cls, movie: Movie, box_office: MovieBoxOffice | None = None) -> "MovieResponse":
        return cls(
            id=movie.id,
            title=movie.title,
            release_date=movie.release_date,
            genre=movie.genre,
            distributor=movie.distributor,
            budget=movie.budget,
            mpa_rating=movie.mpa_rating,
            box_office=BoxOfficeResponse.from_row(box_office) if box_office is not None else None,
        )

    @classmethod
    def from_item(cls, item: MovieWithBoxOffice) -> "MovieResponse":
        return cls.from_movie(item.movie, item.box_office)


class MovieListResponse(_CamelModel):
    items: list[MovieResponse]
    next_cursor: str | None = Field(None, alias="nextCursor")


class RatingResponse(_CamelModel):
    movie_title: str = Field(..., alias="movieTitle")
    rater_id: str = Field(..., alias="raterId")
    rating: float


class RatingAggregateResponse(BaseModel):
    average: float
    count: int

    @classmethod
    def from_aggregate(cls, aggregate: RatingAggregate) -> "RatingAggregateResponse":
        return cls(average=aggregate.average, count=aggregate.count)
