"""FastAPI entrypoint wiring repositories, the box-office client and workflows."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from urllib.parse import quote

from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.auth import require_auth_token, require_rater_id
from app.core.errors import ApiError
from app.core.logging_config import configure_logging
from app.db import (
    ConstraintViolation,
    MovieRepository,
    RatingRepository,
    StorageError,
    StorageUnavailable,
    get_session,
    init_models,
    ping,
    wait_for_database,
)
from app.schemas import (
    CreateMovieRequest,
    MovieListResponse,
    MovieResponse,
    RatingAggregateResponse,
    RatingResponse,
    SubmitRatingRequest,
)
from app.services import movies as movie_service
from app.services.boxoffice import BoxOfficeClient
from app.services.cursor import InvalidCursor, decode_cursor
from app.services.models import DEFAULT_PAGE_SIZE, INT64_MAX, INT64_MIN, ListFilters, MovieDraft

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Configure logging, wait for the database and ensure tables before serving."""

    configure_logging()
    wait_for_database()
    init_models()
    yield


app = FastAPI(title="Movies Service", lifespan=lifespan)
movie_repo = MovieRepository()
rating_repo = RatingRepository()


def get_box_office_client() -> BoxOfficeClient:
    return BoxOfficeClient()


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "http request method=%s path=%s status=%d duration_ms=%.1f",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - start) * 1000,
    )
    return response


def _error(status_code: int, code: str, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"code": code, "message": message}, headers=headers)


@app.exception_handler(ApiError)
async def api_error_handler(_: Request, exc: ApiError):
    return _error(exc.status_code, exc.code, exc.message, exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError):
    for error in exc.errors():
        loc = error.get("loc") or ()
        if loc and loc[0] == "query" and len(loc) > 1:
            return _error(status.HTTP_400_BAD_REQUEST, "BAD_REQUEST", f"Invalid {loc[1]} parameter")
    return _error(status.HTTP_400_BAD_REQUEST, "BAD_REQUEST", "Invalid request body")


@app.exception_handler(InvalidCursor)
async def invalid_cursor_handler(_: Request, exc: InvalidCursor):
    return _error(status.HTTP_400_BAD_REQUEST, "BAD_REQUEST", "Invalid cursor parameter")


@app.exception_handler(movie_service.InvalidRating)
async def invalid_rating_handler(_: Request, exc: movie_service.InvalidRating):
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_RATING", str(exc))


@app.exception_handler(movie_service.MovieNotFound)
async def movie_not_found_handler(_: Request, exc: movie_service.MovieNotFound):
    return _error(status.HTTP_404_NOT_FOUND, "NOT_FOUND", "Movie not found")


@app.exception_handler(ConstraintViolation)
async def constraint_violation_handler(request: Request, exc: ConstraintViolation):
    logger.warning("Constraint violation on %s %s: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_409_CONFLICT, "CONFLICT", "A movie with this title already exists")


@app.exception_handler(StorageUnavailable)
async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    logger.error("Storage unavailable on %s %s: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "STORAGE_UNAVAILABLE", "Storage temporarily unavailable")


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "Internal server error")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "Internal server error")


@app.get("/healthz", response_class=PlainTextResponse, tags=["System"])
def health_check(session: Session = Depends(get_session)) -> PlainTextResponse:
    """Liveness probe that also verifies database connectivity."""
    try:
        ping(session)
    except SQLAlchemyError as exc:
        logger.warning("Health check failed: %s", exc)
        return PlainTextResponse("unhealthy", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return PlainTextResponse("ok")


@app.post(
    "/movies",
    response_model=MovieResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_auth_token)],
)
def create_movie(
    payload: CreateMovieRequest,
    request: Request,
    response: Response,
    session: Session = Depends(get_session),
    client: BoxOfficeClient = Depends(get_box_office_client),
) -> MovieResponse:
    """Create a movie and opportunistically enrich it with box-office data."""

    draft = _draft_from_request(payload)
    created = movie_service.create_movie(session, movie_repo, client, draft)
    response.headers["Location"] = _absolute_url(request, f"/movies/{quote(draft.title, safe='')}")
    return MovieResponse.from_item(created)


@app.get("/movies", response_model=MovieListResponse, response_model_exclude_none=True)
def list_movies(
    q: str | None = None,
    year: int | None = Query(None, ge=1, le=9998),
    genre: str | None = None,
    distributor: str | None = None,
    budget: int | None = Query(None, ge=INT64_MIN, le=INT64_MAX),
    mpa_rating: str | None = Query(None, alias="mpaRating"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=INT64_MAX),
    cursor: str | None = None,
    session: Session = Depends(get_session),
) -> MovieListResponse:
    filters = ListFilters(
        query=q,
        year=year,
        genre=genre,
        distributor=distributor,
        budget=budget,
        mpa_rating=mpa_rating,
        limit=limit,
        cursor=decode_cursor(cursor),
    )
    page = movie_service.list_movies(session, movie_repo, filters)
    return MovieListResponse(
        items=[MovieResponse.from_item(item) for item in page.items],
        next_cursor=page.next_cursor,
    )


@app.get("/movies/{title}", response_model=MovieResponse, response_model_exclude_none=True)
def read_movie(title: str, session: Session = Depends(get_session)) -> MovieResponse:
    return MovieResponse.from_item(movie_service.get_movie(session, movie_repo, title))


@app.post(
    "/movies/{title}/ratings",
    response_model=RatingResponse,
    status_code=status.HTTP_201_CREATED,
)
def submit_rating(
    title: str,
    payload: SubmitRatingRequest,
    request: Request,
    response: Response,
    rater_id: str = Depends(require_rater_id),
    session: Session = Depends(get_session),
) -> RatingResponse:
    """Create or overwrite the caller's rating; 201 when new, 200 when replaced."""

    existed = movie_service.submit_rating(
        session,
        rating_repo,
        movie_repo,
        title=title,
        rater_id=rater_id,
        value=payload.rating,
    )
    if existed:
        response.status_code = status.HTTP_200_OK
    response.headers["Location"] = _absolute_url(request, f"/movies/{quote(title, safe='')}/ratings")
    return RatingResponse(movie_title=title, rater_id=rater_id, rating=payload.rating)


@app.get("/movies/{title}/rating", response_model=RatingAggregateResponse)
def get_rating(title: str, session: Session = Depends(get_session)) -> RatingAggregateResponse:
    aggregate = movie_service.rating_summary(session, rating_repo, movie_repo, title)
    return RatingAggregateResponse.from_aggregate(aggregate)


def _draft_from_request(payload: CreateMovieRequest) -> MovieDraft:
    title = payload.title or ""
    genre = payload.genre or ""
    if not title.strip() or not genre.strip() or not payload.release_date:
        raise ApiError.bad_request("title, genre, and releaseDate are required")
    if len(payload.release_date) != 10:
        raise ApiError.bad_request("releaseDate must be in YYYY-MM-DD format")
    try:
        release_date = datetime.strptime(payload.release_date, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ApiError.bad_request("releaseDate must be in YYYY-MM-DD format") from exc
    return MovieDraft(
        title=title,
        genre=genre,
        release_date=release_date,
        distributor=payload.distributor,
        budget=payload.budget,
        mpa_rating=payload.mpa_rating,
    )


def _absolute_url(request: Request, path: str) -> str:
    return f"{str(request.base_url).rstrip('/')}{path}"
