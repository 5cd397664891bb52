"""Thin wrapper around the external Box Office API."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable

import httpx
from pydantic import BaseModel, ConfigDict, Field

from app.core.config import get_settings
from app.services.models import INT64_MAX, INT64_MIN, BoxOfficeData


logger = logging.getLogger(__name__)


class BoxOfficeError(Exception):
    """Base exception for Box Office API failures."""


class BoxOfficeFetchError(BoxOfficeError):
    """Raised when the API cannot be reached or keeps answering with errors."""


class BoxOfficeDecodeError(BoxOfficeError):
    """Raised when the API answers 200 with a body we cannot understand."""


class _Revenue(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    worldwide: int | None = Field(default=None, ge=INT64_MIN, le=INT64_MAX)
    opening_weekend_usa: int | None = Field(
        default=None, alias="openingWeekendUSA", ge=INT64_MIN, le=INT64_MAX
    )


class BoxOfficePayload(BaseModel):
    """Wire format of ``GET /boxoffice``; every field may be missing."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    distributor: str | None = None
    release_date: str | None = Field(default=None, alias="releaseDate")
    budget: int | None = Field(default=None, ge=INT64_MIN, le=INT64_MAX)
    revenue: _Revenue | None = None
    mpa_rating: str | None = Field(default=None, alias="mpaRating")

    def to_data(self) -> BoxOfficeData:
        revenue = self.revenue or _Revenue()
        return BoxOfficeData(
            title=self.title or "",
            distributor=self.distributor or "",
            release_date=self.release_date or "",
            budget=self.budget or 0,
            worldwide=revenue.worldwide or 0,
            opening_weekend_usa=revenue.opening_weekend_usa or 0,
            mpa_rating=self.mpa_rating or "",
        )


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or (status_code >= 500 and status_code != 501)


def _preview(body: bytes) -> str:
    return body[:200].decode("utf-8", errors="replace")


class BoxOfficeClient:
    """Box Office HTTP client using API key auth, bounded retries and a deadline."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_min: float | None = None,
        backoff_max: float | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.boxoffice_url or "").rstrip("/")
        self.api_key = api_key or settings.boxoffice_api_key
        self.timeout = timeout if timeout is not None else settings.boxoffice_timeout
        self.max_retries = max_retries if max_retries is not None else settings.boxoffice_max_retries
        self.backoff_min = backoff_min if backoff_min is not None else settings.boxoffice_backoff_min
        self.backoff_max = backoff_max if backoff_max is not None else settings.boxoffice_backoff_max
        self._transport = transport
        self._sleep = sleep
        self._clock = clock

    def _backoff(self, attempt: int) -> float:
        return min(self.backoff_min * (2**attempt), self.backoff_max)

    def _read_body(self, response: httpx.Response, deadline: float) -> bytes:
        """Read a streamed body, giving up once the overall deadline passes."""

        chunks: list[bytes] = []
        for chunk in response.iter_bytes():
            if self._clock() > deadline:
                raise BoxOfficeFetchError(f"response body not received within {self.timeout}s")
            chunks.append(chunk)
        return b"".join(chunks)

    def _request(
        self, method: str, path: str, *, params: dict[str, Any] | None = None
    ) -> tuple[int, bytes]:
        """Send a request, retrying request errors, 429 and 5xx until the deadline.

        Returns the status code and the fully read body.
        """

        if not self.base_url or not self.api_key:
            raise BoxOfficeFetchError("BOXOFFICE_URL and BOXOFFICE_API_KEY must be configured")
        url = f"{self.base_url}{path}"
        deadline = self._clock() + self.timeout
        last_error: BoxOfficeFetchError | None = None

        with httpx.Client(transport=self._transport, headers={"X-API-Key": self.api_key}) as client:
            for attempt in range(self.max_retries + 1):
                remaining = deadline - self._clock()
                if remaining <= 0:
                    break
                try:
                    with client.stream(method, url, params=params, timeout=remaining) as response:
                        status_code = response.status_code
                        body = self._read_body(response, deadline)
                except httpx.RequestError as exc:
                    last_error = BoxOfficeFetchError(f"request failed: {exc!r}")
                    logger.warning("Box office request failed (attempt %d): %r", attempt + 1, exc)
                else:
                    if not _is_retryable(status_code):
                        return status_code, body
                    last_error = BoxOfficeFetchError(f"unexpected status {status_code}")
                    logger.warning(
                        "Box office unexpected status %d (attempt %d): %s",
                        status_code,
                        attempt + 1,
                        _preview(body),
                    )

                if attempt == self.max_retries:
                    break
                wait = self._backoff(attempt)
                if self._clock() + wait >= deadline:
                    break
                self._sleep(wait)

        raise last_error or BoxOfficeFetchError(f"request timed out after {self.timeout}s")

    def fetch_by_title(self, title: str) -> BoxOfficeData | None:
        """Return box-office data for ``title`` or ``None`` when the API has none."""

        status_code, body = self._request("GET", "/boxoffice", params={"title": title})
        if status_code == httpx.codes.NOT_FOUND:
            logger.info("Box office data not found for '%s'", title)
            return None
        if status_code != httpx.codes.OK:
            logger.warning(
                "Box office unexpected status %d for '%s': %s",
                status_code,
                title,
                _preview(body),
            )
            raise BoxOfficeFetchError(f"unexpected status {status_code}")

        try:
            payload = BoxOfficePayload.model_validate(json.loads(body))
        except ValueError as exc:  # JSONDecodeError, UnicodeDecodeError and pydantic ValidationError
            logger.warning("Box office response decode failed for '%s': %s", title, exc)
            raise BoxOfficeDecodeError(f"decode failed: {exc}") from exc
        logger.debug("Box office payload for '%s': %s", title, payload)
        return payload.to_data()
