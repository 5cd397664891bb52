import httpx
import pytest

from app.core.config import get_settings
from app.services.boxoffice import (
    BoxOfficeClient,
    BoxOfficeDecodeError,
    BoxOfficeError,
    BoxOfficeFetchError,
)
from app.services.models import BoxOfficeData

NOVA_PAYLOAD = {
    "title": "Nova",
    "distributor": "Acme",
    "releaseDate": "2024-03-01",
    "budget": 5_000_000,
    "revenue": {"worldwide": 1_000_000, "openingWeekendUSA": 250_000},
    "mpaRating": "PG-13",
}


def _client(handler, **kwargs):
    sleeps: list[float] = []
    client = BoxOfficeClient(
        base_url="http://boxoffice.test",
        api_key="key-123",
        transport=httpx.MockTransport(handler),
        sleep=sleeps.append,
        **kwargs,
    )
    return client, sleeps


def test_fetch_by_title_parses_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=NOVA_PAYLOAD)

    client, sleeps = _client(handler)
    data = client.fetch_by_title("Nova")

    assert data == BoxOfficeData(
        title="Nova",
        distributor="Acme",
        release_date="2024-03-01",
        budget=5_000_000,
        worldwide=1_000_000,
        opening_weekend_usa=250_000,
        mpa_rating="PG-13",
    )
    assert sleeps == []
    assert len(seen) == 1
    assert seen[0].url.path == "/boxoffice"
    assert seen[0].url.params["title"] == "Nova"
    assert seen[0].headers["X-API-Key"] == "key-123"


def test_missing_and_null_fields_read_as_empty():
    client, _ = _client(lambda request: httpx.Response(200, json={"distributor": None, "revenue": None}))
    assert client.fetch_by_title("Nova") == BoxOfficeData()


def test_not_found_returns_none():
    client, sleeps = _client(lambda request: httpx.Response(404, json={"error": "not found"}))
    assert client.fetch_by_title("Nobody") is None
    assert sleeps == []


def test_server_errors_are_retried_with_backoff_then_fail():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, text="boom")

    client, sleeps = _client(handler)
    with pytest.raises(BoxOfficeFetchError):
        client.fetch_by_title("Nova")

    assert len(calls) == 3
    assert sleeps == [0.1, 0.2]


def test_backoff_is_capped():
    client, _ = _client(lambda request: httpx.Response(200, json={}))
    assert [client._backoff(attempt) for attempt in range(5)] == [0.1, 0.2, 0.4, 0.5, 0.5]


def test_transient_failure_recovers():
    responses = iter([httpx.Response(503), httpx.Response(429), httpx.Response(200, json=NOVA_PAYLOAD)])
    client, sleeps = _client(lambda request: next(responses))

    data = client.fetch_by_title("Nova")

    assert data is not None and data.distributor == "Acme"
    assert sleeps == [0.1, 0.2]


def test_timeouts_are_retried_then_fail():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectTimeout("timed out", request=request)

    client, _ = _client(handler)
    with pytest.raises(BoxOfficeFetchError):
        client.fetch_by_title("Nova")
    assert len(calls) == 3


def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(401, text="bad key")

    client, sleeps = _client(handler)
    with pytest.raises(BoxOfficeFetchError):
        client.fetch_by_title("Nova")
    assert len(calls) == 1
    assert sleeps == []


def test_deadline_stops_retrying():
    calls = []
    ticks = [0.0, 0.0]

    def clock():
        return ticks.pop(0) if ticks else 1.95

    def handler(request):
        calls.append(request)
        return httpx.Response(502)

    client, sleeps = _client(handler, clock=clock)
    with pytest.raises(BoxOfficeFetchError):
        client.fetch_by_title("Nova")
    assert len(calls) == 1
    assert sleeps == []


def test_slow_body_is_cut_off_at_the_deadline():
    now = [0.0]

    def clock():
        value = now[0]
        now[0] += 0.8
        return value

    def handler(request):
        return httpx.Response(200, content=iter([b'{"distributor":', b' "Acme"', b"}"]))

    client, sleeps = _client(handler, clock=clock)
    with pytest.raises(BoxOfficeFetchError):
        client.fetch_by_title("Nova")
    assert sleeps == []


def test_chunked_body_within_deadline_is_assembled():
    def handler(request):
        return httpx.Response(200, content=iter([b'{"distributor":', b' "Acme"', b"}"]))

    client, _ = _client(handler)
    assert client.fetch_by_title("Nova").distributor == "Acme"


def test_undecodable_content_encoding_is_a_fetch_error():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip at all")

    client, sleeps = _client(handler)
    with pytest.raises(BoxOfficeFetchError):
        client.fetch_by_title("Nova")
    assert len(calls) == 3
    assert sleeps == [0.1, 0.2]


def test_redirect_response_is_a_fetch_error():
    def handler(request):
        return httpx.Response(302, headers={"Location": "http://boxoffice.test/boxoffice"})

    client, _ = _client(handler)
    with pytest.raises(BoxOfficeFetchError):
        client.fetch_by_title("Nova")


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, content=b"<html>not json</html>"),
        httpx.Response(200, content=b"\xff\xfe\x00garbage"),
        httpx.Response(200, json=[1, 2, 3]),
        httpx.Response(200, json={"budget": "lots"}),
        httpx.Response(200, json={"revenue": {"worldwide": "many"}}),
        httpx.Response(200, json={"budget": 10**20}),
        httpx.Response(200, json={"revenue": {"worldwide": 10**20}}),
        httpx.Response(200, json={"revenue": {"openingWeekendUSA": -(10**20)}}),
    ],
)
def test_malformed_body_raises_decode_error(response):
    client, _ = _client(lambda request: response)
    with pytest.raises(BoxOfficeDecodeError):
        client.fetch_by_title("Nova")


def test_largest_bigint_values_are_accepted():
    payload = {"budget": 2**63 - 1, "revenue": {"worldwide": 2**63 - 1}}
    client, _ = _client(lambda request: httpx.Response(200, json=payload))
    data = client.fetch_by_title("Nova")
    assert (data.budget, data.worldwide) == (2**63 - 1, 2**63 - 1)


def test_unconfigured_client_fails_without_network(monkeypatch):
    monkeypatch.delenv("BOXOFFICE_URL", raising=False)
    monkeypatch.delenv("BOXOFFICE_API_KEY", raising=False)
    get_settings.cache_clear()
    try:
        client = BoxOfficeClient(transport=httpx.MockTransport(lambda request: pytest.fail("no request expected")))
        with pytest.raises(BoxOfficeFetchError):
            client.fetch_by_title("Nova")
    finally:
        get_settings.cache_clear()


def test_all_failures_share_a_base_class():
    assert issubclass(BoxOfficeFetchError, BoxOfficeError)
    assert issubclass(BoxOfficeDecodeError, BoxOfficeError)
