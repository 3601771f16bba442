import json
import threading
from datetime import datetime

import httpx
import pytest

from conftest import API_URL, JUMP_URL, SOURCE_BASE_URL, SOURCE_PAGE, TABLE_PAGE, FakeRemote
from entitlement_cache import EntitlementCache, ResolverState
from exceptions import NoDataError
from license_client import LicenseClient
from models import EntitlementSet
from record_fetcher import ApiStrategy, RecordFetcher, ScrapeStrategy

NOW = datetime(2025, 6, 1, 12, 0, 0)


class CountingFetcher:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    def fetch_records(self, state):
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


def make_client(*results, password=None):
    fetcher = CountingFetcher(*results)
    client = LicenseClient(ResolverState("CODE1", password), fetcher, clock=lambda: NOW)
    return client, fetcher


TABLE = EntitlementSet.from_mapping({
    "FUTURE": "2030-01-01 00:00:00",
    "PAST": "2024/12/31",
    "BROKEN": "someday",
})


def test_future_expiry_is_authorized():
    client, _ = make_client(TABLE)
    assert client.is_authorized("FUTURE") is True


def test_past_expiry_is_denied():
    client, _ = make_client(TABLE)
    assert client.is_authorized("PAST") is False


def test_absent_identifier_is_denied():
    client, _ = make_client(TABLE)
    assert client.is_authorized("NOBODY") is False


def test_unparseable_expiry_is_denied():
    client, _ = make_client(TABLE)
    assert client.is_authorized("BROKEN") is False


def test_date_only_expiry_is_inclusive_at_midnight():
    client, _ = make_client(EntitlementSet.from_mapping({"SN": "2006-01-02"}))

    assert client.is_authorized("SN", now=datetime(2006, 1, 2)) is True
    assert client.is_authorized("SN", now=datetime(2006, 1, 2, 0, 0, 1)) is False


def test_populated_cache_makes_no_further_fetches():
    client, fetcher = make_client(TABLE)

    client.is_authorized("FUTURE")
    client.is_authorized("FUTURE")
    client.is_authorized("NOBODY")

    assert fetcher.calls == 1


def test_fetch_failure_denies_and_leaves_cache_empty():
    client, fetcher = make_client(NoDataError("no data found"))

    assert client.is_authorized("FUTURE") is False
    assert not client.state.cache.read()

    # An empty cache means the next call tries again.
    assert client.is_authorized("FUTURE") is False
    assert fetcher.calls == 2


def test_failed_refresh_keeps_previous_snapshot():
    client, _ = make_client(TABLE, NoDataError("no data found"))
    assert client.is_authorized("FUTURE") is True

    with pytest.raises(NoDataError):
        client.fetch_entitlements()

    assert client.state.cache.read() == TABLE
    assert client.is_authorized("FUTURE") is True


def test_fetch_entitlements_replaces_cache():
    fresh = EntitlementSet.from_mapping({"NEW": "2030-01-01"})
    client, _ = make_client(TABLE, fresh)

    client.fetch_entitlements()
    assert client.fetch_entitlements() == fresh
    assert client.state.cache.read() == fresh
    assert client.is_authorized("FUTURE") is False
    assert client.is_authorized("NEW") is True


def test_aware_now_is_supported():
    client, _ = make_client(TABLE)
    assert client.is_authorized("FUTURE", now=datetime(2025, 6, 1).astimezone()) is True


def test_resolver_instances_do_not_share_cache():
    first, _ = make_client(TABLE)
    second, second_fetcher = make_client(NoDataError("no data found"))

    assert first.is_authorized("FUTURE") is True
    assert second.is_authorized("FUTURE") is False
    assert second_fetcher.calls == 1


def test_cache_refuses_empty_writes():
    cache = EntitlementCache()
    with pytest.raises(ValueError):
        cache.write(EntitlementSet())

    cache.write(TABLE)
    assert cache.read() == TABLE
    cache.clear()
    assert not cache.read()


def test_concurrent_checks_share_one_state():
    client, _ = make_client(TABLE)
    results = []
    lock = threading.Lock()

    def worker():
        allowed = client.is_authorized("FUTURE")
        with lock:
            results.append(allowed)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == [True] * 16
    assert client.state.cache.read() == TABLE


def test_end_to_end_over_http(make_transport):
    remote = FakeRemote({
        ("GET", SOURCE_BASE_URL + "CODE1"): [httpx.Response(200, text=SOURCE_PAGE)],
        ("GET", JUMP_URL): [httpx.Response(200, text=TABLE_PAGE)],
    })
    transport = make_transport(remote)
    fetcher = RecordFetcher([ScrapeStrategy(transport, SOURCE_BASE_URL)])

    with LicenseClient(ResolverState("CODE1"), fetcher, transport=transport) as client:
        assert client.is_authorized("ABC123", now=NOW) is True
        assert client.is_authorized("OLD001", now=NOW) is False
        assert client.is_authorized("ABC123", now=NOW) is True

    assert len(remote.requests) == 2


def test_unpadded_expiry_is_denied():
    client, _ = make_client(EntitlementSet.from_mapping({"SN": "2030-1-5 1:2:3"}))
    assert client.is_authorized("SN") is False


def remote_client(make_transport, routes, password=None):
    transport = make_transport(FakeRemote(routes))
    fetcher = RecordFetcher([
        ApiStrategy(transport, API_URL, "/route", SOURCE_BASE_URL),
        ScrapeStrategy(transport, SOURCE_BASE_URL),
    ])
    return LicenseClient(ResolverState("CODE1", password), fetcher, clock=lambda: NOW)


@pytest.mark.parametrize(
    "jump_url",
    [
        "http://[::1/x",
        "http://static.example.test:notaport/x",
        "javascript:alert(1)",
        "ftp://static.example.test/x",
    ],
)
def test_hostile_jump_url_is_denied(make_transport, jump_url):
    client = remote_client(make_transport, {
        ("GET", SOURCE_BASE_URL + "CODE1"): [
            httpx.Response(200, text=f'<script>var jump_url="{jump_url}";</script>')
        ],
    })

    assert client.is_authorized("ABC123") is False
    assert not client.state.cache.read()


@pytest.mark.parametrize(
    "envelope",
    [
        "{not json",
        "[" * 100000,
        json.dumps({"responses": [42]}),
        json.dumps({"responses": "body"}),
        json.dumps({"responses": [{"body": None}]}),
        json.dumps({"responses": [{"data": {"qrcode_msg": {"qrcode_component": {"0": {}}}}}]}),
        json.dumps({"responses": [{"data": {"qrcode_msg": {"qrcode_component": [
            {"attribute_list": [{"content_html": {"value": ["<table>"]}}]}
        ]}}}]}),
    ],
)
def test_ill_formed_api_envelope_is_denied(make_transport, envelope):
    client = remote_client(
        make_transport,
        {
            ("POST", API_URL): [httpx.Response(200, text=envelope)],
            ("GET", SOURCE_BASE_URL + "CODE1"): [httpx.Response(200, text="<html></html>")],
        },
        password="s3cret",
    )

    assert client.is_authorized("ABC123") is False
    assert not client.state.cache.read()


def test_ill_formed_api_envelope_still_reaches_scrape(make_transport):
    client = remote_client(
        make_transport,
        {
            ("POST", API_URL): [httpx.Response(200, text=json.dumps({"responses": [42]}))],
            ("GET", SOURCE_BASE_URL + "CODE1"): [httpx.Response(200, text=SOURCE_PAGE)],
            ("GET", JUMP_URL): [httpx.Response(200, text=TABLE_PAGE)],
        },
        password="s3cret",
    )

    assert client.is_authorized("ABC123") is True
