from unittest import mock

import pytest
import requests

from autoredeem.errors import FeedError, NetworkError
from autoredeem.feed import FeedClient

from .helpers import CODE, OTHER_CODE, make_response

FEED_URL = "https://feed.example.test/shift-codes.json"
THIRD_CODE = "11111-22222-33333-44444-55555"
EXPIRED_CODE = "EEEEE-EEEEE-EEEEE-EEEEE-EEEEE"
BL3_CODE = "33333-33333-33333-33333-33333"


def _entry(code, games=("Borderlands 4",), expired=False):
    return {
        "code": code,
        "games": list(games),
        "discoveredAt": "2026-01-01T00:00:00Z",
        "expires": None,
        "source": "test",
        "reward": "3 Golden Keys",
        "expired": expired,
    }


FEED = {
    "meta": {"generatedAt": "2026-01-02T00:00:00Z"},
    "codes": [
        _entry(CODE),
        _entry(OTHER_CODE),
        _entry(THIRD_CODE),
        _entry(EXPIRED_CODE, expired=True),
        _entry(BL3_CODE, games=("Borderlands 3",)),
        {"code": "not-a-code", "games": ["Borderlands 4"]},
    ],
}


@pytest.fixture
def feed(ledger, http):
    return FeedClient(FEED_URL, ledger, http=http, sleep=mock.Mock())


def test_fetch_codes_parses_and_skips_malformed(feed, http):
    with mock.patch.object(http, "get", return_value=make_response(200, json_data=FEED)) as get:
        codes = feed.fetch_codes()

    assert [c.code for c in codes] == [CODE, OTHER_CODE, THIRD_CODE, EXPIRED_CODE, BL3_CODE]
    assert codes[0].reward == "3 Golden Keys"
    assert get.call_args.kwargs["headers"]["Accept"] == "application/json"


def test_fetch_available_codes_partitions(feed, http, ledger):
    ledger.mark_redeemed(OTHER_CODE)
    ledger.add_failed(THIRD_CODE, "Invalid code")
    ledger.add_failed(THIRD_CODE, "Invalid code")

    with mock.patch.object(http, "get", return_value=make_response(200, json_data=FEED)):
        result = feed.fetch_available_codes(["Borderlands 4"])

    assert [c.code for c in result.available] == [CODE]
    assert [c.code for c in result.redeemed] == [OTHER_CODE]
    assert [f.code.code for f in result.failed] == [THIRD_CODE]
    assert result.failed[0].failed_reason == "Invalid code"
    assert result.failed[0].attempt_count == 2


def test_fetch_available_codes_filters_by_game(feed, http):
    with mock.patch.object(http, "get", return_value=make_response(200, json_data=FEED)):
        result = feed.fetch_available_codes(["Borderlands 3"])

    assert [c.code for c in result.available] == [BL3_CODE]


def test_server_errors_are_retried(feed, http):
    responses = [make_response(503), make_response(200, json_data=FEED)]
    with mock.patch.object(http, "get", side_effect=responses) as get:
        codes = feed.fetch_codes()

    assert get.call_count == 2
    assert len(codes) == 5


def test_client_errors_are_not_retried(feed, http):
    with mock.patch.object(http, "get", return_value=make_response(404)) as get:
        with pytest.raises(FeedError) as excinfo:
            feed.fetch_codes()

    assert get.call_count == 1
    assert excinfo.value.status_code == 404


def test_network_errors_after_retries(feed, http):
    with mock.patch.object(http, "get", side_effect=requests.ConnectionError("offline")) as get:
        with pytest.raises(NetworkError):
            feed.fetch_codes()

    assert get.call_count == 3


def test_invalid_payload(feed, http):
    with mock.patch.object(http, "get", return_value=make_response(200, "<html>not json</html>")):
        with pytest.raises(FeedError):
            feed.fetch_codes()

    with mock.patch.object(http, "get", return_value=make_response(200, json_data={"meta": {}})):
        with pytest.raises(FeedError):
            feed.fetch_codes()
