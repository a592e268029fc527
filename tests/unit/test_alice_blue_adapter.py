"""
Unit Tests for the Alice Blue Trade Source

The HTTP session is mocked; no network access.

Tests:
- Bearer token, endpoint and timeout on the request
- Trade list extraction from each payload shape
- Network, HTTP and payload failures raised as UpstreamUnavailable
"""

from unittest.mock import MagicMock

import pytest
import requests

from quantum_alpha.data_ingestion.adapters import (
    AliceBlueTradeSource,
    StaticTradeSource,
    extract_trade_list,
)
from quantum_alpha.services.replication_errors import (
    ReplicationErrorCode,
    UpstreamUnavailable,
)


def make_response(status: int = 200, payload=None, text: str = "", bad_json: bool = False):
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    response.text = text
    if bad_json:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    return response


@pytest.fixture
def session() -> MagicMock:
    return MagicMock(spec=requests.Session)


@pytest.fixture
def source(session) -> AliceBlueTradeSource:
    return AliceBlueTradeSource(
        base_url="https://broker.example.test/",
        timeout=7,
        session=session,
        correlation_id="test-alice",
    )


class TestRequest:

    def test_request_shape(self, source, session) -> None:
        session.get.return_value = make_response(payload={"trades": []})

        source.fetch_trades("M1", "tok-123")

        session.get.assert_called_once_with(
            "https://broker.example.test/open-api/od/v1/trades",
            headers={
                "Content-Type": "application/json",
                "Authorization": "Bearer tok-123",
            },
            timeout=7,
        )

    @pytest.mark.parametrize(
        "payload",
        [
            {"trades": [{"id": "1"}]},
            {"data": [{"id": "1"}]},
            [{"id": "1"}],
        ],
    )
    def test_payload_shapes(self, source, session, payload) -> None:
        session.get.return_value = make_response(payload=payload)

        assert source.fetch_trades("M1", "tok") == [{"id": "1"}]

    def test_trades_key_preferred_over_data(self) -> None:
        assert extract_trade_list({"trades": [1], "data": [2]}) == [1]
        assert extract_trade_list({"trades": None, "data": [2]}) == [2]
        assert extract_trade_list({"status": "ok"}) is None


class TestFailures:

    @pytest.mark.parametrize(
        "error",
        [
            requests.exceptions.Timeout("slow"),
            requests.exceptions.ConnectionError("refused"),
            requests.exceptions.TooManyRedirects("loop"),
        ],
    )
    def test_transport_errors(self, source, session, error) -> None:
        session.get.side_effect = error

        with pytest.raises(UpstreamUnavailable) as exc_info:
            source.fetch_trades("M1", "tok")

        assert exc_info.value.account_id == "M1"
        assert exc_info.value.error_code == ReplicationErrorCode.UPSTREAM_UNAVAILABLE

    @pytest.mark.parametrize("status", [401, 403, 500, 503])
    def test_http_error_status(self, source, session, status) -> None:
        session.get.return_value = make_response(status=status, text="denied")

        with pytest.raises(UpstreamUnavailable) as exc_info:
            source.fetch_trades("M1", "tok")

        assert str(status) in str(exc_info.value)

    def test_invalid_json(self, source, session) -> None:
        session.get.return_value = make_response(bad_json=True)

        with pytest.raises(UpstreamUnavailable):
            source.fetch_trades("M1", "tok")

    def test_payload_without_trade_list(self, source, session) -> None:
        session.get.return_value = make_response(payload={"stat": "Not_Ok"})

        with pytest.raises(UpstreamUnavailable):
            source.fetch_trades("M1", "tok")


class TestStaticSource:

    def test_serves_copies_of_books(self) -> None:
        source = StaticTradeSource({"M1": [{"id": "1"}]})

        first = source.fetch_trades("M1", "tok")
        first[0]["id"] = "mutated"

        assert source.fetch_trades("M1", "tok") == [{"id": "1"}]
        assert source.fetch_trades("M2", "tok") == []
        assert source.calls == ["M1", "M1", "M2"]

    def test_unavailable_account(self) -> None:
        source = StaticTradeSource()
        source.set_unavailable("M1")

        with pytest.raises(UpstreamUnavailable):
            source.fetch_trades("M1", "tok")

        source.set_available("M1")
        assert source.fetch_trades("M1", "tok") == []
