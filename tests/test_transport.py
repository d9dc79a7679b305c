"""Tests for the HTTP transport and the error classifier."""

from __future__ import annotations

import logging

import httpx
import pytest
from pytest_httpx import HTTPXMock
from stubs import error_data

from pyb2 import (
    ApiError,
    B2Error,
    BadJsonError,
    BucketAlreadyExistsError,
    MalformedResponseError,
    TokenExpiredError,
    Transport,
    TransportError,
    UnauthorizedError,
)
from pyb2.errors import ERROR_CODES, handle_error_response

URL = "https://api900.backblazeb2.com/b2api/v1/b2_list_buckets"


class TestHandleErrorResponse:
    """Tests for mapping error responses to exceptions."""

    @pytest.mark.parametrize(
        ("code", "error_class"),
        [
            ("duplicate_bucket_name", BucketAlreadyExistsError),
            ("bad_json", BadJsonError),
            ("expired_auth_token", TokenExpiredError),
            ("bad_auth_token", UnauthorizedError),
            ("unauthorized", UnauthorizedError),
        ],
    )
    def test_known_codes(self, code: str, error_class: type[ApiError]) -> None:
        """Test that known codes raise their own exception class."""
        response = httpx.Response(400, json=error_data(400, code, "details"))

        with pytest.raises(error_class) as exc_info:
            handle_error_response(response)

        assert type(exc_info.value) is ERROR_CODES[code]
        assert exc_info.value.code == code
        assert exc_info.value.message == "details"

    def test_unknown_code_raises_api_error(self) -> None:
        """Test that an unmapped code raises a generic ApiError."""
        response = httpx.Response(
            429, json=error_data(429, "too_many_requests", "Slow down")
        )

        with pytest.raises(ApiError) as exc_info:
            handle_error_response(response)

        assert type(exc_info.value) is ApiError
        assert exc_info.value.status == 429
        assert exc_info.value.code == "too_many_requests"
        assert "Slow down" in str(exc_info.value)

    def test_status_from_response_when_body_has_none(self) -> None:
        """Test that the HTTP status is used when the body omits it."""
        response = httpx.Response(503, json={"code": "service_unavailable"})

        with pytest.raises(ApiError) as exc_info:
            handle_error_response(response)

        assert exc_info.value.status == 503

    def test_non_json_body_raises_transport_error(self) -> None:
        """Test that an HTML error page raises TransportError."""
        response = httpx.Response(502, text="<html>Bad Gateway</html>")

        with pytest.raises(TransportError) as exc_info:
            handle_error_response(response)

        assert exc_info.value.status == 502
        assert "Bad Gateway" in exc_info.value.body

    def test_json_without_code_raises_transport_error(self) -> None:
        """Test that JSON which is not an error document raises TransportError."""
        response = httpx.Response(500, json=["unexpected"])

        with pytest.raises(TransportError):
            handle_error_response(response)

    def test_all_errors_share_base_class(self) -> None:
        """Test that every mapped exception is a B2Error."""
        assert all(issubclass(cls, B2Error) for cls in ERROR_CODES.values())


class TestTransport:
    """Tests for sending requests."""

    def test_json_response(self, httpx_mock: HTTPXMock) -> None:
        """Test that a 200 response is decoded as JSON."""
        httpx_mock.add_response(url=URL, method="POST", json={"buckets": []})

        transport = Transport()
        assert transport.request("POST", URL, json={}) == {"buckets": []}
        transport.close()

    def test_raw_response(self, httpx_mock: HTTPXMock) -> None:
        """Test that as_json=False returns the raw body."""
        httpx_mock.add_response(url=URL, method="GET", content=b"\x00\x01raw")

        transport = Transport()
        assert transport.request("GET", URL, as_json=False) == b"\x00\x01raw"
        transport.close()

    def test_malformed_success_body(self, httpx_mock: HTTPXMock) -> None:
        """Test that a 200 response with invalid JSON is an error."""
        httpx_mock.add_response(url=URL, method="POST", text="not json")

        transport = Transport()
        with pytest.raises(MalformedResponseError):
            transport.request("POST", URL)
        transport.close()

    def test_error_status_is_classified(self, httpx_mock: HTTPXMock) -> None:
        """Test that non-200 responses go through the classifier."""
        httpx_mock.add_response(
            url=URL,
            method="POST",
            status_code=400,
            json=error_data(400, "bad_json", "Bucket does not exist"),
        )

        transport = Transport()
        with pytest.raises(BadJsonError):
            transport.request("POST", URL)
        transport.close()

    def test_network_error(self, httpx_mock: HTTPXMock) -> None:
        """Test that connection failures raise TransportError."""
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))

        transport = Transport()
        with pytest.raises(TransportError) as exc_info:
            transport.request("POST", URL)

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        transport.close()

    def test_close_leaves_injected_client_open(self) -> None:
        """Test that only clients created by the transport are closed."""
        client = httpx.Client()
        transport = Transport(client=client)

        transport.close()

        assert client.is_closed is False
        client.close()

    def test_close_owned_client(self) -> None:
        """Test that an owned client is closed and recreated on demand."""
        transport = Transport()
        first = transport.client

        transport.close()

        assert first.is_closed is True
        assert transport.client is not first
        transport.close()


@pytest.mark.asyncio
class TestAsyncTransport:
    """Tests for async requests."""

    async def test_json_response_async(self, httpx_mock: HTTPXMock) -> None:
        """Test async JSON decoding."""
        httpx_mock.add_response(url=URL, method="POST", json={"buckets": []})

        transport = Transport()
        assert await transport.request_async("POST", URL) == {"buckets": []}
        await transport.aclose()

    async def test_network_error_async(self, httpx_mock: HTTPXMock) -> None:
        """Test async connection failures."""
        httpx_mock.add_exception(httpx.ConnectTimeout("Timed out"))

        transport = Transport()
        with pytest.raises(TransportError):
            await transport.request_async("POST", URL)
        await transport.aclose()

    async def test_aclose_closes_both_clients(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that aclose() closes owned clients without warning."""
        transport = Transport()
        client = transport.client
        async_client = transport.async_client

        await transport.aclose()

        assert client.is_closed is True
        assert async_client.is_closed is True
        assert "still open" not in caplog.text

    async def test_sync_close_warns_about_open_async_client(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that close() reports an owned async client it cannot close."""
        transport = Transport()
        async_client = transport.async_client

        with caplog.at_level(logging.WARNING, logger="pyb2.transport"):
            transport.close()

        assert "Async HTTP client is still open" in caplog.text
        assert async_client.is_closed is False
        await transport.aclose()
