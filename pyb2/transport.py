"""HTTP transport for the B2 API.

Wraps httpx clients so every request either returns a decoded body or raises
one of the exceptions in pyb2.errors.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
import pydantic
from pydantic import BaseModel

from .errors import (
    BODY_SNIPPET_LENGTH,
    MalformedResponseError,
    TransportError,
    handle_error_response,
)

logger = logging.getLogger(__name__)

# HTTP client settings
DEFAULT_TIMEOUT = 30.0

ModelT = TypeVar("ModelT", bound=BaseModel)


def decode_model(model: type[ModelT], data: Any) -> ModelT:
    """Validate a decoded JSON body against a response model.

    Raises:
        MalformedResponseError: If the body does not match the model.
    """
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise MalformedResponseError(
            f"Unexpected {model.__name__} response: {e}"
        ) from e


class Transport:
    """Sends requests through httpx and decodes the responses.

    Clients passed in are used as-is and left open on close(); clients the
    transport creates itself are closed by it.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        async_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client
        self._async_client = async_client
        self._owns_client = client is None
        self._owns_async_client = async_client is None

    @property
    def client(self) -> httpx.Client:
        """The blocking httpx client, created on first use."""
        if self._client is None:
            self._client = httpx.Client(timeout=DEFAULT_TIMEOUT)
        return self._client

    @property
    def async_client(self) -> httpx.AsyncClient:
        """The async httpx client, created on first use."""
        if self._async_client is None:
            self._async_client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        return self._async_client

    def request(
        self, method: str, url: str, *, as_json: bool = True, **kwargs: Any
    ) -> Any:
        """Send a request and decode the response.

        Args:
            method: HTTP method.
            url: Absolute URL, or one relative to the client's base_url.
            as_json: Decode the body as JSON; otherwise return the raw bytes.
            **kwargs: Passed through to httpx (headers, json, content, params...).

        Returns:
            The decoded JSON body, or the raw body bytes.

        Raises:
            TransportError: If the request could not be completed.
            ApiError: If the server answered with an error code.
        """
        logger.debug(f"{method} {url}")
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error during {method} {url}: {e}") from e

        return self._handle_response(response, as_json)

    async def request_async(
        self, method: str, url: str, *, as_json: bool = True, **kwargs: Any
    ) -> Any:
        """Send a request and decode the response (async version)."""
        logger.debug(f"{method} {url}")
        try:
            response = await self.async_client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error during {method} {url}: {e}") from e

        return self._handle_response(response, as_json)

    @staticmethod
    def _handle_response(response: httpx.Response, as_json: bool) -> Any:
        if response.status_code != 200:
            handle_error_response(response)

        if not as_json:
            return response.content

        try:
            return response.json()
        except ValueError as e:
            body = response.text[:BODY_SNIPPET_LENGTH]
            raise MalformedResponseError(
                f"Response body is not valid JSON: {body}",
                status=response.status_code,
                body=body,
            ) from e

    def close(self) -> None:
        """Close the blocking client if this transport created it.

        An async client created by the transport is only closed by aclose().
        """
        if self._owns_async_client and self._async_client is not None:
            logger.warning(
                "Async HTTP client is still open; call aclose() to close it"
            )
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    async def aclose(self) -> None:
        """Close both clients if this transport created them."""
        if self._owns_async_client and self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None
        self.close()
