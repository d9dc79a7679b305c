"""Exceptions raised by the B2 client and the mapping from API error codes.

Every non-200 response from any endpoint goes through
handle_error_response(), so bucket and file operations report failures with
the same exception classes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

import pydantic

from .models import ErrorResponse

if TYPE_CHECKING:
    import httpx

# Longest body excerpt kept on a TransportError
BODY_SNIPPET_LENGTH = 200


class B2Error(Exception):
    """Base exception for all B2 client errors."""

    pass


class ValidationError(B2Error):
    """Raised when arguments are rejected before any request is sent."""

    pass


class ConfigError(B2Error):
    """Raised when credential configuration loading/saving fails."""

    pass


class TransportError(B2Error):
    """Raised when the HTTP layer fails or an error body cannot be decoded."""

    def __init__(
        self, message: str, status: int | None = None, body: str = ""
    ) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class MalformedResponseError(TransportError):
    """Raised when a successful response does not have the expected body."""

    pass


class ApiError(B2Error):
    """Raised for an error code returned by the B2 API.

    Subclasses exist for the codes callers commonly need to tell apart;
    any other code raises ApiError itself.

    Attributes:
        status: HTTP status code of the response.
        code: B2 error code, e.g. "duplicate_bucket_name".
        message: Human readable message from the server.
    """

    def __init__(self, status: int, code: str, message: str = "") -> None:
        super().__init__(f"{code} ({status}): {message}")
        self.status = status
        self.code = code
        self.message = message


class BadJsonError(ApiError):
    """The server could not parse the request body.

    Also what the server answers when deleting a bucket that does not exist.
    """

    pass


class BadValueError(ApiError):
    """A request parameter had an invalid value."""

    pass


class BadRequestError(ApiError):
    """The request was malformed."""

    pass


class BucketAlreadyExistsError(ApiError):
    """A bucket with the requested name already exists."""

    pass


class BucketNotEmptyError(ApiError):
    """The bucket still holds files and cannot be deleted."""

    pass


class NotFoundError(ApiError):
    """The requested file or bucket was not found."""

    pass


class FileNotPresentError(ApiError):
    """The file version to act on is not present."""

    pass


class UnauthorizedError(ApiError):
    """The credentials or auth token were rejected."""

    pass


class TokenExpiredError(UnauthorizedError):
    """The auth token has expired and the account must be re-authorized."""

    pass


ERROR_CODES: dict[str, type[ApiError]] = {
    "bad_json": BadJsonError,
    "bad_value": BadValueError,
    "bad_request": BadRequestError,
    "duplicate_bucket_name": BucketAlreadyExistsError,
    "cannot_delete_non_empty_bucket": BucketNotEmptyError,
    "not_found": NotFoundError,
    "file_not_present": FileNotPresentError,
    "unauthorized": UnauthorizedError,
    "bad_auth_token": UnauthorizedError,
    "expired_auth_token": TokenExpiredError,
}


def handle_error_response(response: httpx.Response) -> NoReturn:
    """Raise the exception matching an error response.

    Args:
        response: A response whose status code is not 200.

    Raises:
        ApiError: Or the subclass registered for the response's error code.
        TransportError: If the body is not a B2 error document.
    """
    try:
        error = ErrorResponse.model_validate(response.json())
    except (ValueError, pydantic.ValidationError) as e:
        body = response.text[:BODY_SNIPPET_LENGTH]
        raise TransportError(
            f"Unexpected response: {response.status_code} - {body}",
            status=response.status_code,
            body=body,
        ) from e

    error_class = ERROR_CODES.get(error.code, ApiError)
    raise error_class(error.status or response.status_code, error.code, error.message)
