"""Python client for the B2 Cloud Storage API."""

from .auth import AuthClient, load_credentials, save_credentials
from .client import B2Client
from .errors import (
    ApiError,
    B2Error,
    BadJsonError,
    BadRequestError,
    BadValueError,
    BucketAlreadyExistsError,
    BucketNotEmptyError,
    ConfigError,
    FileNotPresentError,
    MalformedResponseError,
    NotFoundError,
    TokenExpiredError,
    TransportError,
    UnauthorizedError,
    ValidationError,
)
from .models import (
    AuthSession,
    Bucket,
    BucketType,
    Credentials,
    File,
    FileNameListing,
    UploadUrl,
)
from .transport import Transport

__all__ = [
    # Client
    "AuthClient",
    "B2Client",
    "Transport",
    "load_credentials",
    "save_credentials",
    # Models
    "AuthSession",
    "Bucket",
    "BucketType",
    "Credentials",
    "File",
    "FileNameListing",
    "UploadUrl",
    # Errors
    "ApiError",
    "B2Error",
    "BadJsonError",
    "BadRequestError",
    "BadValueError",
    "BucketAlreadyExistsError",
    "BucketNotEmptyError",
    "ConfigError",
    "FileNotPresentError",
    "MalformedResponseError",
    "NotFoundError",
    "TokenExpiredError",
    "TransportError",
    "UnauthorizedError",
    "ValidationError",
]
