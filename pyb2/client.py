"""Bucket and file operations for the B2 Cloud Storage API.

Storage Operations:
- Create, update, list and delete buckets
- Upload files
- List, download and delete files

Every operation authorizes the account on first use. When the server reports
the auth token as expired, the account is authorized once more and the
operation is run a second time; a second expiry is raised to the caller.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any, TypeVar, Union
from urllib.parse import quote

import httpx

from .auth import AuthClient, require_credentials
from .errors import TokenExpiredError, ValidationError
from .models import (
    AuthSession,
    Bucket,
    BucketList,
    BucketType,
    CreateBucketRequest,
    Credentials,
    File,
    FileNameListing,
    ListFileNamesRequest,
    UpdateBucketRequest,
    UploadUrl,
)
from .transport import Transport, decode_model

if TYPE_CHECKING:
    from typing import Self

logger = logging.getLogger(__name__)

# API path prefix (relative to the apiUrl/downloadUrl of the session)
API_PREFIX = "/b2api/v1/"

# Upload settings
DEFAULT_CONTENT_TYPE = "b2/x-auto"
UPLOAD_TIMEOUT = 300.0  # 5 minutes for uploads
MAX_FILE_INFO_ENTRIES = 10  # including src_last_modified_millis
LAST_MODIFIED_INFO_KEY = "src_last_modified_millis"

# b2_list_file_names limits
MAX_FILE_COUNT = 10000

T = TypeVar("T")

Content = Union[bytes, bytearray, memoryview, str, IO[bytes]]


def _validate_bucket_type(bucket_type: BucketType | str | None) -> BucketType:
    try:
        return BucketType(bucket_type)
    except ValueError:
        allowed = ", ".join(t.value for t in BucketType)
        raise ValidationError(
            f"Bucket type must be one of {allowed}, got {bucket_type!r}"
        ) from None


def _read_content(content: Content) -> bytes:
    """Return the full payload of an upload as bytes.

    Streams are read from their current position to the end.
    """
    if isinstance(content, str):
        return content.encode("utf-8")
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content)
    if hasattr(content, "read"):
        data = content.read()
        if not isinstance(data, bytes):
            raise ValidationError("Upload streams must be opened in binary mode")
        return data
    raise ValidationError(
        f"Cannot upload content of type {type(content).__name__}"
    )


def _bucket_named(buckets: list[Bucket], name: str) -> Bucket | None:
    for bucket in buckets:
        if bucket.name == name:
            return bucket
    return None


def _bucket_id_for_name(listing: BucketList, name: str) -> str:
    bucket = _bucket_named(listing.buckets, name)
    if bucket is None:
        raise ValidationError(f"No bucket named {name!r}")
    return bucket.id


def _encode_file_name(file_name: str) -> str:
    return quote(file_name, safe="/")


def _upload_headers(
    upload_url: UploadUrl,
    file_name: str,
    data: bytes,
    sha1: str,
    content_type: str | None,
    file_info: dict[str, str],
) -> dict[str, str]:
    headers = {
        "Authorization": upload_url.auth_token,
        "X-Bz-File-Name": _encode_file_name(file_name),
        "Content-Type": content_type or DEFAULT_CONTENT_TYPE,
        "X-Bz-Content-Sha1": sha1,
        f"X-Bz-Info-{LAST_MODIFIED_INFO_KEY}": str(round(time.time() * 1000)),
        "Content-Length": str(len(data)),
    }
    for key, value in file_info.items():
        headers[f"X-Bz-Info-{key}"] = quote(str(value), safe="")
    return headers


class B2Client:
    """Client for the B2 Cloud Storage API.

    Instances may be shared between threads: re-authorization is serialized,
    and concurrent callers that hit the same expired token share one refresh.
    Anything beyond that needs external locking.

    Use `async with` (or aclose()) once any _async method has been called;
    a plain `with` only closes the blocking HTTP client.

    Example:
        >>> b2 = B2Client("accountId", "applicationKey")
        >>> bucket = b2.create_bucket("my-bucket", BucketType.PRIVATE)
        >>> b2.upload(bucket.id, "hello.txt", b"Hello, world")
        >>> b2.list_buckets()

    Attributes:
        transport: Transport used for every request.
        auth_client: Authorization manager holding the credentials and session.
    """

    def __init__(
        self,
        account_id: str,
        application_key: str,
        *,
        client: httpx.Client | None = None,
        async_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        No request is made until the first operation.

        Args:
            account_id: B2 account ID.
            application_key: Application key for the account.
            client: httpx client to send blocking requests with.
            async_client: httpx client to send async requests with.
        """
        self.transport = Transport(client=client, async_client=async_client)
        self.auth_client = AuthClient(
            Credentials(account_id=account_id, application_key=application_key),
            self.transport,
        )

    @property
    def account_id(self) -> str:
        return self.auth_client.credentials.account_id

    @property
    def session(self) -> AuthSession | None:
        """The current session, None before the first authorization."""
        return self.auth_client.session

    def authorize(self) -> AuthSession:
        """Authorize the account now instead of on the first operation."""
        return self.auth_client.authorize()

    async def authorize_async(self) -> AuthSession:
        """Authorize the account now (async version)."""
        return await self.auth_client.authorize_async()

    # -------------------------------------------------------------------------
    # Request plumbing
    # -------------------------------------------------------------------------

    def _with_reauthorization(self, operation: Callable[[AuthSession], T]) -> T:
        session = self.auth_client.ensure_authorized()
        try:
            return operation(session)
        except TokenExpiredError:
            session = self.auth_client.reauthorize(session.auth_token)
            return operation(session)

    async def _with_reauthorization_async(
        self, operation: Callable[[AuthSession], Awaitable[T]]
    ) -> T:
        session = await self.auth_client.ensure_authorized_async()
        try:
            return await operation(session)
        except TokenExpiredError:
            session = await self.auth_client.reauthorize_async(session.auth_token)
            return await operation(session)

    @staticmethod
    def _api_url(session: AuthSession, call: str) -> str:
        return f"{session.api_url}{API_PREFIX}{call}"

    def _call_api(self, call: str, payload: dict[str, Any]) -> Any:
        return self._with_reauthorization(
            lambda session: self.transport.request(
                "POST",
                self._api_url(session, call),
                headers={"Authorization": session.auth_token},
                json=payload,
            )
        )

    async def _call_api_async(self, call: str, payload: dict[str, Any]) -> Any:
        return await self._with_reauthorization_async(
            lambda session: self.transport.request_async(
                "POST",
                self._api_url(session, call),
                headers={"Authorization": session.auth_token},
                json=payload,
            )
        )

    # -------------------------------------------------------------------------
    # Buckets
    # -------------------------------------------------------------------------

    def create_bucket(
        self, bucket_name: str, bucket_type: BucketType | str
    ) -> Bucket:
        """Create a new bucket.

        Args:
            bucket_name: Name for the new bucket.
            bucket_type: BucketType.PUBLIC or BucketType.PRIVATE.

        Returns:
            The created Bucket.

        Raises:
            ValidationError: If the bucket type is invalid. No request is sent.
            BucketAlreadyExistsError: If the name is already taken.
        """
        request = CreateBucketRequest(
            account_id=self.account_id,
            bucket_name=bucket_name,
            bucket_type=_validate_bucket_type(bucket_type),
        )
        data = self._call_api("b2_create_bucket", request.model_dump(by_alias=True))
        bucket = decode_model(Bucket, data)
        logger.debug(f"Created bucket {bucket.name} ({bucket.id})")
        return bucket

    async def create_bucket_async(
        self, bucket_name: str, bucket_type: BucketType | str
    ) -> Bucket:
        """Create a new bucket (async version)."""
        request = CreateBucketRequest(
            account_id=self.account_id,
            bucket_name=bucket_name,
            bucket_type=_validate_bucket_type(bucket_type),
        )
        data = await self._call_api_async(
            "b2_create_bucket", request.model_dump(by_alias=True)
        )
        bucket = decode_model(Bucket, data)
        logger.debug(f"Created bucket {bucket.name} ({bucket.id})")
        return bucket

    def update_bucket(
        self,
        bucket_id: str | None = None,
        bucket_type: BucketType | str | None = None,
        *,
        bucket_name: str | None = None,
    ) -> Bucket:
        """Change the type of a bucket.

        The bucket is named either by ID or, with bucket_name, by name. A name
        is resolved to its ID with an extra b2_list_buckets request.

        Args:
            bucket_id: ID of the bucket to update.
            bucket_type: The new BucketType.
            bucket_name: Name of the bucket to update, instead of its ID.

        Returns:
            The updated Bucket.

        Raises:
            ValidationError: If the bucket type is invalid or the bucket is not
                named exactly one way (no request is sent), or if no bucket
                has the given name.
        """
        bucket_type = self._check_update_args(bucket_id, bucket_type, bucket_name)

        def operation(session: AuthSession) -> Any:
            request = UpdateBucketRequest(
                account_id=self.account_id,
                bucket_id=(
                    bucket_id
                    if bucket_id is not None
                    else self._lookup_bucket_id(session, bucket_name)
                ),
                bucket_type=bucket_type,
            )
            return self.transport.request(
                "POST",
                self._api_url(session, "b2_update_bucket"),
                headers={"Authorization": session.auth_token},
                json=request.model_dump(by_alias=True),
            )

        bucket = decode_model(Bucket, self._with_reauthorization(operation))
        logger.debug(f"Updated bucket {bucket.name} to {bucket.type}")
        return bucket

    async def update_bucket_async(
        self,
        bucket_id: str | None = None,
        bucket_type: BucketType | str | None = None,
        *,
        bucket_name: str | None = None,
    ) -> Bucket:
        """Change the type of a bucket (async version)."""
        bucket_type = self._check_update_args(bucket_id, bucket_type, bucket_name)

        async def operation(session: AuthSession) -> Any:
            request = UpdateBucketRequest(
                account_id=self.account_id,
                bucket_id=(
                    bucket_id
                    if bucket_id is not None
                    else await self._lookup_bucket_id_async(session, bucket_name)
                ),
                bucket_type=bucket_type,
            )
            return await self.transport.request_async(
                "POST",
                self._api_url(session, "b2_update_bucket"),
                headers={"Authorization": session.auth_token},
                json=request.model_dump(by_alias=True),
            )

        bucket = decode_model(
            Bucket, await self._with_reauthorization_async(operation)
        )
        logger.debug(f"Updated bucket {bucket.name} to {bucket.type}")
        return bucket

    @staticmethod
    def _check_update_args(
        bucket_id: str | None,
        bucket_type: BucketType | str | None,
        bucket_name: str | None,
    ) -> BucketType:
        if (bucket_id is None) == (bucket_name is None):
            raise ValidationError("Pass exactly one of bucket_id or bucket_name")
        return _validate_bucket_type(bucket_type)

    def _lookup_bucket_id(self, session: AuthSession, bucket_name: str) -> str:
        data = self.transport.request(
            "POST",
            self._api_url(session, "b2_list_buckets"),
            headers={"Authorization": session.auth_token},
            json={"accountId": self.account_id},
        )
        return _bucket_id_for_name(decode_model(BucketList, data), bucket_name)

    async def _lookup_bucket_id_async(
        self, session: AuthSession, bucket_name: str
    ) -> str:
        data = await self.transport.request_async(
            "POST",
            self._api_url(session, "b2_list_buckets"),
            headers={"Authorization": session.auth_token},
            json={"accountId": self.account_id},
        )
        return _bucket_id_for_name(decode_model(BucketList, data), bucket_name)

    def list_buckets(self) -> list[Bucket]:
        """List all buckets of the account, in the order the server returns.

        Returns:
            List of Bucket objects, empty if the account has none.
        """
        data = self._call_api("b2_list_buckets", {"accountId": self.account_id})
        return decode_model(BucketList, data).buckets

    async def list_buckets_async(self) -> list[Bucket]:
        """List all buckets of the account (async version)."""
        data = await self._call_api_async(
            "b2_list_buckets", {"accountId": self.account_id}
        )
        return decode_model(BucketList, data).buckets

    def find_bucket_by_name(self, name: str) -> Bucket | None:
        """Find a bucket by its name.

        Returns:
            Bucket if found, None otherwise.
        """
        return _bucket_named(self.list_buckets(), name)

    async def find_bucket_by_name_async(self, name: str) -> Bucket | None:
        """Find a bucket by its name (async version)."""
        return _bucket_named(await self.list_buckets_async(), name)

    def delete_bucket(self, bucket_id: str) -> bool:
        """Delete a bucket.

        Args:
            bucket_id: ID of the bucket to delete.

        Returns:
            True if deletion was successful.

        Raises:
            BadJsonError: If the bucket does not exist. The server reports
                unknown bucket IDs as bad_json.
            BucketNotEmptyError: If the bucket still holds files.
        """
        self._call_api(
            "b2_delete_bucket",
            {"accountId": self.account_id, "bucketId": bucket_id},
        )
        logger.debug(f"Deleted bucket {bucket_id}")
        return True

    async def delete_bucket_async(self, bucket_id: str) -> bool:
        """Delete a bucket (async version)."""
        await self._call_api_async(
            "b2_delete_bucket",
            {"accountId": self.account_id, "bucketId": bucket_id},
        )
        logger.debug(f"Deleted bucket {bucket_id}")
        return True

    # -------------------------------------------------------------------------
    # Uploads
    # -------------------------------------------------------------------------

    def _fetch_upload_url(self, session: AuthSession, bucket_id: str) -> UploadUrl:
        data = self.transport.request(
            "POST",
            self._api_url(session, "b2_get_upload_url"),
            headers={"Authorization": session.auth_token},
            json={"bucketId": bucket_id},
        )
        return decode_model(UploadUrl, data)

    async def _fetch_upload_url_async(
        self, session: AuthSession, bucket_id: str
    ) -> UploadUrl:
        data = await self.transport.request_async(
            "POST",
            self._api_url(session, "b2_get_upload_url"),
            headers={"Authorization": session.auth_token},
            json={"bucketId": bucket_id},
        )
        return decode_model(UploadUrl, data)

    def get_upload_url(self, bucket_id: str) -> UploadUrl:
        """Get a URL and token for uploading a file to a bucket."""
        return self._with_reauthorization(
            lambda session: self._fetch_upload_url(session, bucket_id)
        )

    async def get_upload_url_async(self, bucket_id: str) -> UploadUrl:
        """Get a URL and token for uploading a file (async version)."""
        return await self._with_reauthorization_async(
            lambda session: self._fetch_upload_url_async(session, bucket_id)
        )

    def upload(
        self,
        bucket_id: str,
        file_name: str,
        content: Content,
        *,
        content_type: str | None = None,
        file_info: dict[str, str] | None = None,
    ) -> File:
        """Upload a file to a bucket.

        The whole content is read up front to compute its length and SHA-1.

        Args:
            bucket_id: ID of the destination bucket.
            file_name: Name of the file in the bucket.
            content: Bytes, a str (sent UTF-8 encoded) or a binary stream.
            content_type: MIME type. Defaults to b2/x-auto.
            file_info: Extra X-Bz-Info-* headers stored with the file.

        Returns:
            File metadata of the uploaded file.

        Raises:
            ValidationError: If the content or file info cannot be sent.
        """
        data, sha1, info = self._prepare_upload(content, file_info)

        def operation(session: AuthSession) -> Any:
            upload_url = self._fetch_upload_url(session, bucket_id)
            return self.transport.request(
                "POST",
                upload_url.upload_url,
                headers=_upload_headers(
                    upload_url, file_name, data, sha1, content_type, info
                ),
                content=data,
                timeout=UPLOAD_TIMEOUT,
            )

        uploaded = decode_model(File, self._with_reauthorization(operation))
        logger.debug(f"Uploaded {uploaded.name} ({uploaded.size} bytes)")
        return uploaded

    async def upload_async(
        self,
        bucket_id: str,
        file_name: str,
        content: Content,
        *,
        content_type: str | None = None,
        file_info: dict[str, str] | None = None,
    ) -> File:
        """Upload a file to a bucket (async version).

        Streams are read synchronously; pass bytes to avoid blocking the loop.
        """
        data, sha1, info = self._prepare_upload(content, file_info)

        async def operation(session: AuthSession) -> Any:
            upload_url = await self._fetch_upload_url_async(session, bucket_id)
            return await self.transport.request_async(
                "POST",
                upload_url.upload_url,
                headers=_upload_headers(
                    upload_url, file_name, data, sha1, content_type, info
                ),
                content=data,
                timeout=UPLOAD_TIMEOUT,
            )

        uploaded = decode_model(
            File, await self._with_reauthorization_async(operation)
        )
        logger.debug(f"Uploaded {uploaded.name} ({uploaded.size} bytes)")
        return uploaded

    @staticmethod
    def _prepare_upload(
        content: Content, file_info: dict[str, str] | None
    ) -> tuple[bytes, str, dict[str, str]]:
        info = dict(file_info or {})
        if len(info) >= MAX_FILE_INFO_ENTRIES:
            raise ValidationError(
                f"At most {MAX_FILE_INFO_ENTRIES - 1} file info entries are allowed"
            )
        if LAST_MODIFIED_INFO_KEY in info:
            raise ValidationError(
                f"File info key {LAST_MODIFIED_INFO_KEY!r} is set by the client"
            )
        data = _read_content(content)
        return data, hashlib.sha1(data).hexdigest(), info

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def list_file_names(
        self,
        bucket_id: str,
        *,
        start_file_name: str | None = None,
        max_file_count: int = 100,
    ) -> FileNameListing:
        """List one page of file names in a bucket.

        Args:
            bucket_id: ID of the bucket.
            start_file_name: First file name to return (from a previous page).
            max_file_count: Maximum number of files to return (1-10000).

        Returns:
            FileNameListing with the files and the name to continue from.
        """
        request = self._list_file_names_request(
            bucket_id, start_file_name, max_file_count
        )
        data = self._call_api("b2_list_file_names", request.to_payload())
        return decode_model(FileNameListing, data)

    async def list_file_names_async(
        self,
        bucket_id: str,
        *,
        start_file_name: str | None = None,
        max_file_count: int = 100,
    ) -> FileNameListing:
        """List one page of file names in a bucket (async version)."""
        request = self._list_file_names_request(
            bucket_id, start_file_name, max_file_count
        )
        data = await self._call_api_async("b2_list_file_names", request.to_payload())
        return decode_model(FileNameListing, data)

    @staticmethod
    def _list_file_names_request(
        bucket_id: str, start_file_name: str | None, max_file_count: int
    ) -> ListFileNamesRequest:
        if not 1 <= max_file_count <= MAX_FILE_COUNT:
            raise ValidationError(
                f"max_file_count must be between 1 and {MAX_FILE_COUNT}"
            )
        return ListFileNamesRequest(
            bucket_id=bucket_id,
            start_file_name=start_file_name,
            max_file_count=max_file_count,
        )

    def download_file_by_id(self, file_id: str) -> bytes:
        """Download the contents of a file version.

        Raises:
            NotFoundError: If there is no such file.
        """
        return self._with_reauthorization(
            lambda session: self.transport.request(
                "GET",
                f"{session.download_url}{API_PREFIX}b2_download_file_by_id",
                as_json=False,
                headers={"Authorization": session.auth_token},
                params={"fileId": file_id},
            )
        )

    async def download_file_by_id_async(self, file_id: str) -> bytes:
        """Download the contents of a file version (async version)."""
        return await self._with_reauthorization_async(
            lambda session: self.transport.request_async(
                "GET",
                f"{session.download_url}{API_PREFIX}b2_download_file_by_id",
                as_json=False,
                headers={"Authorization": session.auth_token},
                params={"fileId": file_id},
            )
        )

    def download_file_by_name(self, bucket_name: str, file_name: str) -> bytes:
        """Download the latest version of a file by bucket and file name.

        Raises:
            NotFoundError: If there is no such file.
        """
        return self._with_reauthorization(
            lambda session: self.transport.request(
                "GET",
                f"{session.download_url}/file/{bucket_name}/"
                f"{_encode_file_name(file_name)}",
                as_json=False,
                headers={"Authorization": session.auth_token},
            )
        )

    async def download_file_by_name_async(
        self, bucket_name: str, file_name: str
    ) -> bytes:
        """Download the latest version of a file by name (async version)."""
        return await self._with_reauthorization_async(
            lambda session: self.transport.request_async(
                "GET",
                f"{session.download_url}/file/{bucket_name}/"
                f"{_encode_file_name(file_name)}",
                as_json=False,
                headers={"Authorization": session.auth_token},
            )
        )

    def delete_file_version(self, file_id: str, file_name: str) -> bool:
        """Delete one version of a file.

        Returns:
            True if deletion was successful.

        Raises:
            FileNotPresentError: If the version does not exist.
        """
        self._call_api(
            "b2_delete_file_version", {"fileId": file_id, "fileName": file_name}
        )
        logger.debug(f"Deleted {file_name} ({file_id})")
        return True

    async def delete_file_version_async(self, file_id: str, file_name: str) -> bool:
        """Delete one version of a file (async version)."""
        await self._call_api_async(
            "b2_delete_file_version", {"fileId": file_id, "fileName": file_name}
        )
        logger.debug(f"Deleted {file_name} ({file_id})")
        return True

    # -------------------------------------------------------------------------
    # Construction and cleanup
    # -------------------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        config_path: str | Path | None = None,
        *,
        client: httpx.Client | None = None,
        async_client: httpx.AsyncClient | None = None,
    ) -> Self:
        """Create a B2Client using saved credentials.

        Args:
            config_path: Path to config file. If None, uses default location.
            client: httpx client to send blocking requests with.
            async_client: httpx client to send async requests with.

        Returns:
            Configured B2Client.

        Raises:
            ConfigError: If no credentials are configured.
        """
        credentials = require_credentials(config_path)
        return cls(
            credentials.account_id,
            credentials.application_key,
            client=client,
            async_client=async_client,
        )

    def close(self) -> None:
        """Close HTTP clients created by this instance."""
        self.transport.close()

    async def aclose(self) -> None:
        """Close HTTP clients created by this instance (async version)."""
        await self.transport.aclose()

    def __enter__(self) -> Self:
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit - close HTTP clients."""
        self.close()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.aclose()
