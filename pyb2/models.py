"""Pydantic models for the B2 Cloud Storage API."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field


class Credentials(BaseModel):
    """Account credentials for the B2 API.

    Stored in the credentials config file in YAML format.
    """

    account_id: str = Field(..., alias="accountId", description="B2 account ID")
    application_key: str = Field(
        ...,
        alias="applicationKey",
        description="Application key paired with the account ID",
    )

    model_config = {"populate_by_name": True, "frozen": True}


class AuthSession(BaseModel):
    """Response from b2_authorize_account.

    Replaced wholesale every time the account is (re-)authorized.
    """

    account_id: str = Field(..., alias="accountId")
    auth_token: str = Field(
        ...,
        alias="authorizationToken",
        description="Token sent in the Authorization header of API calls",
    )
    api_url: str = Field(..., alias="apiUrl", description="Base URL for API calls")
    download_url: str = Field(
        ...,
        alias="downloadUrl",
        description="Base URL for file downloads",
    )
    recommended_part_size: int | None = Field(
        default=None,
        alias="recommendedPartSize",
    )
    absolute_minimum_part_size: int | None = Field(
        default=None,
        alias="absoluteMinimumPartSize",
    )

    model_config = {"populate_by_name": True, "frozen": True}


# =============================================================================
# Bucket and File Models
# =============================================================================


class BucketType(str, Enum):
    """Bucket visibility accepted by b2_create_bucket and b2_update_bucket."""

    PUBLIC = "allPublic"
    PRIVATE = "allPrivate"


class Bucket(BaseModel):
    """A bucket as returned by the bucket endpoints.

    The type is kept as the server sent it; only client-initiated calls are
    restricted to BucketType values.
    """

    id: str = Field(..., alias="bucketId")
    name: str = Field(..., alias="bucketName")
    type: str = Field(..., alias="bucketType")
    account_id: str = Field(default="", alias="accountId")

    model_config = {"populate_by_name": True, "frozen": True}

    @property
    def is_public(self) -> bool:
        """Check if the bucket is publicly readable."""
        return self.type == BucketType.PUBLIC.value


class File(BaseModel):
    """File metadata returned by uploads and file listings."""

    id: str = Field(..., alias="fileId")
    name: str = Field(..., alias="fileName")
    content_sha1: str = Field(default="", alias="contentSha1")
    # b2_upload_file says contentLength, b2_list_file_names says size
    size: int = Field(
        default=0,
        validation_alias=AliasChoices("contentLength", "size", "content_length"),
    )
    content_type: str = Field(default="", alias="contentType")
    bucket_id: str = Field(default="", alias="bucketId")
    account_id: str = Field(default="", alias="accountId")
    file_info: dict[str, str] = Field(default_factory=dict, alias="fileInfo")
    action: str = Field(default="upload")
    upload_timestamp: int | None = Field(default=None, alias="uploadTimestamp")

    model_config = {"populate_by_name": True, "frozen": True}


class FileNameListing(BaseModel):
    """One page of b2_list_file_names results."""

    files: list[File] = Field(default_factory=list)
    next_file_name: str | None = Field(default=None, alias="nextFileName")

    model_config = {"populate_by_name": True, "frozen": True}


class UploadUrl(BaseModel):
    """Response from b2_get_upload_url."""

    bucket_id: str = Field(..., alias="bucketId")
    upload_url: str = Field(..., alias="uploadUrl")
    auth_token: str = Field(..., alias="authorizationToken")

    model_config = {"populate_by_name": True, "frozen": True}


class ErrorResponse(BaseModel):
    """Body of every non-200 response from the API."""

    status: int = 0
    code: str
    message: str = ""


# =============================================================================
# Request Bodies
# =============================================================================


class CreateBucketRequest(BaseModel):
    """Request body for b2_create_bucket."""

    account_id: str = Field(..., alias="accountId")
    bucket_name: str = Field(..., alias="bucketName")
    bucket_type: BucketType = Field(..., alias="bucketType")

    model_config = {"populate_by_name": True, "use_enum_values": True}


class UpdateBucketRequest(BaseModel):
    """Request body for b2_update_bucket."""

    account_id: str = Field(..., alias="accountId")
    bucket_id: str = Field(..., alias="bucketId")
    bucket_type: BucketType = Field(..., alias="bucketType")

    model_config = {"populate_by_name": True, "use_enum_values": True}


class ListFileNamesRequest(BaseModel):
    """Request body for b2_list_file_names."""

    bucket_id: str = Field(..., alias="bucketId")
    start_file_name: str | None = Field(default=None, alias="startFileName")
    max_file_count: int = Field(default=100, alias="maxFileCount")

    model_config = {"populate_by_name": True}

    def to_payload(self) -> dict[str, Any]:
        """Serialize, leaving out an unset start name."""
        return self.model_dump(by_alias=True, exclude_none=True)


class BucketList(BaseModel):
    """Response from b2_list_buckets."""

    buckets: list[Bucket]
