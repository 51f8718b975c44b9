"""S3-compatible storage backend (Wasabi, AWS, MinIO)."""

from __future__ import annotations

from datetime import UTC
from typing import TYPE_CHECKING

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from storefront.config.logging import get_logger
from storefront.services.backup.errors import (
    StorageAuthError,
    StorageError,
    StorageNotFoundError,
    TransientStorageError,
)
from storefront.services.backup.storage import StoredObject

if TYPE_CHECKING:
    from storefront.services.backup.config import BackupConfig

logger = get_logger("backup.storage")

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_AUTH_CODES = {"AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "ExpiredToken", "403"}
_THROTTLE_CODES = {"SlowDown", "Throttling", "ThrottlingException", "RequestTimeout", "InternalError", "503", "500"}


def _translate(error: ClientError, action: str) -> StorageError:
    code = str(error.response.get("Error", {}).get("Code", ""))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    message = f"S3 {action} failed ({code}): {error}"
    if code in _NOT_FOUND_CODES:
        return StorageNotFoundError(message, status)
    if code in _AUTH_CODES:
        return StorageAuthError(message, status)
    if code in _THROTTLE_CODES or (status and status >= 500):
        return TransientStorageError(message, status)
    return StorageError(message, status)


class S3Storage:
    """Store archives in S3-compatible object storage under <prefix>/<tenant>/."""

    def __init__(self, config: BackupConfig, tenant_id: str, client=None) -> None:
        self.bucket = config.s3_bucket
        self.tenant_id = tenant_id
        self.prefix = f"{config.s3_prefix.strip('/')}/{tenant_id}/"
        self.client = client or boto3.client(
            "s3",
            endpoint_url=config.s3_endpoint_url,
            aws_access_key_id=config.s3_access_key,
            aws_secret_access_key=config.s3_secret_key,
            region_name=config.s3_region,
        )

    def verify(self) -> None:
        """Verify S3 credentials and bucket access. Raises on failure."""
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            raise _translate(e, "head_bucket") from e

    def upload(self, name: str, data: bytes, content_type: str) -> StoredObject:
        key = f"{self.prefix}{name}"
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata={"tenant-id": self.tenant_id},
            )
        except ClientError as e:
            raise _translate(e, "upload") from e
        except BotoCoreError as e:
            raise TransientStorageError(f"S3 upload failed: {e}") from e
        logger.info(f"Uploaded to s3://{self.bucket}/{key}", extra={"tenant_id": self.tenant_id})
        return StoredObject(id=key, name=name, size=len(data))

    def find(self, name: str) -> list[StoredObject]:
        key = f"{self.prefix}{name}"
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            error = _translate(e, "head_object")
            if isinstance(error, StorageNotFoundError):
                return []
            raise error from e
        except BotoCoreError as e:
            raise TransientStorageError(f"S3 lookup failed: {e}") from e

        modified = head.get("LastModified")
        return [
            StoredObject(
                id=key,
                name=name,
                size=head.get("ContentLength"),
                created_at=modified.replace(tzinfo=UTC) if modified else None,
            )
        ]

    def download(self, object_id: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=object_id)
            return response["Body"].read()
        except ClientError as e:
            raise _translate(e, "download") from e
        except BotoCoreError as e:
            raise TransientStorageError(f"S3 download failed: {e}") from e

    def delete(self, object_id: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=object_id)
        except ClientError as e:
            raise _translate(e, "delete") from e
        except BotoCoreError as e:
            raise TransientStorageError(f"S3 delete failed: {e}") from e
        logger.info(f"Deleted s3://{self.bucket}/{object_id}", extra={"tenant_id": self.tenant_id})

    def close(self) -> None:
        pass
