"""
Async S3 client for the backup harness.

Wraps a blocking boto3 S3 client; every call runs on an executor so the event
loop stays free while tests poll listings and clean up buckets concurrently.
Works against AWS as well as S3-compatible emulators (set endpoint_url).
"""

import asyncio
import functools
import logging
import time
from concurrent.futures import Executor
from typing import Any, Callable, Optional, TypeVar

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from backup_harness.config import HarnessConfig
from backup_harness.storage.types import BucketAccess, ListingSnapshot, ObjectSummary
from core.errors.exceptions import (
    StorageError,
    StorageTransientError,
    classify_http_status,
)
from core.logging.utilities import log_with_context
from core.types import ErrorCategory

logger = logging.getLogger(__name__)

T = TypeVar("T")

US_EAST_1 = "us-east-1"

# delete_objects accepts at most this many keys per request
DELETE_BATCH_SIZE = 1000

_THROTTLING_CODES = frozenset({"SlowDown", "Throttling", "ThrottlingException", "RequestLimitExceeded"})
_NOT_FOUND_CODES = frozenset({"404", "NoSuchBucket", "NotFound"})
_UNSUPPORTED_CODES = frozenset({"NotImplemented", "MethodNotAllowed", "501", "405"})


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


def _status_code(e: ClientError) -> Optional[int]:
    return e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def wrap_client_error(
    e: Exception,
    operation: str,
    bucket: str,
    key: Optional[str] = None,
) -> StorageError:
    """Convert a botocore exception into a categorized StorageError."""
    context: dict[str, Any] = {"operation": operation, "bucket": bucket}
    if key is not None:
        context["object_key"] = key

    if isinstance(e, ClientError):
        code = _error_code(e)
        status = _status_code(e)
        message = f"S3 {operation} failed for bucket {bucket}: {code or status}"

        category = classify_http_status(status)
        if category == ErrorCategory.TRANSIENT or code in _THROTTLING_CODES:
            return StorageTransientError(message, status_code=status, error_code=code, cause=e, context=context)
        return StorageError(
            message,
            category=category,
            status_code=status,
            error_code=code,
            cause=e,
            context=context,
        )

    # Connection/endpoint failures never reached the service
    return StorageTransientError(
        f"S3 {operation} failed for bucket {bucket}: {type(e).__name__}",
        cause=e,
        context=context,
    )


class S3StorageClient:
    """
    Async wrapper for the S3 operations the harness needs.

    Blocking boto3 calls run via `loop.run_in_executor(executor, ...)`; the
    default executor is used when none is injected.

    Usage:
        storage = S3StorageClient(config)
        async with storage:
            await storage.create_bucket("guardian-abc")
            objects = await storage.list_objects("guardian-abc")
    """

    def __init__(
        self,
        config: HarnessConfig,
        client: Any = None,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize S3 storage client.

        Args:
            config: Harness configuration (endpoint, region, credentials,
                addressing style)
            client: Pre-built boto3 S3 client (built from config when None)
            executor: Executor for blocking calls (loop default when None)
        """
        self.config = config
        self._client = client
        self._executor = executor

        log_with_context(
            logger,
            logging.DEBUG,
            "Initialized S3 storage client",
            endpoint_url=config.endpoint_url,
            addressing_style=config.addressing_style,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self._build_client()
        return self._client

    def _build_client(self) -> Any:
        session = boto3.session.Session(
            aws_access_key_id=self.config.access_key_id,
            aws_secret_access_key=self.config.secret_access_key,
            region_name=self.config.region,
        )
        return session.client(
            "s3",
            region_name=self.config.region,
            endpoint_url=self.config.endpoint_url,
            config=BotoConfig(
                s3={"addressing_style": self.config.addressing_style},
                # Only the listing poller retries; single calls fail fast
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )

    async def close(self) -> None:
        if self._client is not None and hasattr(self._client, "close"):
            await self._run(self._client.close)
            self._client = None
            logger.debug("S3 storage client closed")

    async def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor, functools.partial(fn, *args, **kwargs)
        )

    async def bucket_exists(self, bucket: str) -> BucketAccess:
        """
        Classify a bucket name for this principal.

        Returns:
            GRANTED when head_bucket succeeds, DENIED on 403, ABSENT on 404

        Raises:
            StorageError: For any other failure
        """
        try:
            await self._run(self.client.head_bucket, Bucket=bucket)
        except ClientError as e:
            status = _status_code(e)
            if status == 403 or _error_code(e) in ("403", "AccessDenied", "Forbidden"):
                return BucketAccess.DENIED
            if status == 404 or _error_code(e) in _NOT_FOUND_CODES:
                return BucketAccess.ABSENT
            raise wrap_client_error(e, "head_bucket", bucket) from e
        except BotoCoreError as e:
            raise wrap_client_error(e, "head_bucket", bucket) from e
        return BucketAccess.GRANTED

    async def create_bucket(self, bucket: str) -> None:
        params: dict[str, Any] = {"Bucket": bucket}
        if self.config.region != US_EAST_1:
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.config.region}

        try:
            await self._run(self.client.create_bucket, **params)
        except (ClientError, BotoCoreError) as e:
            raise wrap_client_error(e, "create_bucket", bucket) from e

        log_with_context(logger, logging.DEBUG, "Bucket created", bucket=bucket)

    def _abort_multipart_uploads(self, bucket: str) -> int:
        aborted = 0
        paginator = self.client.get_paginator("list_multipart_uploads")
        for page in paginator.paginate(Bucket=bucket):
            for upload in page.get("Uploads", []):
                self.client.abort_multipart_upload(
                    Bucket=bucket, Key=upload["Key"], UploadId=upload["UploadId"]
                )
                aborted += 1
        return aborted

    def _delete_batches(self, bucket: str, identifiers: list[dict[str, str]]) -> int:
        for start in range(0, len(identifiers), DELETE_BATCH_SIZE):
            batch = identifiers[start : start + DELETE_BATCH_SIZE]
            self.client.delete_objects(
                Bucket=bucket, Delete={"Objects": batch, "Quiet": True}
            )
        return len(identifiers)

    def _delete_objects(self, bucket: str) -> int:
        identifiers = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket):
            identifiers.extend({"Key": obj["Key"]} for obj in page.get("Contents", []))
        return self._delete_batches(bucket, identifiers)

    def _delete_versions(self, bucket: str) -> int:
        identifiers = []
        paginator = self.client.get_paginator("list_object_versions")
        try:
            for page in paginator.paginate(Bucket=bucket):
                for entry in page.get("Versions", []) + page.get("DeleteMarkers", []):
                    identifiers.append({"Key": entry["Key"], "VersionId": entry["VersionId"]})
        except ClientError as e:
            # Some S3-compatible services have no versioning API
            if _error_code(e) in _UNSUPPORTED_CODES:
                return 0
            raise
        return self._delete_batches(bucket, identifiers)

    def _delete_bucket_recursive(self, bucket: str) -> dict[str, int]:
        uploads = self._abort_multipart_uploads(bucket)
        objects = self._delete_objects(bucket)
        versions = self._delete_versions(bucket)
        self.client.delete_bucket(Bucket=bucket)
        return {"uploads_aborted": uploads, "objects": objects + versions}

    async def delete_bucket_recursive(self, bucket: str) -> None:
        """
        Delete a bucket and everything in it.

        Aborts incomplete multipart uploads first since they keep a bucket
        non-empty without showing up in object listings, then deletes objects,
        object versions and delete markers, then the bucket itself.
        """
        start = time.perf_counter()
        try:
            stats = await self._run(self._delete_bucket_recursive, bucket)
        except (ClientError, BotoCoreError) as e:
            raise wrap_client_error(e, "delete_bucket", bucket) from e

        log_with_context(
            logger,
            logging.DEBUG,
            "Bucket deleted",
            bucket=bucket,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            **stats,
        )

    def _list_objects(self, bucket: str, prefix: Optional[str]) -> ListingSnapshot:
        params: dict[str, Any] = {"Bucket": bucket}
        if prefix:
            params["Prefix"] = prefix

        summaries = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(**params):
            for obj in page.get("Contents", []):
                etag = obj.get("ETag")
                summaries.append(
                    ObjectSummary(
                        key=obj["Key"],
                        size=obj.get("Size", 0),
                        etag=etag.strip('"') if etag else None,
                        last_modified=obj.get("LastModified"),
                        storage_class=obj.get("StorageClass"),
                    )
                )
        return summaries

    async def list_objects(
        self, bucket: str, prefix: Optional[str] = None
    ) -> ListingSnapshot:
        try:
            summaries = await self._run(self._list_objects, bucket, prefix)
        except (ClientError, BotoCoreError) as e:
            raise wrap_client_error(e, "list_objects", bucket) from e

        log_with_context(
            logger,
            logging.DEBUG,
            "Listed bucket",
            bucket=bucket,
            prefix=prefix,
            objects=len(summaries),
        )
        return summaries

    def _get_object(self, bucket: str, key: str) -> bytes:
        response = self.client.get_object(Bucket=bucket, Key=key)
        with response["Body"] as body:
            return body.read()

    async def get_object(self, bucket: str, key: str) -> bytes:
        try:
            return await self._run(self._get_object, bucket, key)
        except (ClientError, BotoCoreError) as e:
            raise wrap_client_error(e, "get_object", bucket, key) from e

    async def put_object(self, bucket: str, key: str, data: bytes) -> None:
        try:
            await self._run(self.client.put_object, Bucket=bucket, Key=key, Body=data)
        except (ClientError, BotoCoreError) as e:
            raise wrap_client_error(e, "put_object", bucket, key) from e

        log_with_context(
            logger,
            logging.DEBUG,
            "Object written",
            bucket=bucket,
            object_key=key,
            object_size=len(data),
        )


__all__ = [
    "S3StorageClient",
    "wrap_client_error",
]
