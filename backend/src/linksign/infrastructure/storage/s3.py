"""S3-compatible storage for agreement documents."""

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar, cast

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from linksign.shared.exceptions import StorageError
from linksign.shared.logging import get_logger

logger = get_logger(__name__)

S3_LOCATOR_PREFIX = "s3://"
DEFAULT_MAX_CONCURRENCY = 8

_T = TypeVar("_T")


class S3Storage:
    """S3-compatible storage for documents.

    Works with AWS S3 in production and MinIO for local development.
    Objects are keyed by document fingerprint, so a retried upload of the
    same bytes overwrites the same object.

    boto3 is synchronous. Its calls run in worker threads, at most
    ``max_concurrency`` at a time per instance, so a burst of uploads cannot
    exhaust the default threadpool.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        region: str,
        url_expires_in: int = 3600,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        client: Any | None = None,
    ) -> None:
        self.bucket = bucket
        self.url_expires_in = url_expires_in
        self.max_concurrency = max(1, max_concurrency)
        self._slots = asyncio.Semaphore(self.max_concurrency)
        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            config=Config(signature_version="s3v4"),
        )

    async def _offload(self, func: Callable[..., _T], /, *args: Any, **kwargs: Any) -> _T:
        async with self._slots:
            return await asyncio.to_thread(func, *args, **kwargs)

    def _get_key(self, fingerprint: str, filename: str) -> str:
        """Generate S3 key for a document.

        Structure: documents/{fingerprint}/{filename}
        """
        safe_name = filename.replace("/", "_") or "document.pdf"
        return f"documents/{fingerprint}/{safe_name}"

    def _key_from_locator(self, locator: str) -> str:
        prefix = f"{S3_LOCATOR_PREFIX}{self.bucket}/"
        if not locator.startswith(prefix):
            raise StorageError("Unknown storage locator", details={"locator": locator})
        return locator[len(prefix) :]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=4),
        retry=retry_if_exception_type(BotoCoreError),
        reraise=True,
    )
    async def _put(self, key: str, content: bytes, fingerprint: str, filename: str) -> None:
        await self._offload(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=content,
            ContentType="application/pdf",
            Metadata={
                "fingerprint": fingerprint,
                "original_filename": filename,
            },
        )

    async def upload(self, content: bytes, filename: str, fingerprint: str) -> str:
        """Upload a document to S3.

        Args:
            content: File content as bytes
            filename: Original filename
            fingerprint: keccak-256 fingerprint of ``content``

        Returns:
            ``s3://bucket/key`` locator

        Raises:
            StorageError: If upload fails
        """
        key = self._get_key(fingerprint, filename)

        try:
            await self._put(key, content, fingerprint, filename)
        except (ClientError, BotoCoreError) as e:
            logger.error("s3_upload_failed", key=key, error=str(e))
            raise StorageError(
                "Document upload failed",
                details={"provider": "s3", "error": str(e)},
            ) from e

        logger.info("file_uploaded", provider="s3", key=key, size=len(content))
        return f"{S3_LOCATOR_PREFIX}{self.bucket}/{key}"

    async def public_url(self, locator: str) -> str | None:
        """Presigned download URL for a locator.

        Raises:
            StorageError: If URL generation fails
        """
        key = self._key_from_locator(locator)
        try:
            url = cast(
                str,
                await self._offload(
                    self.client.generate_presigned_url,
                    "get_object",
                    Params={"Bucket": self.bucket, "Key": key},
                    ExpiresIn=self.url_expires_in,
                ),
            )
            return url

        except (ClientError, BotoCoreError) as e:
            logger.error("presigned_url_failed", key=key, error=str(e))
            raise StorageError("Download URL could not be created") from e

