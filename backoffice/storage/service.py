"""Invoice document storage on S3-compatible object storage (MinIO).

Holds the scanned PDFs/images behind invoices. Reconciliation only ever
deletes a document explicitly, after a merge or replacement has swapped in
the incoming file.

Based on MinIO Python SDK:
https://min.io/docs/minio/linux/developers/python/API.html
"""

import io
import logging
import mimetypes
import time
from datetime import timedelta
from pathlib import PurePosixPath

from minio import Minio
from minio.error import S3Error
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from backoffice.shared.config import Settings

logger = logging.getLogger(__name__)


class StorageResult(BaseModel):
    """Result of storage operation.

    Attributes:
        success: Whether operation succeeded
        file_path: Object path of the invoice document
        bucket: Bucket name
        error: Error message if operation failed
        etag: Object ETag (hash) if available
        size: Object size in bytes if available
    """

    success: bool
    file_path: str | None = None
    bucket: str | None = None
    error: str | None = None
    etag: str | None = None
    size: int | None = None


class FileUrlResult(BaseModel):
    """Result of presigned download URL generation."""

    success: bool
    url: str | None = None
    expires_in_seconds: int | None = None
    error: str | None = None


def build_invoice_file_path(invoice_id: str, filename: str, timestamp_ms: int) -> str:
    """Object path for an invoice document: {invoice_id}/{invoice_id}-{ms}.{ext}."""
    suffix = PurePosixPath(filename).suffix or ".bin"
    return f"{invoice_id}/{invoice_id}-{timestamp_ms}{suffix}"


class StorageService:
    """Invoice document storage backed by MinIO."""

    def __init__(self, settings: Settings) -> None:
        """Initialize storage service.

        Args:
            settings: Application settings with storage configuration
        """
        self.settings = settings
        self._client: Minio | None = None
        self._bucket_ready = False

    def _get_client(self) -> Minio:
        """Get or create MinIO client (lazy initialization).

        Raises:
            ValueError: If storage credentials are not configured
        """
        if self._client is None:
            if not self.settings.storage_access_key or not self.settings.storage_secret_key:
                raise ValueError(
                    "Storage credentials not configured. "
                    "Set APP_STORAGE_ACCESS_KEY and APP_STORAGE_SECRET_KEY."
                )

            self._client = Minio(
                endpoint=self.settings.storage_endpoint,
                access_key=self.settings.storage_access_key,
                secret_key=self.settings.storage_secret_key,
                secure=self.settings.storage_secure,
            )
            logger.info(f"MinIO client initialized for endpoint: {self.settings.storage_endpoint}")

        return self._client

    def is_available(self) -> bool:
        """Check if storage is enabled and credentials are set."""
        if not self.settings.storage_enabled:
            return False

        return bool(self.settings.storage_access_key and self.settings.storage_secret_key)

    def health_check(self) -> bool:
        """Check if storage backend is reachable."""
        if not self.is_available():
            return False

        try:
            self._get_client().bucket_exists(self.settings.storage_bucket)
            return True
        except Exception as e:
            logger.warning(f"Storage health check failed: {e}")
            return False

    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return

        client = self._get_client()
        bucket = self.settings.storage_bucket
        if not client.bucket_exists(bucket):
            client.make_bucket(bucket)
            logger.info(f"Created bucket: {bucket}")

        self._bucket_ready = True

    @retry(
        retry=retry_if_exception_type(S3Error),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def _put(self, file_path: str, data: bytes, content_type: str) -> str:
        result = self._get_client().put_object(
            bucket_name=self.settings.storage_bucket,
            object_name=file_path,
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )
        return result.etag

    def upload_invoice_file(
        self,
        data: bytes,
        invoice_id: str,
        filename: str,
        content_type: str | None = None,
    ) -> StorageResult:
        """Store the scanned document of an invoice.

        Args:
            data: Document bytes
            invoice_id: Owning invoice
            filename: Original filename, used for the extension and content type
            content_type: MIME type (guessed from filename if not provided)

        Returns:
            StorageResult with the object path to record on the invoice
        """
        bucket = self.settings.storage_bucket
        file_path = build_invoice_file_path(invoice_id, filename, int(time.time() * 1000))

        try:
            self._ensure_bucket()
            if content_type is None:
                content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"

            etag = self._put(file_path, data, content_type)
            logger.info(f"Uploaded {file_path} to {bucket} ({len(data)} bytes)")

            return StorageResult(
                success=True,
                file_path=file_path,
                bucket=bucket,
                etag=etag,
                size=len(data),
            )

        except S3Error as e:
            logger.error(f"S3 error uploading {file_path}: {e}")
            return StorageResult(
                success=False,
                file_path=file_path,
                bucket=bucket,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except Exception as e:
            logger.error(f"Error uploading {file_path}: {e}")
            return StorageResult(success=False, file_path=file_path, bucket=bucket, error=str(e))

    def get_file_url(self, file_path: str, expires_seconds: int = 3600) -> FileUrlResult:
        """Generate presigned URL for downloading an invoice document."""
        try:
            url = self._get_client().presigned_get_object(
                bucket_name=self.settings.storage_bucket,
                object_name=file_path,
                expires=timedelta(seconds=expires_seconds),
            )
            return FileUrlResult(success=True, url=url, expires_in_seconds=expires_seconds)

        except S3Error as e:
            logger.error(f"S3 error generating URL for {file_path}: {e}")
            return FileUrlResult(success=False, error=f"S3 error: {e.code} - {e.message}")
        except Exception as e:
            logger.error(f"Error generating URL for {file_path}: {e}")
            return FileUrlResult(success=False, error=str(e))

    @retry(
        retry=retry_if_exception_type(S3Error),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def _remove(self, file_path: str) -> None:
        self._get_client().remove_object(
            bucket_name=self.settings.storage_bucket, object_name=file_path
        )

    def delete_invoice_file(self, file_path: str) -> StorageResult:
        """Delete an invoice document."""
        bucket = self.settings.storage_bucket

        try:
            self._remove(file_path)
            logger.info(f"Deleted {file_path} from {bucket}")
            return StorageResult(success=True, file_path=file_path, bucket=bucket)

        except S3Error as e:
            logger.error(f"S3 error deleting {file_path}: {e}")
            return StorageResult(
                success=False,
                file_path=file_path,
                bucket=bucket,
                error=f"S3 error: {e.code} - {e.message}",
            )
        except Exception as e:
            logger.error(f"Error deleting {file_path}: {e}")
            return StorageResult(success=False, file_path=file_path, bucket=bucket, error=str(e))

    def file_exists(self, file_path: str) -> bool:
        """Check if an invoice document exists."""
        try:
            self._get_client().stat_object(
                bucket_name=self.settings.storage_bucket, object_name=file_path
            )
            return True
        except S3Error:
            return False
        except ValueError:
            return False
