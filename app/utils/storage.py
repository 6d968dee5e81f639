import re
import time
import logging
from typing import Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.exceptions import StorageError

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "/uploads/"

def object_key_from_url(url_or_key: str) -> str:
    """Strip the public `/uploads/` prefix to get the bucket key"""
    if url_or_key.startswith(UPLOADS_PREFIX):
        return url_or_key[len(UPLOADS_PREFIX):]
    return url_or_key.lstrip("/")

def sanitize_filename(filename: str) -> str:
    name = re.sub(r"[^a-zA-Z0-9._-]", "_", filename or "label")
    return name[-120:] or "label"

class StorageManager:
    """Handles label file storage in MinIO (S3 compatible)"""

    def __init__(self, client=None):
        self.enabled = settings.has_storage or client is not None
        self.bucket = settings.MINIO_BUCKET
        self.client = client
        if self.client is None and self.enabled:
            self.client = boto3.client(
                's3',
                region_name=settings.MINIO_REGION,
                endpoint_url=settings.minio_endpoint_url,
                aws_access_key_id=settings.MINIO_ACCESS_KEY,
                aws_secret_access_key=settings.MINIO_SECRET_KEY,
                config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
            )
        if not self.enabled:
            logger.warning("Object storage disabled: Missing credentials")

    def _require_enabled(self):
        if not self.enabled:
            raise StorageError("Object storage is not configured")

    def ensure_bucket(self) -> bool:
        """Create the bucket if it does not exist yet"""
        self._require_enabled()
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return False
        except ClientError:
            pass
        try:
            self.client.create_bucket(Bucket=self.bucket)
            logger.info(f"Created storage bucket {self.bucket}")
            return True
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Could not create bucket {self.bucket}: {e}")

    def build_key(self, filename: str, folder: str = "labels") -> str:
        return f"{folder}/{int(time.time() * 1000)}-{sanitize_filename(filename)}"

    def upload_bytes(self, data: bytes, filename: str, content_type: str, folder: str = "labels") -> str:
        """
        Store a file and return its public path (`/uploads/{key}`).
        """
        self._require_enabled()
        key = self.build_key(filename, folder)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload {key}: {e}")
            raise StorageError("File upload failed", details={"key": key})
        return f"{UPLOADS_PREFIX}{key}"

    def get_bytes(self, url_or_key: str) -> bytes:
        self._require_enabled()
        key = object_key_from_url(url_or_key)
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
            return obj["Body"].read()
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to read {key}: {e}")
            raise StorageError("File not available", details={"key": key})

    def get_object(self, url_or_key: str) -> dict:
        """Raw object with its content type, for streaming responses"""
        self._require_enabled()
        key = object_key_from_url(url_or_key)
        try:
            return self.client.get_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to read {key}: {e}")
            raise StorageError("File not available", details={"key": key})

    def presigned_url(self, url_or_key: str, expires: int = 7 * 24 * 3600, filename: Optional[str] = None) -> str:
        self._require_enabled()
        params = {"Bucket": self.bucket, "Key": object_key_from_url(url_or_key)}
        if filename:
            params["ResponseContentDisposition"] = f'attachment; filename="{filename}"'
        try:
            return self.client.generate_presigned_url("get_object", Params=params, ExpiresIn=expires)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Could not sign download URL: {e}")

    def delete_file(self, url_or_key: str) -> bool:
        """
        Delete a stored file using its public path or object key.
        """
        if not self.enabled or not url_or_key:
            return False

        try:
            self.client.delete_object(Bucket=self.bucket, Key=object_key_from_url(url_or_key))
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to delete file {url_or_key}: {e}")
            return False

    def health_check(self) -> bool:
        if not self.enabled:
            return False
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Storage health check failed: {e}")
            return False

    def set_lifecycle_policy(self, days: int = 365, prefix: str = "labels/") -> bool:
        """
        Configure the bucket to expire label files after N days.
        """
        if not self.enabled:
            return False

        try:
            lifecycle_config = {
                'Rules': [
                    {
                        'ID': f'Expire labels after {days} days',
                        'Status': 'Enabled',
                        'Filter': {'Prefix': prefix},
                        'Expiration': {'Days': days}
                    }
                ]
            }
            self.client.put_bucket_lifecycle_configuration(
                Bucket=self.bucket,
                LifecycleConfiguration=lifecycle_config
            )
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to set lifecycle policy: {e}")
            return False

_storage: Optional[StorageManager] = None

def get_storage() -> StorageManager:
    """Process-wide storage manager, created on first use"""
    global _storage
    if _storage is None:
        _storage = StorageManager()
    return _storage
