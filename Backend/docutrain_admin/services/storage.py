import abc
import logging
import os
import shutil
from pathlib import Path
from typing import BinaryIO, Optional
from urllib.parse import quote

from docutrain_admin.core.config import settings
from docutrain_admin.core.errors import DocuTrainError

logger = logging.getLogger(__name__)


class StorageError(DocuTrainError):
    """The attachment bucket rejected or failed an operation."""
    status_code = 502


class StorageProvider(abc.ABC):
    """
    Abstract base class for the attachment bucket (Local, Supabase/S3).
    Paths are bucket-relative keys such as ``<document_id>/<timestamp>-<name>``.
    """

    @abc.abstractmethod
    def upload(self, path: str, file_obj: BinaryIO, content_type: Optional[str] = None) -> str:
        """
        Store the object at ``path`` and return the path.
        Never overwrites an existing object.
        """
        pass

    @abc.abstractmethod
    def get_public_url(self, path: str) -> str:
        pass

    @abc.abstractmethod
    def delete(self, path: str) -> bool:
        pass


class LocalStorageProvider(StorageProvider):
    """
    Stores attachments on the local filesystem.
    Suitable for development or single-server deployment.
    """
    def __init__(self, base_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.LOCAL_STORAGE_DIR)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (public_base_url or settings.STORAGE_PUBLIC_URL or "/downloads").rstrip("/")

    def _target(self, path: str) -> Path:
        target = (self.base_dir / path).resolve()
        if self.base_dir.resolve() not in target.parents:
            raise StorageError(f"Refusing to write outside storage root: {path}")
        return target

    def upload(self, path: str, file_obj: BinaryIO, content_type: Optional[str] = None) -> str:
        target = self._target(path)
        if target.exists():
            raise StorageError(f"Upload failed: {path} already exists")
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as buffer:
            shutil.copyfileobj(file_obj, buffer)
        return path

    def get_public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{quote(path)}"

    def delete(self, path: str) -> bool:
        try:
            os.remove(self._target(path))
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Failed to delete {path}: {e}")
            return False


class S3StorageProvider(StorageProvider):
    """
    Stores attachments in an S3-compatible bucket.
    Supabase Storage exposes this protocol at ``<project>.supabase.co/storage/v1/s3``.
    Requires: boto3
    """
    def __init__(self, bucket: Optional[str] = None, client=None):
        self.bucket = bucket or settings.DOWNLOADS_BUCKET
        if client is None:
            import boto3
            from botocore.config import Config

            client = boto3.client(
                "s3",
                endpoint_url=settings.STORAGE_ENDPOINT_URL or None,
                aws_access_key_id=settings.STORAGE_ACCESS_KEY_ID or None,
                aws_secret_access_key=settings.STORAGE_SECRET_ACCESS_KEY or None,
                region_name=settings.STORAGE_REGION,
                config=Config(signature_version="s3v4"),
            )
        self.s3 = client

    def upload(self, path: str, file_obj: BinaryIO, content_type: Optional[str] = None) -> str:
        extra = {"CacheControl": "max-age=3600"}
        if content_type:
            extra["ContentType"] = content_type
        try:
            file_obj.seek(0)
            self.s3.upload_fileobj(file_obj, self.bucket, path, ExtraArgs=extra)
            return path
        except Exception as e:
            raise StorageError(f"Upload failed: {e}") from e

    def get_public_url(self, path: str) -> str:
        if settings.STORAGE_PUBLIC_URL:
            return f"{settings.STORAGE_PUBLIC_URL.rstrip('/')}/{self.bucket}/{quote(path)}"
        if settings.STORAGE_ENDPOINT_URL:
            return f"{settings.STORAGE_ENDPOINT_URL.rstrip('/')}/{self.bucket}/{quote(path)}"
        return f"https://{self.bucket}.s3.{settings.STORAGE_REGION}.amazonaws.com/{quote(path)}"

    def delete(self, path: str) -> bool:
        try:
            self.s3.delete_object(Bucket=self.bucket, Key=path)
            return True
        except Exception as e:
            logger.warning(f"Failed to delete {path} from {self.bucket}: {e}")
            return False

# ─── Factory ─────────────────────────────────────────────────────────────────

def get_storage_provider() -> StorageProvider:
    if settings.STORAGE_TYPE.lower() == "s3":
        return S3StorageProvider()
    return LocalStorageProvider()
