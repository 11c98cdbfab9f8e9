"""
Attachments: auxiliary files shown as download links next to a document.

The binary goes to the ``downloads`` bucket; the link record (title, public
URL, storage path) is created through the backend API.
"""
import logging
import re
import time
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional

from docutrain_admin.core.errors import ValidationError
from docutrain_admin.core.session import Session
from docutrain_admin.services.backend_client import DocuTrainClient
from docutrain_admin.services.storage import StorageProvider

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_CHARS.sub("_", Path(filename or "").name) or "file"


def build_storage_path(document_id: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{document_id}/{timestamp_ms}-{sanitize_filename(filename)}"


def default_title(filename: str) -> str:
    """Filename without its extension, used to prefill the link title."""
    return Path(filename or "").stem


def _file_size(file_obj: BinaryIO) -> Optional[int]:
    try:
        current = file_obj.tell()
        file_obj.seek(0, 2)
        size = file_obj.tell()
        file_obj.seek(current)
        return size
    except (AttributeError, OSError):
        return None


class AttachmentManager:
    def __init__(self, client: DocuTrainClient, storage: StorageProvider):
        self.client = client
        self.storage = storage

    def list_attachments(self, session: Session, document_id: str) -> List[Dict[str, Any]]:
        attachments = self.client.list_attachments(session, document_id)
        return sorted(attachments, key=lambda a: a.get("display_order") or 0)

    def upload_attachment(
        self,
        session: Session,
        document_id: str,
        filename: str,
        file_obj: BinaryIO,
        title: Optional[str] = None,
        content_type: Optional[str] = None,
        copyright_acknowledged_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        title = (title if title is not None else default_title(filename)).strip()
        if not title:
            raise ValidationError("Please enter a link title")

        path = build_storage_path(document_id, filename)
        size = _file_size(file_obj)
        logger.info(f"Uploading attachment for {document_id} to {path}")
        self.storage.upload(path, file_obj, content_type)
        url = self.storage.get_public_url(path)

        record = {
            "title": title,
            "url": url,
            "storage_path": path,
            "file_size": size,
            "mime_type": content_type or None,
        }
        if copyright_acknowledged_at:
            record["copyright_acknowledged_at"] = copyright_acknowledged_at

        try:
            return self.client.create_attachment(session, document_id, record)
        except Exception:
            # Don't leave an orphaned object behind a failed record insert.
            if not self.storage.delete(path):
                logger.warning(f"Could not remove orphaned upload {path}")
            raise

    def add_link(self, session: Session, document_id: str, title: str, url: str) -> Dict[str, Any]:
        """Attachment pointing at an external URL (nothing stored in the bucket)."""
        title, url = (title or "").strip(), (url or "").strip()
        if not title or not url:
            raise ValidationError("Title and URL are required")
        return self.client.create_attachment(session, document_id, {"title": title, "url": url})

    def rename_attachment(self, session: Session, attachment_id: str, title: str) -> Dict[str, Any]:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Please enter a link title")
        return self.client.update_attachment(session, attachment_id, {"title": title})

    def remove_attachment(self, session: Session, attachment_id: str) -> None:
        # The backend deletes the bucket object together with the record.
        self.client.delete_attachment(session, attachment_id)
