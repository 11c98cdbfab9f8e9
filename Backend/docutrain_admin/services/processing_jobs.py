"""
Client-side mirrors of the backend's processing rows.

The backend owns these records; the console only reads them, so every type
here is built from JSON and never written back.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from docutrain_admin.core.config import settings
from docutrain_admin.core.errors import BackendError

logger = logging.getLogger(__name__)

PIPELINE_STAGES = ("download", "extract", "chunk", "embed", "store")


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.READY, DocumentStatus.ERROR)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from Postgres/JSON; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(f"Unparseable timestamp from backend: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def stuck_threshold() -> timedelta:
    return timedelta(minutes=settings.STUCK_THRESHOLD_MINUTES)


@dataclass
class ProcessingJob:
    id: str
    status: DocumentStatus
    updated_at: Optional[datetime] = None
    error_message: Optional[str] = None
    title: Optional[str] = None
    file_size: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcessingJob":
        raw_status = data.get("status", DocumentStatus.PENDING)
        try:
            status = DocumentStatus(raw_status)
        except ValueError:
            raise BackendError(f"Backend reported unknown processing status {raw_status!r}") from None
        return cls(
            id=str(data["id"]),
            status=status,
            updated_at=parse_timestamp(data.get("updated_at")),
            error_message=data.get("error_message") or None,
            title=data.get("title"),
            file_size=data.get("file_size"),
            created_at=parse_timestamp(data.get("created_at")),
        )

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def is_stuck(self, now: Optional[datetime] = None, threshold: Optional[timedelta] = None) -> bool:
        """
        Wall-clock staleness check for jobs that stopped reporting.
        Only ever used to offer a manual Force Retry.
        """
        if self.status != DocumentStatus.PROCESSING or self.updated_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now - self.updated_at > (threshold or stuck_threshold())

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "error_message": self.error_message,
            "file_size": self.file_size,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "is_stuck": self.is_stuck(now),
        }


@dataclass
class ProcessingLogEntry:
    stage: str
    status: str
    message: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProcessingLogEntry":
        return cls(
            stage=data.get("stage", ""),
            status=data.get("status", ""),
            message=data.get("message") or "",
            metadata=data.get("metadata") or {},
            created_at=parse_timestamp(data.get("created_at")),
        )

    @property
    def is_pipeline_stage(self) -> bool:
        return self.stage in PIPELINE_STAGES


@dataclass
class ProcessingStatus:
    document: ProcessingJob
    logs: List[ProcessingLogEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], user_document_id: str) -> "ProcessingStatus":
        document = dict(data.get("document") or {})
        document.setdefault("id", user_document_id)
        return cls(
            document=ProcessingJob.from_dict(document),
            logs=[ProcessingLogEntry.from_dict(entry) for entry in data.get("logs") or []],
        )
