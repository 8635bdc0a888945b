from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePath
from typing import Any, Dict, List, Optional
import uuid


class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)


class StoreEventKind(str, Enum):
    ADDED = "added"
    RESTORED = "restored"
    STATUS = "status"
    PROGRESS = "progress"
    LOG = "log"
    REMOVED = "removed"
    CLEARED = "cleared"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    return str(uuid.uuid4())


def job_name_from_filename(filename: str) -> str:
    name = PurePath(filename or "").name
    if name.lower().endswith(".pdf"):
        name = name[: -len(".pdf")]
    return name or "document"


@dataclass
class BookData:
    """
    Structured extraction output. Page count and chapters are kept as the
    model returns them: an estimate string and a comma separated list.
    """

    title: str
    page_count: str
    chapters: str
    content: str

    def chapter_list(self) -> List[str]:
        return [c.strip() for c in (self.chapters or "").split(",") if c.strip()]

    def to_dict(self) -> Dict[str, str]:
        return {
            "title": self.title,
            "page_count": self.page_count,
            "chapters": self.chapters,
            "content": self.content,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookData":
        return cls(
            title=str(data.get("title") or ""),
            page_count=str(data.get("page_count") or data.get("pageCount") or ""),
            chapters=str(data.get("chapters") or ""),
            content=str(data.get("content") or ""),
        )


@dataclass
class SubmittedDocument:
    """Raw uploaded payload. Lives in memory only, never persisted."""

    filename: str
    data: bytes
    content_type: str = "application/pdf"

    @property
    def size_mb(self) -> float:
        return len(self.data) / 1024 / 1024


@dataclass
class ExtractionJob:
    id: str
    name: str
    status: JobStatus = JobStatus.QUEUED
    input_handle: Optional[Any] = None
    result: Optional[BookData] = None
    logs: List[str] = field(default_factory=list)
    progress: int = 0
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    def to_record(self) -> Dict[str, Any]:
        """
        Persisted form. The input handle is never part of it.
        """
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "result": self.result.to_dict() if self.result else None,
            "logs": list(self.logs),
            "progress": self.progress,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ExtractionJob":
        # Records carry no schema version; missing fields fall back to defaults.
        created_raw = record.get("created_at")
        if isinstance(created_raw, datetime):
            created_at = created_raw
        elif created_raw:
            created_at = datetime.fromisoformat(str(created_raw))
        else:
            created_at = utcnow()
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        result = record.get("result")
        return cls(
            id=str(record["id"]),
            name=str(record.get("name") or ""),
            status=JobStatus(record.get("status") or JobStatus.ERROR.value),
            result=BookData.from_dict(result) if result else None,
            logs=[str(line) for line in record.get("logs") or []],
            progress=int(record.get("progress") or 0),
            error=record.get("error"),
            created_at=created_at,
        )


@dataclass
class StoreEvent:
    kind: StoreEventKind
    job_id: Optional[str] = None
