"""
Extraction subsystem exports.
"""

from .engine import ExtractionEngine, ExtractionError, GeminiExtractionEngine, ProgressTicker
from .export import books_to_csv, export_filename
from .models import (
    BookData,
    ExtractionJob,
    JobStatus,
    StoreEvent,
    StoreEventKind,
    SubmittedDocument,
    job_name_from_filename,
)
from .persistence import (
    HistoryPersister,
    HistoryRepository,
    InMemoryHistoryRepository,
    SqlAlchemyHistoryRepository,
)
from .runtime import ExtractionConfig, ExtractionRuntime
from .scheduler import QueueScheduler
from .store import JobStore

__all__ = [
    "BookData",
    "ExtractionConfig",
    "ExtractionEngine",
    "ExtractionError",
    "ExtractionJob",
    "ExtractionRuntime",
    "GeminiExtractionEngine",
    "HistoryPersister",
    "HistoryRepository",
    "InMemoryHistoryRepository",
    "JobStatus",
    "JobStore",
    "ProgressTicker",
    "QueueScheduler",
    "SqlAlchemyHistoryRepository",
    "StoreEvent",
    "StoreEventKind",
    "SubmittedDocument",
    "books_to_csv",
    "export_filename",
    "job_name_from_filename",
]
