from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, delete, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .models import ExtractionJob, StoreEvent, StoreEventKind
from .store import JobStore

logger = logging.getLogger(__name__)

Base = declarative_base()


class HistoryJobModel(Base):
    __tablename__ = "extraction_history"
    id = Column(String, primary_key=True)
    position = Column(Integer, index=True)
    name = Column(String)
    status = Column(String)
    result_json = Column(Text)
    logs_json = Column(Text)
    progress = Column(Integer)
    error = Column(String)
    created_at = Column(DateTime(timezone=True))


def _terminal_only(jobs: Iterable[ExtractionJob]) -> List[ExtractionJob]:
    return [job for job in jobs if job.status.is_terminal]


class HistoryRepository:
    """
    Durable snapshot of finished jobs. `save` replaces the whole snapshot;
    there is no incremental update. Implementations must never write the
    input handle.
    """

    def load(self) -> List[ExtractionJob]:
        raise NotImplementedError

    def save(self, jobs: Iterable[ExtractionJob]) -> None:
        raise NotImplementedError

    def clear(self) -> None:
        raise NotImplementedError


class InMemoryHistoryRepository(HistoryRepository):
    """
    Keeps serialized records rather than objects so every load returns fresh
    jobs, the same way a real backend would.
    """

    def __init__(self, records: Optional[List[Dict[str, Any]]] = None):
        self.records: List[Dict[str, Any]] = list(records or [])
        self.save_count = 0

    def load(self) -> List[ExtractionJob]:
        return [ExtractionJob.from_record(json.loads(json.dumps(r))) for r in self.records]

    def save(self, jobs: Iterable[ExtractionJob]) -> None:
        self.records = [job.to_record() for job in jobs]
        self.save_count += 1

    def clear(self) -> None:
        self.records = []


class SqlAlchemyHistoryRepository(HistoryRepository):
    """
    SQL-backed history using SQLAlchemy. Works with SQLite/Postgres URLs.
    """

    def __init__(self, database_url: str):
        self.engine = create_engine(database_url, future=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    def load(self) -> List[ExtractionJob]:
        with self._session() as session:
            stmt = select(HistoryJobModel).order_by(HistoryJobModel.position)
            models = session.execute(stmt).scalars().all()
            return [
                ExtractionJob.from_record(
                    {
                        "id": m.id,
                        "name": m.name,
                        "status": m.status,
                        "result": json.loads(m.result_json) if m.result_json else None,
                        "logs": json.loads(m.logs_json or "[]"),
                        "progress": m.progress,
                        "error": m.error,
                        "created_at": m.created_at,
                    }
                )
                for m in models
            ]

    def save(self, jobs: Iterable[ExtractionJob]) -> None:
        with self._session() as session:
            session.execute(delete(HistoryJobModel))
            for position, job in enumerate(jobs):
                record = job.to_record()
                session.add(
                    HistoryJobModel(
                        id=job.id,
                        position=position,
                        name=job.name,
                        status=record["status"],
                        result_json=json.dumps(record["result"], ensure_ascii=False) if record["result"] else None,
                        logs_json=json.dumps(record["logs"], ensure_ascii=False),
                        progress=job.progress,
                        error=job.error,
                        created_at=job.created_at,
                    )
                )
            session.commit()

    def clear(self) -> None:
        with self._session() as session:
            session.execute(delete(HistoryJobModel))
            session.commit()


class HistoryPersister:
    """
    Mirrors the store's finished jobs into a HistoryRepository.

    On attach, the saved snapshot is filtered to finished jobs again and
    admitted into the store. After that a store change rewrites the
    snapshot when the finished jobs differ from the last write, unless there
    is nothing finished to write. Queued and running jobs are never saved
    and are lost on restart.
    """

    def __init__(self, store: JobStore, repository: HistoryRepository):
        self.store = store
        self.repository = repository
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._last_saved: Optional[List[Dict[str, Any]]] = None

    def attach(self) -> int:
        restored = 0
        try:
            restored = self.store.restore(_terminal_only(self.repository.load()))
        except Exception:  # noqa: BLE001
            logger.exception("Failed to load extraction history")
        if restored:
            logger.info("Restored %d job(s) from history", restored)
        self._unsubscribe = self.store.subscribe(self._on_store_change)
        return restored

    def detach(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_store_change(self, event: StoreEvent) -> None:
        try:
            if event.kind == StoreEventKind.CLEARED:
                self.repository.clear()
                self._last_saved = None
                return
            self.flush()
        except Exception:  # noqa: BLE001
            logger.exception("Failed to persist extraction history after %s", event.kind.value)

    def flush(self) -> bool:
        finished = self.store.terminal_jobs()
        if not finished:
            return False
        for job in finished:
            job.input_handle = None
        records = [job.to_record() for job in finished]
        # Progress and log events on running jobs leave the snapshot as it was.
        if records == self._last_saved:
            return False
        self.repository.save(finished)
        self._last_saved = records
        return True
