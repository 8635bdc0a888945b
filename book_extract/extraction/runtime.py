from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .engine import ExtractionEngine, GeminiExtractionEngine
from .persistence import HistoryPersister, HistoryRepository, SqlAlchemyHistoryRepository
from .scheduler import QueueScheduler
from .store import JobStore

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///./data/book_extract.db"


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ExtractionConfig:
    database_url: str = DEFAULT_DATABASE_URL
    engine: str = "gemini"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    perform_ocr: bool = False
    recheck_interval: float = 5.0

    @classmethod
    def from_env(cls) -> "ExtractionConfig":
        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            engine=os.getenv("EXTRACTION_ENGINE", "gemini").strip().lower(),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            perform_ocr=_env_flag("PERFORM_OCR"),
            recheck_interval=float(os.getenv("SCHEDULER_RECHECK_SEC", "5")),
        )


def build_engine(config: ExtractionConfig) -> ExtractionEngine:
    if config.engine == "gemini":
        return GeminiExtractionEngine(api_key=config.gemini_api_key, model=config.gemini_model)
    if config.engine == "docling":
        # Docling is an optional extra and heavy to import.
        from .docling_engine import DoclingExtractionEngine

        return DoclingExtractionEngine(perform_ocr=config.perform_ocr)
    raise ValueError(f"Unknown extraction engine: {config.engine}")


def build_repository(config: ExtractionConfig) -> HistoryRepository:
    prefix = "sqlite+pysqlite:///"
    if config.database_url.startswith(prefix):
        db_path = Path(config.database_url[len(prefix):])
        db_path.parent.mkdir(parents=True, exist_ok=True)
    return SqlAlchemyHistoryRepository(config.database_url)


class ExtractionRuntime:
    """
    The store, its history persister and the scheduler, wired together.
    `start()` restores history before the scheduler sees the store.
    """

    def __init__(
        self,
        engine: ExtractionEngine,
        repository: HistoryRepository,
        store: Optional[JobStore] = None,
        recheck_interval: float = 5.0,
    ):
        self.store = store or JobStore()
        self.persister = HistoryPersister(self.store, repository)
        self.scheduler = QueueScheduler(self.store, engine, recheck_interval=recheck_interval)
        self._started = False

    @classmethod
    def from_config(cls, config: ExtractionConfig) -> "ExtractionRuntime":
        return cls(
            engine=build_engine(config),
            repository=build_repository(config),
            recheck_interval=config.recheck_interval,
        )

    async def start(self) -> None:
        if self._started:
            return
        self.persister.attach()
        await self.scheduler.start()
        self._started = True

    async def stop(self) -> None:
        if not self._started:
            return
        await self.scheduler.stop()
        self.persister.detach()
        self._started = False
