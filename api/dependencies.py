from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from fastapi import HTTPException, Request

from book_extract.extraction import ExtractionConfig, ExtractionRuntime, JobStore, QueueScheduler

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    level = level or os.getenv("LOG_LEVEL", "INFO")
    log_file = log_file or os.getenv("LOG_FILE")
    handlers = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, handlers=handlers, force=True)


@lru_cache(maxsize=1)
def get_config() -> ExtractionConfig:
    return ExtractionConfig.from_env()


def build_runtime() -> ExtractionRuntime:
    return ExtractionRuntime.from_config(get_config())


def get_runtime(request: Request) -> ExtractionRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Extraction runtime not initialized")
    return runtime


def get_store(request: Request) -> JobStore:
    return get_runtime(request).store


def get_scheduler(request: Request) -> QueueScheduler:
    return get_runtime(request).scheduler
