from __future__ import annotations

import csv
from datetime import datetime
from io import StringIO
from typing import Iterable, Optional

from .models import ExtractionJob, JobStatus, utcnow

CSV_HEADERS = ["Title", "Pages", "Chapters", "Content"]


def exportable(jobs: Iterable[ExtractionJob]) -> list:
    return [job for job in jobs if job.status == JobStatus.COMPLETED and job.result]


def books_to_csv(jobs: Iterable[ExtractionJob]) -> str:
    """
    One row per completed book, in store order. Every field is quoted so
    multi-line Markdown content survives spreadsheet imports.
    """
    buffer = StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for job in exportable(jobs):
        book = job.result
        writer.writerow([book.title, book.page_count, book.chapters, book.content])
    return buffer.getvalue()


def export_filename(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"books_{int(now.timestamp() * 1000)}.csv"
