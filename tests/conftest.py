import asyncio
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from book_extract.extraction import (
    BookData,
    ExtractionEngine,
    ExtractionError,
    JobStore,
    SubmittedDocument,
)


class ScriptedEngine(ExtractionEngine):
    """
    Test double for the extraction collaborator. Logs a start line, walks
    through `progress_steps` yielding to the loop between steps, then fails
    for filenames listed in `failures` or returns a small book.
    """

    def __init__(
        self,
        failures: Optional[Dict[str, str]] = None,
        progress_steps: Sequence[int] = (10, 50, 90),
        during: Optional[Callable[[SubmittedDocument], None]] = None,
    ):
        self.failures = failures or {}
        self.progress_steps = progress_steps
        self.during = during
        self.calls: List[str] = []

    async def extract(self, document, on_log, on_progress):
        self.calls.append(document.filename)
        on_log("[start]")
        for step in self.progress_steps:
            on_progress(step)
            await asyncio.sleep(0)
        if self.during:
            self.during(document)
        if document.filename in self.failures:
            raise ExtractionError(self.failures[document.filename])
        return BookData(
            title=f"Title of {document.filename}",
            page_count="12",
            chapters="Intro, Chapter 1",
            content="## Intro\n\nFirst paragraph.",
        )


def make_document(filename: str = "book.pdf", data: bytes = b"%PDF-1.4 fake") -> SubmittedDocument:
    return SubmittedDocument(filename=filename, data=data)


@pytest.fixture
def store():
    return JobStore()


@pytest.fixture
def engine():
    return ScriptedEngine()
