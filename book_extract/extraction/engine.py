from __future__ import annotations

import asyncio
import json
import logging
import os
import random
from io import BytesIO
from typing import Callable, Optional

from google import genai
from google.genai import types
from pydantic import BaseModel, Field
from pypdf import PdfReader

from .models import BookData, SubmittedDocument

logger = logging.getLogger(__name__)

LogCallback = Callable[[str], None]
ProgressCallback = Callable[[int], None]

FORMATTING_PROMPT = """
You are an expert in digital book publishing and accessibility.
Analyze the attached PDF (a complete book or some chapters of a book).

TASK:
1. Extract the book title.
2. Estimate the number of pages (from the content or the metadata).
3. List the chapter titles you find.
4. Extract ALL of the book's text and FORMAT IT FOR MOBILE reading.

FORMATTING RULES (mobile friendly):
- Break long paragraphs into shorter ones so they read well on small screens.
- Use Markdown.
- Chapter titles are H2 (## Title).
- Subtitles are H3 (### Subtitle).
- Quotes use blockquote (> text).
- Lists must be formatted as lists.
- Remove running page headers and footers (page numbers, author name on top of pages).
- Keep the original text intact; only change its visual and structural formatting.

Return ONLY valid JSON with the requested structure.
"""


class ExtractionError(Exception):
    """Extraction failed; the message is shown to the user as-is."""


class BookDataSchema(BaseModel):
    title: str = Field(description="Main title of the book")
    pageCount: str = Field(description="Estimated number of pages (e.g. '150')")
    chapters: str = Field(description="Comma separated chapter titles (e.g. 'Intro, Chapter 1, Chapter 2')")
    content: str = Field(description="Full book content formatted as Markdown for mobile reading")


class ExtractionEngine:
    """
    Abstract extraction engine. Implementations receive the raw document and
    two callbacks, and either return a BookData or raise.

    Callbacks may be called any number of times while `extract` runs, never
    after it returns. Reported progress should only go up.
    """

    async def extract(
        self,
        document: SubmittedDocument,
        on_log: LogCallback,
        on_progress: ProgressCallback,
    ) -> BookData:
        raise NotImplementedError

    def count_pages(self, document: SubmittedDocument) -> Optional[int]:
        """
        Optional lightweight page counter. Return None if not supported.
        """
        try:
            reader = PdfReader(BytesIO(document.data))
            return len(reader.pages)
        except Exception:
            return None


class ProgressTicker:
    """
    Synthesized progress while waiting on a long call that reports nothing.
    Every `interval` seconds progress moves up by one or two points until it
    reaches `cap`, occasionally with a log line.
    """

    def __init__(
        self,
        on_progress: ProgressCallback,
        on_log: Optional[LogCallback] = None,
        start: int = 30,
        cap: int = 90,
        interval: float = 1.5,
        log_every: int = 15,
    ):
        self.on_progress = on_progress
        self.on_log = on_log
        self.current = start
        self.cap = cap
        self.interval = interval
        self.log_every = log_every
        self._task: Optional[asyncio.Task] = None

    async def _tick(self) -> None:
        while self.current < self.cap:
            await asyncio.sleep(self.interval)
            self.current = min(self.cap, self.current + random.randint(1, 2))
            self.on_progress(self.current)
            if self.on_log and self.current % self.log_every == 0:
                self.on_log(f"[AI] Formatting content and structuring chapters... ({self.current}%)")

    def start(self) -> "ProgressTicker":
        self._task = asyncio.create_task(self._tick())
        return self

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def __aenter__(self) -> "ProgressTicker":
        return self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()


def parse_book_json(text: Optional[str]) -> BookData:
    if not text:
        raise ExtractionError("The model returned no text.")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"The model returned invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise ExtractionError("The model returned JSON that is not an object.")
    return BookData.from_dict(data)


class GeminiExtractionEngine(ExtractionEngine):
    """
    Sends the whole PDF to Gemini with a mobile-formatting prompt and a JSON
    response schema. Gemini reports no progress, so 30% -> 90% is synthesized
    with a ProgressTicker while the request is in flight.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash",
        tick_interval: float = 1.5,
    ):
        self.api_key = api_key
        self.model = model
        self.tick_interval = tick_interval
        self._client: Optional[genai.Client] = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            api_key = self.api_key or os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
            if not api_key:
                raise ExtractionError("GEMINI_API_KEY is missing")
            self._client = genai.Client(api_key=api_key)
        return self._client

    async def extract(
        self,
        document: SubmittedDocument,
        on_log: LogCallback,
        on_progress: ProgressCallback,
    ) -> BookData:
        on_progress(5)
        on_log(f"[Start] Processing book: {document.filename}")

        on_progress(10)
        on_log(f"[Read] Loading file ({document.size_mb:.2f} MB)...")
        page_count = await asyncio.to_thread(self.count_pages, document)
        if page_count is not None:
            on_log(f"[Read] {page_count} page(s) detected.")
        document_part = types.Part.from_bytes(data=document.data, mime_type=document.content_type)
        on_progress(25)
        on_log("[Read] PDF prepared for processing.")

        on_log("[AI] Configuring mobile formatting prompt...")
        client = self._get_client()

        on_progress(30)
        on_log(f"[AI] Sending book for analysis and formatting ({self.model})...")
        async with ProgressTicker(on_progress, on_log, start=30, cap=90, interval=self.tick_interval):
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=[document_part, FORMATTING_PROMPT],
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    response_schema=BookDataSchema,
                ),
            )

        on_progress(95)
        on_log("[AI] Response received. Finishing structure...")
        book = parse_book_json(response.text)

        on_progress(100)
        on_log(f"[Success] Book '{book.title}' processed.")
        return book
