from __future__ import annotations

import asyncio
import logging
from io import BytesIO

from docling.datamodel.accelerator_options import AcceleratorDevice, AcceleratorOptions
from docling.datamodel.base_models import DocumentStream, InputFormat
from docling.datamodel.pipeline_options import PdfPipelineOptions
from docling.document_converter import DocumentConverter, PdfFormatOption
from docling_core.types.doc import DocItemLabel
from docling_core.types.doc.document import SectionHeaderItem

from .engine import ExtractionEngine, ExtractionError, LogCallback, ProgressCallback, ProgressTicker
from .models import BookData, SubmittedDocument, job_name_from_filename

logger = logging.getLogger(__name__)


class DoclingExtractionEngine(ExtractionEngine):
    """
    Local extraction without an AI model. Docling lays the PDF out, section
    headers become the chapter list and the document is exported as Markdown.

    Requires the `docling` extra. Conversion is synchronous and CPU bound, so
    it runs in a worker thread; callbacks are only called from the event loop.
    """

    def __init__(self, perform_ocr: bool = False, num_threads: int = 4, tick_interval: float = 1.5):
        accelerator_options = AcceleratorOptions(num_threads=num_threads, device=AcceleratorDevice.AUTO)

        pipeline_options = PdfPipelineOptions()
        pipeline_options.do_ocr = perform_ocr
        pipeline_options.do_table_structure = True
        pipeline_options.accelerator_options = accelerator_options

        self.tick_interval = tick_interval
        self.converter = DocumentConverter(
            format_options={
                InputFormat.PDF: PdfFormatOption(pipeline_options=pipeline_options),
            }
        )

    async def extract(
        self,
        document: SubmittedDocument,
        on_log: LogCallback,
        on_progress: ProgressCallback,
    ) -> BookData:
        on_progress(5)
        on_log(f"[Start] Processing book: {document.filename}")
        on_log(f"[Read] Loading file ({document.size_mb:.2f} MB)...")
        on_progress(10)

        on_log("[Layout] Running Docling conversion...")
        async with ProgressTicker(on_progress, on_log, start=10, cap=90, interval=self.tick_interval):
            try:
                doc = await asyncio.to_thread(self._convert, document)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Docling conversion failed for %s", document.filename)
                raise ExtractionError(f"Docling conversion failed: {exc}") from exc

        on_progress(95)
        on_log("[Layout] Conversion finished. Building chapters...")
        book = self._to_book_data(doc, fallback_title=job_name_from_filename(document.filename))
        on_progress(100)
        on_log(f"[Success] Book '{book.title}' processed.")
        return book

    def _convert(self, document: SubmittedDocument):
        stream = DocumentStream(name=document.filename, stream=BytesIO(document.data))
        result = self.converter.convert(stream)
        return result.document

    def _to_book_data(self, doc, fallback_title: str) -> BookData:
        title = None
        chapters = []
        for item, _level in doc.iterate_items():
            if title is None and getattr(item, "label", None) == DocItemLabel.TITLE:
                title = getattr(item, "text", None)
            elif isinstance(item, SectionHeaderItem) and item.text:
                chapters.append(item.text.strip())
        return BookData(
            title=title or doc.name or fallback_title,
            page_count=str(doc.num_pages()),
            chapters=", ".join(chapters),
            content=doc.export_to_markdown(),
        )
