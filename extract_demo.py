"""
Example: push local PDFs through the extraction queue and print the outcome.

Usage:
    python3 extract_demo.py --pdf book1.pdf --pdf book2.pdf --engine gemini
    python3 extract_demo.py --pdf book.pdf --engine docling --export out.csv
"""

import argparse
import asyncio
from pathlib import Path

from api.dependencies import setup_logging
from book_extract.extraction import (
    ExtractionConfig,
    ExtractionRuntime,
    SubmittedDocument,
    books_to_csv,
    job_name_from_filename,
)


async def run(args) -> None:
    config = ExtractionConfig.from_env()
    config.engine = args.engine
    config.database_url = f"sqlite+pysqlite:///{args.db}"
    config.perform_ocr = args.perform_ocr
    runtime = ExtractionRuntime.from_config(config)

    # History is restored but the background loop is not needed: drain directly.
    runtime.persister.attach()
    documents = [SubmittedDocument(filename=p.name, data=p.read_bytes()) for p in args.pdf]
    jobs = runtime.store.add_jobs((job_name_from_filename(d.filename), d) for d in documents)
    print(f"Queued {len(jobs)} job(s)")
    await runtime.scheduler.drain()
    runtime.persister.detach()

    for job in jobs:
        final = runtime.store.get_job(job.id)
        title = final.result.title if final.result else "-"
        print(f"{final.name}: status={final.status.value} progress={final.progress} title={title} error={final.error}")
        if args.verbose:
            for line in final.logs:
                print(f"    {line}")

    if args.export:
        args.export.write_text(books_to_csv(runtime.store.list_jobs()), encoding="utf-8")
        print(f"Exported completed books to {args.export}")


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--pdf", required=True, type=Path, action="append", help="Input PDF (repeatable)")
    parser.add_argument("--engine", default="gemini", choices=["gemini", "docling"], help="Extraction engine")
    parser.add_argument("--db", default=Path("./data/book_extract.db"), type=Path, help="SQLite history DB path")
    parser.add_argument("--export", default=None, type=Path, help="Write completed books to this CSV file")
    parser.add_argument("--perform-ocr", action="store_true", help="Enable OCR (docling engine)")
    parser.add_argument("--verbose", action="store_true", help="Print job logs")
    args = parser.parse_args()

    for pdf in args.pdf:
        if not pdf.exists():
            raise FileNotFoundError(f"PDF not found: {pdf}")
    args.db.parent.mkdir(parents=True, exist_ok=True)

    setup_logging()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
