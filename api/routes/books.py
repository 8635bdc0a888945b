from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response

from book_extract.extraction import JobStatus, books_to_csv, export_filename
from book_extract.extraction.export import exportable

from api.dependencies import get_store

router = APIRouter(prefix="/books", tags=["books"])


@router.get("")
async def list_books(request: Request):
    return [
        {
            "job_id": job.id,
            "title": job.result.title,
            "page_count": job.result.page_count,
            "chapters": job.result.chapter_list(),
        }
        for job in exportable(get_store(request).list_jobs())
    ]


@router.get("/export.csv")
async def export_books(request: Request):
    jobs = get_store(request).list_jobs()
    if not exportable(jobs):
        raise HTTPException(status_code=404, detail="No completed books to export")
    return Response(
        content=books_to_csv(jobs),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@router.get("/{job_id}")
async def get_book(request: Request, job_id: str):
    job = get_store(request).get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    if job.status != JobStatus.COMPLETED or not job.result:
        raise HTTPException(status_code=404, detail=f"Book not ready for job {job_id}: {job.status.value}")
    book = job.result.to_dict()
    book["chapter_list"] = job.result.chapter_list()
    return {"job_id": job.id, "name": job.name, **book}
