from __future__ import annotations

from typing import List

from fastapi import APIRouter, File, HTTPException, Request, UploadFile

from book_extract.extraction import ExtractionJob, SubmittedDocument, job_name_from_filename

from api.dependencies import get_scheduler, get_store

router = APIRouter(tags=["jobs"])

PDF_CONTENT_TYPES = ("application/pdf", "application/octet-stream")
PDF_MAGIC = b"%PDF"


def _job_summary(job: ExtractionJob) -> dict:
    return {
        "id": job.id,
        "name": job.name,
        "status": job.status,
        "progress": job.progress,
        "error": job.error,
        "created_at": job.created_at.isoformat(),
        "log_count": len(job.logs),
        "has_result": job.result is not None,
    }


def _job_detail(job: ExtractionJob) -> dict:
    detail = _job_summary(job)
    detail["logs"] = list(job.logs)
    detail["result"] = job.result.to_dict() if job.result else None
    return detail


@router.post("/jobs")
async def submit_jobs(request: Request, files: List[UploadFile] = File(...)):
    documents: List[SubmittedDocument] = []
    for upload in files:
        filename = upload.filename or "document.pdf"
        payload = await upload.read()
        if not payload:
            raise HTTPException(status_code=400, detail=f"Uploaded file is empty: {filename}")
        if upload.content_type not in PDF_CONTENT_TYPES or not payload.startswith(PDF_MAGIC):
            raise HTTPException(status_code=400, detail=f"Only PDF uploads are supported: {filename}")
        documents.append(
            SubmittedDocument(
                filename=filename,
                data=payload,
                content_type="application/pdf",
            )
        )

    jobs = get_store(request).add_jobs((job_name_from_filename(doc.filename), doc) for doc in documents)
    return {"jobs": [_job_summary(job) for job in jobs]}


@router.get("/jobs")
async def list_jobs(request: Request):
    return [_job_summary(job) for job in get_store(request).list_jobs()]


@router.get("/jobs/{job_id}")
async def get_job(request: Request, job_id: str):
    job = get_store(request).get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return _job_detail(job)


@router.delete("/jobs/{job_id}")
async def delete_job(request: Request, job_id: str):
    store = get_store(request)
    if job_id not in store:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    store.remove_job(job_id)
    return {"status": "deleted", "job_id": job_id}


@router.delete("/jobs")
async def clear_jobs(request: Request):
    store = get_store(request)
    removed = len(store)
    store.clear_all()
    return {"status": "cleared", "removed": removed}


@router.get("/queue")
async def queue_state(request: Request):
    scheduler = get_scheduler(request)
    return {
        "processing": scheduler.is_processing,
        "active_job_id": scheduler.active_job_id,
        "queued": get_store(request).queued_count(),
    }
