import time

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from book_extract.extraction import ExtractionRuntime, InMemoryHistoryRepository

from conftest import ScriptedEngine

PDF_BYTES = b"%PDF-1.4 fake book"


def _pdf(name):
    return ("files", (name, PDF_BYTES, "application/pdf"))


def _wait_until_idle(client, expected, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        jobs = client.get("/jobs").json()
        if len(jobs) == expected and all(j["status"] in ("COMPLETED", "ERROR") for j in jobs):
            return jobs
        time.sleep(0.02)
    raise AssertionError(f"queue did not settle: {client.get('/jobs').json()}")


@pytest.fixture
def repo():
    return InMemoryHistoryRepository()


@pytest.fixture
def client(repo):
    engine = ScriptedEngine(failures={"broken.pdf": "network timeout"})
    runtime = ExtractionRuntime(engine=engine, repository=repo, recheck_interval=0.05)
    with TestClient(create_app(runtime)) as test_client:
        yield test_client


def test_submit_and_process_jobs(client, repo):
    r = client.post("/jobs", files=[_pdf("first.pdf"), _pdf("broken.pdf")])
    assert r.status_code == 200
    submitted = r.json()["jobs"]
    assert [j["name"] for j in submitted] == ["first", "broken"]

    jobs = _wait_until_idle(client, expected=2)
    by_name = {j["name"]: j for j in jobs}
    assert by_name["first"]["status"] == "COMPLETED"
    assert by_name["first"]["progress"] == 100
    assert by_name["broken"]["status"] == "ERROR"
    assert by_name["broken"]["error"] == "network timeout"

    detail = client.get(f"/jobs/{by_name['broken']['id']}").json()
    assert detail["logs"][-1] == "[Error] network timeout"
    assert detail["result"] is None

    assert {r["status"] for r in repo.records} == {"COMPLETED", "ERROR"}


def test_rejects_non_pdf_and_empty_uploads(client):
    r = client.post("/jobs", files=[("files", ("notes.txt", b"hello", "text/plain"))])
    assert r.status_code == 400
    r = client.post("/jobs", files=[("files", ("empty.pdf", b"", "application/pdf"))])
    assert r.status_code == 400
    assert client.get("/jobs").json() == []


def test_rejects_uploads_that_only_look_like_pdf(client):
    r = client.post("/jobs", files=[("files", ("cover.pdf", PDF_BYTES, "image/png"))])
    assert r.status_code == 400
    r = client.post("/jobs", files=[("files", ("fake.pdf", b"hello", "application/pdf"))])
    assert r.status_code == 400
    # A rejected file fails the whole request, valid siblings included.
    r = client.post("/jobs", files=[_pdf("good.pdf"), ("files", ("fake.pdf", b"hello", "application/pdf"))])
    assert r.status_code == 400
    assert client.get("/jobs").json() == []

    r = client.post("/jobs", files=[("files", ("scan.pdf", PDF_BYTES, "application/octet-stream"))])
    assert r.status_code == 200


def test_books_and_export(client):
    assert client.get("/books/export.csv").status_code == 404

    client.post("/jobs", files=[_pdf("novel.pdf"), _pdf("broken.pdf")])
    jobs = _wait_until_idle(client, expected=2)
    done = next(j for j in jobs if j["status"] == "COMPLETED")
    failed = next(j for j in jobs if j["status"] == "ERROR")

    books = client.get("/books").json()
    assert [b["title"] for b in books] == ["Title of novel.pdf"]
    assert books[0]["chapters"] == ["Intro", "Chapter 1"]

    book = client.get(f"/books/{done['id']}").json()
    assert book["content"].startswith("## Intro")
    assert client.get(f"/books/{failed['id']}").status_code == 404

    export = client.get("/books/export.csv")
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "Title of novel.pdf" in export.text
    assert "attachment; filename=\"books_" in export.headers["content-disposition"]


def test_delete_and_clear(client, repo):
    client.post("/jobs", files=[_pdf("a.pdf"), _pdf("b.pdf")])
    jobs = _wait_until_idle(client, expected=2)

    assert client.delete(f"/jobs/{jobs[0]['id']}").status_code == 200
    assert client.delete(f"/jobs/{jobs[0]['id']}").status_code == 404
    assert [j["id"] for j in client.get("/jobs").json()] == [jobs[1]["id"]]
    assert client.get("/jobs/unknown").status_code == 404

    r = client.delete("/jobs")
    assert r.json() == {"status": "cleared", "removed": 1}
    assert client.get("/jobs").json() == []
    assert repo.records == []


def test_queue_state_when_idle(client):
    state = client.get("/queue").json()
    assert state == {"processing": False, "active_job_id": None, "queued": 0}


def test_history_restored_on_startup():
    repo = InMemoryHistoryRepository(
        [
            {
                "id": "old-1",
                "name": "old",
                "status": "COMPLETED",
                "result": {"title": "Old", "page_count": "1", "chapters": "", "content": "x"},
                "progress": 100,
            }
        ]
    )
    runtime = ExtractionRuntime(engine=ScriptedEngine(), repository=repo, recheck_interval=0.05)
    with TestClient(create_app(runtime)) as client:
        jobs = client.get("/jobs").json()
        assert [(j["id"], j["status"]) for j in jobs] == [("old-1", "COMPLETED")]
        assert client.get("/books/old-1").json()["title"] == "Old"


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}
