from book_extract.extraction import BookData, ExtractionJob, JobStatus, JobStore, StoreEventKind

from conftest import make_document


def _book(title="Book"):
    return BookData(title=title, page_count="3", chapters="A, B", content="text")


def test_add_jobs_preserves_order_and_defaults(store):
    jobs = store.add_jobs([("first", make_document("first.pdf")), ("second", make_document("second.pdf"))])

    assert [j.name for j in jobs] == ["first", "second"]
    assert [j.name for j in store.list_jobs()] == ["first", "second"]
    assert len({j.id for j in jobs}) == 2
    for job in store.list_jobs():
        assert job.status == JobStatus.QUEUED
        assert job.progress == 0
        assert job.logs == []
        assert job.result is None and job.error is None
        assert job.input_handle is not None


def test_completed_forces_progress_and_drops_input(store):
    (job,) = store.add_jobs([("a", make_document())])
    store.set_status(job.id, JobStatus.PROCESSING)
    store.set_progress(job.id, 40)
    store.set_status(job.id, JobStatus.COMPLETED, result=_book())

    done = store.get_job(job.id)
    assert done.status == JobStatus.COMPLETED
    assert done.progress == 100
    assert done.result.title == "Book"
    assert done.error is None
    assert done.input_handle is None


def test_terminal_status_merges_instead_of_clearing(store):
    (job,) = store.add_jobs([("a", make_document())])
    store.set_status(job.id, JobStatus.COMPLETED, result=_book("kept"))
    store.set_status(job.id, JobStatus.COMPLETED)
    assert store.get_job(job.id).result.title == "kept"

    (other,) = store.add_jobs([("b", make_document())])
    store.set_status(other.id, JobStatus.ERROR, error="boom")
    store.set_status(other.id, JobStatus.ERROR)
    failed = store.get_job(other.id)
    assert failed.error == "boom"
    assert failed.result is None
    assert failed.input_handle is None


def test_mutations_on_unknown_id_are_silent_noops(store):
    store.add_jobs([("a", make_document())])
    before = [j.to_record() for j in store.list_jobs()]
    events = []
    store.subscribe(events.append)

    store.set_status("missing", JobStatus.COMPLETED, result=_book())
    store.set_progress("missing", 50)
    store.append_log("missing", "hello")
    store.remove_job("missing")

    assert [j.to_record() for j in store.list_jobs()] == before
    assert events == []


def test_reads_are_copies(store):
    (job,) = store.add_jobs([("a", make_document())])
    view = store.get_job(job.id)
    view.logs.append("tampered")
    view.status = JobStatus.ERROR

    fresh = store.get_job(job.id)
    assert fresh.logs == []
    assert fresh.status == JobStatus.QUEUED


def test_logs_append_in_order(store):
    (job,) = store.add_jobs([("a", make_document())])
    for line in ["one", "two", "three"]:
        store.append_log(job.id, line)
    assert store.get_job(job.id).logs == ["one", "two", "three"]


def test_progress_is_not_clamped(store):
    (job,) = store.add_jobs([("a", make_document())])
    store.set_progress(job.id, 150)
    assert store.get_job(job.id).progress == 150


def test_subscribers_receive_events_after_each_mutation(store):
    events = []
    store.subscribe(events.append)
    (job,) = store.add_jobs([("a", make_document())])
    store.set_status(job.id, JobStatus.PROCESSING)
    store.set_progress(job.id, 10)
    store.append_log(job.id, "x")
    store.remove_job(job.id)
    store.clear_all()

    assert [e.kind for e in events] == [
        StoreEventKind.ADDED,
        StoreEventKind.STATUS,
        StoreEventKind.PROGRESS,
        StoreEventKind.LOG,
        StoreEventKind.REMOVED,
        StoreEventKind.CLEARED,
    ]
    assert events[1].job_id == job.id


def test_failing_subscriber_does_not_break_mutation(store):
    seen = []

    def broken(event):
        raise RuntimeError("subscriber down")

    store.subscribe(broken)
    store.subscribe(seen.append)
    (job,) = store.add_jobs([("a", make_document())])

    assert job.id in store
    assert len(seen) == 1


def test_unsubscribe_stops_notifications(store):
    seen = []
    unsubscribe = store.subscribe(seen.append)
    unsubscribe()
    store.add_jobs([("a", make_document())])
    assert seen == []


def test_remove_and_clear(store):
    jobs = store.add_jobs([("a", make_document()), ("b", make_document()), ("c", make_document())])
    store.remove_job(jobs[1].id)
    assert [j.name for j in store.list_jobs()] == ["a", "c"]
    store.clear_all()
    assert len(store) == 0


def test_restore_skips_known_ids(store):
    (job,) = store.add_jobs([("live", make_document())])
    restored = store.restore(
        [
            ExtractionJob(id=job.id, name="dupe", status=JobStatus.ERROR, error="x"),
            ExtractionJob(id="old-1", name="old", status=JobStatus.COMPLETED, result=_book(), progress=100),
        ]
    )
    assert restored == 1
    assert store.get_job(job.id).name == "live"
    assert store.get_job("old-1").result.title == "Book"


def test_next_queued_and_counts(store):
    jobs = store.add_jobs([("a", make_document()), ("b", make_document())])
    store.set_status(jobs[0].id, JobStatus.PROCESSING)
    assert store.next_queued().id == jobs[1].id
    assert store.queued_count() == 1
    store.set_status(jobs[1].id, JobStatus.ERROR, error="x")
    assert store.next_queued() is None
    assert [j.id for j in store.terminal_jobs()] == [jobs[1].id]
