import threading

import pytest

from job_store import JobStore
from models import JobStatus

URL = "https://youtu.be/dQw4w9WgXcQ"


def test_create_and_get(store):
    job_id = store.create(URL)

    job = store.get(job_id)
    assert job.id == job_id
    assert job.url == URL
    assert job.status == JobStatus.QUEUED
    assert job.progress == 0
    assert job_id in store
    assert len(store) == 1


def test_get_unknown(store):
    assert store.get("nope") is None


def test_ids_are_unique(store):
    ids = {store.create(URL) for _ in range(50)}
    assert len(ids) == 50


def test_get_returns_a_copy(store):
    job_id = store.create(URL)

    job = store.get(job_id)
    job.progress = 99

    assert store.get(job_id).progress == 0


def test_delete(store):
    job_id = store.create(URL)

    assert store.delete(job_id) is True
    assert store.delete(job_id) is False
    assert store.get(job_id) is None


def test_valid_lifecycle(store):
    job_id = store.create(URL)

    assert store.update_job_status(job_id, JobStatus.RUNNING, progress=2, message="Starting download")
    assert store.update_job(job_id, progress=50)
    assert store.update_job_status(job_id, JobStatus.FINISHED, progress=100, file_name="a.mp3")

    job = store.get(job_id)
    assert job.status == JobStatus.FINISHED
    assert job.progress == 100
    assert job.file_name == "a.mp3"


@pytest.mark.parametrize("path", [
    [JobStatus.FINISHED],
    [JobStatus.FAILED],
    [JobStatus.QUEUED],
    [JobStatus.RUNNING, JobStatus.QUEUED],
    [JobStatus.RUNNING, JobStatus.RUNNING],
    [JobStatus.RUNNING, JobStatus.FINISHED, JobStatus.FAILED],
    [JobStatus.RUNNING, JobStatus.FAILED, JobStatus.FINISHED],
])
def test_invalid_transitions_are_refused(store, path):
    job_id = store.create(URL)
    results = [store.update_job_status(job_id, status) for status in path]

    assert results[-1] is False
    assert results[:-1] == [True] * (len(path) - 1)


def test_terminal_state_is_absorbing(store):
    job_id = store.create(URL)
    store.update_job_status(job_id, JobStatus.RUNNING)
    store.update_job_status(job_id, JobStatus.FAILED, message="ERROR: gone")

    assert store.update_job(job_id, message="overwritten", progress=80) is False

    job = store.get(job_id)
    assert job.message == "ERROR: gone"
    assert job.progress == 0


def test_update_unknown_job(store):
    assert store.update_job("nope", progress=1) is False
    assert store.update_job_status("nope", JobStatus.RUNNING) is False


def test_update_job_rejects_status_field(store):
    job_id = store.create(URL)
    with pytest.raises(ValueError):
        store.update_job(job_id, status=JobStatus.FINISHED)


def test_update_rejects_unknown_field(store):
    job_id = store.create(URL)
    with pytest.raises(AttributeError):
        store.update_job(job_id, colour="blue")


def test_count_by_status(store):
    running = store.create(URL)
    store.create(URL)
    store.update_job_status(running, JobStatus.RUNNING)

    assert store.count_by_status() == {
        "queued": 1,
        "running": 1,
        "finished": 0,
        "failed": 0,
    }


def test_concurrent_creates_and_reads(store):
    created = []

    def worker():
        for _ in range(100):
            job_id = store.create(URL)
            created.append(job_id)
            store.get(job_id)
            store.list_jobs()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store) == 800
    assert len(set(created)) == 800
