from __future__ import annotations

import threading
import time
import zipfile

import pytest

from core.errors import (
    AdmissionRejected,
    ArchiveError,
    TaskNotAcceptingSubmissions,
    TaskNotFound,
)
from core.types import InvalidURL, TaskStatus

pytestmark = pytest.mark.unit


def _good_urls(fake_web, count: int, prefix: str = "a") -> list[str]:
    return [fake_web.add(f"http://files.test/{prefix}{i}.jpg", body=f"body-{i}".encode()) for i in range(count)]


def test_quota_splits_batch_and_launches_pipeline_with_exact_urls(
    service, fake_web, wait_for_status
):
    fake_web.gate = threading.Event()
    u1, u2, u3, u4, u5 = _good_urls(fake_web, 5)
    task_id = service.create_task().task.id

    outcome = service.add_urls(task_id, [u1, u2, u3, u4, u5])

    assert outcome.accepted == (u1, u2, u3)
    assert outcome.rejected_by_quota == (u4, u5)
    assert outcome.invalid == ()
    assert fake_web.urls_called("HEAD") == [u1, u2, u3]
    assert service.get_status(task_id).task.status == TaskStatus.PROCESSING

    fake_web.gate.set()
    snapshot = wait_for_status(service, task_id, TaskStatus.COMPLETED)

    assert sorted(fake_web.urls_called("GET")) == [u1, u2, u3]
    assert snapshot.task.url_files == [u1, u2, u3]
    assert snapshot.task.errors == []
    assert snapshot.task.archive_url == f"http://testserver/archives/{task_id}.zip"
    with zipfile.ZipFile(service.kernel["archiver"].archive_path(task_id)) as bundle:
        assert len(bundle.namelist()) == 3


def test_invalid_url_does_not_count_towards_quota(service_factory, settings_factory, fake_web):
    service = service_factory(settings_factory(max_urls_per_task=2))
    good = fake_web.add("http://files.test/photo.jpg")
    bad = fake_web.add("http://files.test/page.html", content_type="text/html")
    task_id = service.create_task().task.id

    outcome = service.add_urls(task_id, [bad, good])

    assert outcome.accepted == (good,)
    assert outcome.invalid == (InvalidURL(url=bad, reason="DisallowedType"),)
    assert outcome.rejected_by_quota == ()
    assert service.get_status(task_id).task.status == TaskStatus.ADD_LINKS


def test_empty_batch_keeps_task_pending(service):
    task_id = service.create_task().task.id
    outcome = service.add_urls(task_id, [])
    assert outcome.accepted == outcome.invalid == outcome.rejected_by_quota == ()
    assert service.get_status(task_id).task.status == TaskStatus.PENDING


def test_batch_counts_add_up(service, fake_web):
    good = _good_urls(fake_web, 4)
    urls = ["ftp://nope/x.jpg", good[0], "http://down.test/x.jpg", good[1], good[2], good[3]]
    task_id = service.create_task().task.id

    outcome = service.add_urls(task_id, urls)

    assert len(outcome.accepted) + len(outcome.invalid) + len(outcome.rejected_by_quota) == len(urls)
    assert [item.reason for item in outcome.invalid] == ["MalformedURL", "Unreachable"]
    assert outcome.rejected_by_quota == (good[3],)


def test_urls_accumulate_across_calls(service, fake_web, wait_for_status):
    u1, u2, u3 = _good_urls(fake_web, 3)
    task_id = service.create_task().task.id

    service.add_urls(task_id, [u1])
    service.add_urls(task_id, [u2])
    outcome = service.add_urls(task_id, [u3])

    assert outcome.accepted == (u3,)
    snapshot = wait_for_status(service, task_id, TaskStatus.COMPLETED)
    assert snapshot.task.url_files == [u1, u2, u3]


@pytest.mark.parametrize("terminal", [False, True])
def test_closed_task_rejects_submissions(service, fake_web, wait_for_status, terminal):
    urls = _good_urls(fake_web, 3)
    task_id = service.create_task().task.id
    if not terminal:
        fake_web.gate = threading.Event()
    service.add_urls(task_id, urls)
    if terminal:
        wait_for_status(service, task_id, TaskStatus.COMPLETED)

    with pytest.raises(TaskNotAcceptingSubmissions):
        service.add_urls(task_id, _good_urls(fake_web, 1, prefix="late"))

    if fake_web.gate is not None:
        fake_web.gate.set()


def test_failed_task_rejects_submissions(service, wait_for_status, fake_web):
    urls = [fake_web.add(f"http://files.test/f{i}.jpg", fail_get=True) for i in range(3)]
    task_id = service.create_task().task.id
    service.add_urls(task_id, urls)
    wait_for_status(service, task_id, TaskStatus.FAILED)

    with pytest.raises(TaskNotAcceptingSubmissions):
        service.add_urls(task_id, ["http://files.test/f0.jpg"])


def test_unknown_task(service):
    with pytest.raises(TaskNotFound):
        service.add_urls("nope", ["http://files.test/a.jpg"])
    with pytest.raises(TaskNotFound):
        service.get_status("nope")


def test_all_downloads_failing_marks_task_failed(service, fake_web, wait_for_status):
    urls = [fake_web.add(f"http://files.test/f{i}.jpg", fail_get=True) for i in range(3)]
    task_id = service.create_task().task.id
    service.add_urls(task_id, urls)

    snapshot = wait_for_status(service, task_id, TaskStatus.FAILED)

    assert len(snapshot.task.errors) == 3
    assert snapshot.task.archive_url == ""
    assert not service.kernel["archiver"].archive_path(task_id).exists()


def test_partial_failure_still_completes_with_errors(service, fake_web, wait_for_status):
    ok = _good_urls(fake_web, 2)
    broken = fake_web.add("http://files.test/broken.jpg", status_code=503, head_status_code=200)
    task_id = service.create_task().task.id
    service.add_urls(task_id, [ok[0], broken, ok[1]])

    snapshot = wait_for_status(service, task_id, {TaskStatus.COMPLETED, TaskStatus.FAILED})

    assert snapshot.task.status == TaskStatus.COMPLETED
    assert len(snapshot.task.errors) == 1
    assert broken in snapshot.task.errors[0]
    with zipfile.ZipFile(service.kernel["archiver"].archive_path(task_id)) as bundle:
        assert len(bundle.namelist()) == 2


def test_temporary_downloads_removed_after_archiving(service, fake_web, wait_for_status):
    task_id = service.create_task().task.id
    service.add_urls(task_id, _good_urls(fake_web, 3))
    wait_for_status(service, task_id, TaskStatus.COMPLETED)

    assert list(service.kernel["downloader"].download_dir.iterdir()) == []


def test_archive_failure_fails_task_and_still_cleans_up(
    service, fake_web, wait_for_status, monkeypatch
):
    archiver = service.kernel["archiver"]

    def _broken_archive(task_id, files):
        assert all(path.exists() for path in files)
        raise ArchiveError(f"failed to create archive for task {task_id}: disk full")

    monkeypatch.setattr(archiver, "create_archive", _broken_archive)
    task_id = service.create_task().task.id
    service.add_urls(task_id, _good_urls(fake_web, 3))

    snapshot = wait_for_status(service, task_id, TaskStatus.FAILED)

    assert snapshot.task.errors == [f"failed to create archive for task {task_id}: disk full"]
    assert list(service.kernel["downloader"].download_dir.iterdir()) == []


def test_unexpected_pipeline_error_fails_task(service, fake_web, wait_for_status, monkeypatch):
    def _boom(urls, cancel_check=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(service.kernel["downloader"], "download_all", _boom)
    task_id = service.create_task().task.id
    service.add_urls(task_id, _good_urls(fake_web, 3))

    snapshot = wait_for_status(service, task_id, TaskStatus.FAILED)
    assert snapshot.task.errors == ["boom"]


def test_admission_control_frees_slot_after_terminal_status_is_read(
    service, fake_web, wait_for_status
):
    first = service.create_task().task.id
    service.create_task()
    with pytest.raises(AdmissionRejected):
        service.create_task()

    service.add_urls(first, _good_urls(fake_web, 3))
    wait_for_status(service, first, TaskStatus.COMPLETED)

    snapshot = service.create_task()
    assert first in snapshot.completed_task_ids
    assert first not in snapshot.active_task_ids


def test_terminal_status_moves_to_completed_idempotently(service, fake_web, wait_for_status):
    task_id = service.create_task().task.id
    service.add_urls(task_id, _good_urls(fake_web, 3))
    wait_for_status(service, task_id, TaskStatus.COMPLETED)

    again = service.get_status(task_id)
    assert again.completed_task_ids.count(task_id) == 1
    assert task_id not in again.active_task_ids


def test_cancel_check_stops_probing(service, fake_web):
    urls = _good_urls(fake_web, 3)
    task_id = service.create_task().task.id
    calls = {"count": 0}

    def cancel_after_first():
        calls["count"] += 1
        return calls["count"] > 1

    outcome = service.add_urls(task_id, urls, cancel_check=cancel_after_first)

    assert outcome.accepted == (urls[0],)
    assert [item.reason for item in outcome.invalid] == ["Cancelled", "Cancelled"]
    assert fake_web.urls_called("HEAD") == [urls[0]]


def test_concurrent_submissions_never_exceed_quota(service, fake_web, wait_for_status):
    task_id = service.create_task().task.id
    batches = [_good_urls(fake_web, 3, prefix=f"t{n}-") for n in range(4)]
    outcomes = []
    lock = threading.Lock()

    def submit(batch):
        try:
            outcome = service.add_urls(task_id, batch)
        except TaskNotAcceptingSubmissions:
            return
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=submit, args=(batch,)) for batch in batches]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5.0)

    snapshot = wait_for_status(service, task_id, TaskStatus.COMPLETED)
    assert len(snapshot.task.url_files) == 3
    assert sum(len(outcome.accepted) for outcome in outcomes) == 3


def test_stop_lets_inflight_pipeline_finish_by_default(
    service_factory, settings, fake_web
):
    service = service_factory(settings)
    fake_web.gate = threading.Event()
    task_id = service.create_task().task.id
    service.add_urls(task_id, _good_urls(fake_web, 3))
    assert fake_web.get_started.wait(timeout=5.0)

    stopper = threading.Thread(target=service.stop, kwargs={"timeout_seconds": 5.0})
    stopper.start()
    time.sleep(0.05)
    fake_web.gate.set()
    stopper.join(timeout=5.0)

    assert service.get_status(task_id).task.status == TaskStatus.COMPLETED


def test_stop_cancels_inflight_downloads_when_configured(
    service_factory, settings_factory, fake_web
):
    service = service_factory(settings_factory(cancel_pipelines_on_shutdown=True))
    fake_web.gate = threading.Event()
    task_id = service.create_task().task.id
    service.add_urls(task_id, _good_urls(fake_web, 3))
    assert fake_web.get_started.wait(timeout=5.0)

    stopper = threading.Thread(target=service.stop, kwargs={"timeout_seconds": 5.0})
    stopper.start()
    deadline = time.monotonic() + 5.0
    while not service._stop_event.is_set() and time.monotonic() < deadline:
        time.sleep(0.01)
    fake_web.gate.set()
    stopper.join(timeout=5.0)

    snapshot = service.get_status(task_id)
    assert snapshot.task.status == TaskStatus.FAILED
    assert len(snapshot.task.errors) == 3
    assert all("download cancelled" in message for message in snapshot.task.errors)


def test_urls_are_trimmed_before_being_stored(service, fake_web, wait_for_status):
    u1, u2, u3 = _good_urls(fake_web, 3)
    task_id = service.create_task().task.id

    outcome = service.add_urls(task_id, [f"  {u1}", f"{u2}\n", f"\t{u3} "])

    assert outcome.accepted == (u1, u2, u3)
    snapshot = wait_for_status(service, task_id, TaskStatus.COMPLETED)
    assert snapshot.task.url_files == [u1, u2, u3]
    assert sorted(fake_web.urls_called("GET")) == sorted([u1, u2, u3])


def test_malformed_url_in_batch_does_not_abort_it(service, fake_web):
    good = fake_web.add("http://files.test/ok.jpg")
    task_id = service.create_task().task.id

    outcome = service.add_urls(task_id, ["http://files.test:abc/a.jpg", good])

    assert outcome.accepted == (good,)
    assert outcome.invalid == (InvalidURL(url="http://files.test:abc/a.jpg", reason="MalformedURL"),)


def test_unexpected_archive_error_keeps_download_errors(
    service, fake_web, wait_for_status, monkeypatch
):
    ok = _good_urls(fake_web, 2)
    broken = fake_web.add("http://files.test/broken.jpg", fail_get=True)

    def _crash(task_id, files):
        raise OSError("disk gone")

    monkeypatch.setattr(service.kernel["archiver"], "create_archive", _crash)
    task_id = service.create_task().task.id
    service.add_urls(task_id, [ok[0], broken, ok[1]])

    snapshot = wait_for_status(service, task_id, TaskStatus.FAILED)

    assert len(snapshot.task.errors) == 2
    assert broken in snapshot.task.errors[0]
    assert snapshot.task.errors[1] == f"failed to create archive for task {task_id}: disk gone"
    assert list(service.kernel["downloader"].download_dir.iterdir()) == []
