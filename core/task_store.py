"""In-memory task store and the lifecycle service that drives its pipelines."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass

import config
from core.errors import (
    AdmissionRejected,
    ArchiveError,
    TaskNotAcceptingSubmissions,
    TaskNotFound,
)
from core.kernel import Kernel
from core.types import (
    ACCEPTING_STATES,
    TRANSITIONS,
    AddURLsOutcome,
    InvalidURL,
    RejectionReason,
    Task,
    TaskSnapshot,
    TaskStatus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Acceptance:
    """Result of offering one validated URL to a task."""

    accepted: bool
    launch_urls: tuple[str, ...] | None = None


class TaskStore:
    """Owns the task map and the derived active/completed id sets.

    Every public method is one critical section under a single lock and does
    in-memory work only. Returned tasks are detached copies.
    """

    def __init__(self, terminal_task_retention: int = 0):
        self.terminal_task_retention = max(0, int(terminal_task_retention))
        self._lock = threading.Lock()
        self._tasks: dict[str, Task] = {}
        # dicts used as ordered sets; completed order drives retention pruning
        self._active: dict[str, None] = {}
        self._completed: dict[str, None] = {}

    def create(self, max_active: int) -> TaskSnapshot:
        with self._lock:
            if len(self._active) >= max_active:
                raise AdmissionRejected(len(self._active), max_active)

            task_id = str(uuid.uuid4())
            task = Task(id=task_id)
            self._tasks[task_id] = task
            self._active[task_id] = None
            return self._snapshot(task)

    def ensure_accepting(self, task_id: str) -> None:
        with self._lock:
            task = self._require(task_id)
            if task.status not in ACCEPTING_STATES:
                raise TaskNotAcceptingSubmissions(task_id, task.status)

    def accept_url(self, task_id: str, url: str, quota: int) -> Acceptance:
        """Append a validated URL; the append that fills the quota closes the task."""
        with self._lock:
            task = self._require(task_id)
            if task.status not in ACCEPTING_STATES:
                return Acceptance(accepted=False)

            task.url_files.append(url)
            if task.status == TaskStatus.PENDING:
                self._advance(task, TaskStatus.ADD_LINKS)

            if len(task.url_files) < quota:
                return Acceptance(accepted=True)

            self._advance(task, TaskStatus.PROCESSING)
            return Acceptance(accepted=True, launch_urls=tuple(task.url_files))

    def finish(self, task_id: str, errors: Sequence[str], archive_url: str | None) -> TaskStatus:
        """Record the pipeline outcome: completed iff an archive was produced."""
        with self._lock:
            task = self._require(task_id)
            task.errors = list(errors)
            if archive_url:
                task.archive_url = archive_url
                self._advance(task, TaskStatus.COMPLETED)
            else:
                self._advance(task, TaskStatus.FAILED)
            return task.status

    def status(self, task_id: str) -> TaskSnapshot:
        with self._lock:
            task = self._require(task_id)
            if task.is_terminal and task_id in self._active:
                del self._active[task_id]
                self._completed[task_id] = None
                self._prune_completed()
            return self._snapshot(task, include_results=task.is_terminal)

    def count_active(self) -> int:
        with self._lock:
            return len(self._active)

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def _advance(self, task: Task, new_status: TaskStatus) -> None:
        if new_status not in TRANSITIONS[task.status]:
            raise RuntimeError(
                f"Illegal status transition for task {task.id}: {task.status} -> {new_status}"
            )
        logger.info("Task %s: %s -> %s", task.id, task.status, new_status)
        task.status = new_status

    def _prune_completed(self) -> None:
        if self.terminal_task_retention <= 0:
            return
        while len(self._completed) > self.terminal_task_retention:
            oldest = next(iter(self._completed))
            del self._completed[oldest]
            self._tasks.pop(oldest, None)
            logger.debug("Pruned terminal task %s.", oldest)

    def _snapshot(self, task: Task, include_results: bool = True) -> TaskSnapshot:
        return TaskSnapshot(
            task=task.copy(include_results=include_results),
            active_task_ids=tuple(self._active),
            completed_task_ids=tuple(self._completed),
        )


class TaskService:
    """Lifecycle manager: admission, URL accumulation, and background pipelines."""

    def __init__(
        self,
        *,
        kernel_factory: Callable[[], Kernel],
        settings: config.Settings | None = None,
    ):
        self.settings = settings or config.SETTINGS
        self.kernel = kernel_factory()
        self.store = TaskStore(terminal_task_retention=self.settings.terminal_task_retention)
        self._stop_event = threading.Event()
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.pipeline_workers,
            thread_name_prefix="task-pipeline",
        )
        self._futures_lock = threading.Lock()
        self._futures: dict[Future, str] = {}

    def create_task(self, cancel_check: Callable[[], bool] | None = None) -> TaskSnapshot:
        try:
            snapshot = self.store.create(self.settings.max_active_tasks)
        except AdmissionRejected as exc:
            logger.error(
                "Server busy. Too many active tasks (active=%d, max=%d).",
                exc.active,
                exc.limit,
            )
            raise
        logger.info("Task %s created.", snapshot.task.id)
        return snapshot

    def add_urls(
        self,
        task_id: str,
        urls: Sequence[str],
        cancel_check: Callable[[], bool] | None = None,
    ) -> AddURLsOutcome:
        """Validate and attach ``urls`` in order; launches the pipeline at quota.

        Validation probes run outside the store lock. The caller's
        ``cancel_check`` stops further probing but is never handed to a
        pipeline once launched.
        """
        self.store.ensure_accepting(task_id)

        validator = self.kernel["validator"]
        urls = [url.strip() if isinstance(url, str) else url for url in urls]
        accepted: list[str] = []
        invalid: list[InvalidURL] = []
        rejected: list[str] = []
        launch_urls: tuple[str, ...] | None = None

        for index, url in enumerate(urls):
            if cancel_check and cancel_check():
                invalid.extend(InvalidURL(u, str(RejectionReason.CANCELLED)) for u in urls[index:])
                break

            reason = validator.check(url)
            if reason is not None:
                logger.warning("URL rejected for task %s: %s (%s)", task_id, url, reason)
                invalid.append(InvalidURL(url=url, reason=str(reason)))
                continue

            acceptance = self.store.accept_url(task_id, url, self.settings.max_urls_per_task)
            if not acceptance.accepted:
                rejected.extend(urls[index:])
                break

            accepted.append(url)
            if acceptance.launch_urls is not None:
                logger.info(
                    "Task %s reached %d links; starting pipeline.",
                    task_id,
                    self.settings.max_urls_per_task,
                )
                rejected.extend(urls[index + 1 :])
                launch_urls = acceptance.launch_urls
                break

        if launch_urls is not None:
            self._launch_pipeline(task_id, launch_urls)

        return AddURLsOutcome(
            accepted=tuple(accepted),
            invalid=tuple(invalid),
            rejected_by_quota=tuple(rejected),
        )

    def get_status(
        self, task_id: str, cancel_check: Callable[[], bool] | None = None
    ) -> TaskSnapshot:
        return self.store.status(task_id)

    def wait_for_pipelines(self, timeout_seconds: float | None = None) -> bool:
        """Block until every launched pipeline has finished. Returns False on timeout."""
        with self._futures_lock:
            pending = list(self._futures)
        _, not_done = wait(pending, timeout=timeout_seconds)
        return not not_done

    def stop(self, timeout_seconds: float | None = None) -> None:
        """Shut the pipeline executor down and close the kernel.

        In-flight pipelines run to completion unless
        ``cancel_pipelines_on_shutdown`` is set, in which case queued pipelines
        are cancelled and running downloads abort at their next chunk.
        """
        cancel = self.settings.cancel_pipelines_on_shutdown
        self._stop_event.set()
        self._executor.shutdown(wait=False, cancel_futures=cancel)
        self.wait_for_pipelines(timeout_seconds)
        self.kernel.close()
        logger.info("TaskService stopped.")

    def _launch_pipeline(self, task_id: str, urls: tuple[str, ...]) -> None:
        try:
            future = self._executor.submit(self._run_pipeline, task_id, urls)
        except RuntimeError:
            logger.error("Pipeline for task %s not started: service is shutting down.", task_id)
            self.store.finish(task_id, ["pipeline not started: service is shutting down"], None)
            return

        with self._futures_lock:
            self._futures[future] = task_id
        future.add_done_callback(self._on_pipeline_done)

    def _on_pipeline_done(self, future: Future) -> None:
        with self._futures_lock:
            task_id = self._futures.pop(future, None)
        if task_id is not None and future.cancelled():
            logger.warning("Pipeline for task %s cancelled during shutdown.", task_id)
            self.store.finish(task_id, ["pipeline cancelled during shutdown"], None)

    def _pipeline_cancelled(self) -> bool:
        return self._stop_event.is_set() and self.settings.cancel_pipelines_on_shutdown

    def _run_pipeline(self, task_id: str, urls: tuple[str, ...]) -> None:
        logger.info("Pipeline started for task %s with %d URLs.", task_id, len(urls))
        try:
            errors, archive_url = self._download_and_archive(task_id, urls)
        except Exception as exc:
            logger.exception("Pipeline crashed for task %s.", task_id)
            errors, archive_url = [str(exc) or "unexpected pipeline error"], None

        final_status = self.store.finish(task_id, errors, archive_url)
        logger.info(
            "Pipeline finished for task %s: %s (%d errors).", task_id, final_status, len(errors)
        )

    def _download_and_archive(
        self, task_id: str, urls: tuple[str, ...]
    ) -> tuple[list[str], str | None]:
        downloader = self.kernel["downloader"]
        archiver = self.kernel["archiver"]

        batch = downloader.download_all(urls, cancel_check=self._pipeline_cancelled)
        errors = list(batch.errors)
        if not batch.files:
            return errors, None

        archive_url: str | None = None
        try:
            archive_url = archiver.create_archive(task_id, batch.files)
        except ArchiveError as exc:
            logger.error("Failed to create archive for task %s: %s", task_id, exc)
            errors.append(str(exc))
        except Exception as exc:
            logger.exception("Unexpected archive failure for task %s.", task_id)
            errors.append(f"failed to create archive for task {task_id}: {exc}")
        finally:
            archiver.cleanup(batch.files)

        return errors, archive_url
