"""Background thumbnail pass.

Imports run with ``make_thumbnail=False`` leave image items ``pending``.
This queue generates those previews later on a small worker pool. Jobs are
deduplicated by key: enqueueing a key that is already pending or running
is a no-op. Failed jobs are retried a bounded number of times.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from media_vault.errors import ThumbnailError
from media_vault.extraction.thumbnail import DEFAULT_MAX_SIZE, ThumbnailGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThumbnailTask:
    dedupe_key: str
    input_path: Path
    output_path: Path
    max_size: int = DEFAULT_MAX_SIZE
    on_success: Callable[[Path], None] | None = None
    on_error: Callable[[BaseException], None] | None = None


@dataclass(frozen=True)
class ThumbnailJobResult:
    dedupe_key: str
    ok: bool
    attempts: int
    duration_ms: float
    output_path: Path | None = None
    error: BaseException | None = None


class ThumbnailQueue:
    """Deduplicating, bounded-concurrency thumbnail worker pool.

    Usage:
        with ThumbnailQueue(generator, concurrency=2) as queue:
            queue.enqueue(ThumbnailTask(key, blob_path, thumb_path))
            queue.wait()
    """

    def __init__(
        self,
        generator: ThumbnailGenerator,
        concurrency: int = 2,
        max_retries: int = 1,
    ) -> None:
        self._generator = generator
        self._max_attempts = max(max_retries, 0) + 1
        self._executor = ThreadPoolExecutor(
            max_workers=max(concurrency, 1), thread_name_prefix="thumb-queue"
        )
        self._lock = threading.Lock()
        self._jobs: dict[str, Future[ThumbnailJobResult]] = {}
        self._submitted: list[Future[ThumbnailJobResult]] = []
        self._closed = False

    def __enter__(self) -> ThumbnailQueue:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown(wait=True)

    @property
    def queue_length(self) -> int:
        with self._lock:
            return len(self._jobs)

    def enqueue(self, task: ThumbnailTask) -> bool:
        """Schedule ``task``; False when closed or the key is already queued."""
        with self._lock:
            if self._closed or task.dedupe_key in self._jobs:
                return False
            future = self._executor.submit(self._run, task)
            self._jobs[task.dedupe_key] = future
            self._submitted.append(future)
            logger.debug(
                "Enqueued thumbnail job %s (queue length %d)", task.dedupe_key, len(self._jobs)
            )
        future.add_done_callback(lambda _f, key=task.dedupe_key: self._forget(key))
        return True

    def wait(self, timeout: float | None = None) -> list[ThumbnailJobResult]:
        """Block until every job queued so far has finished.

        Returns the results of jobs that completed since the last call.
        """
        with self._lock:
            futures = list(self._submitted)
        done, _ = wait(futures, timeout=timeout)
        with self._lock:
            self._submitted = [f for f in self._submitted if f not in done]
        return [f.result() for f in futures if f in done]

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    def _forget(self, key: str) -> None:
        with self._lock:
            self._jobs.pop(key, None)

    def _run(self, task: ThumbnailTask) -> ThumbnailJobResult:
        started_at = time.perf_counter()
        last_error: BaseException = ThumbnailError("queue", task.input_path, "job did not run")
        attempts = 0

        for attempt in range(1, self._max_attempts + 1):
            attempts = attempt
            try:
                self._generator.generate(task.input_path, task.output_path, task.max_size)
            except ThumbnailError as err:
                last_error = err
                logger.debug(
                    "Thumbnail job %s attempt %d failed: %s", task.dedupe_key, attempt, err
                )
                continue
            except Exception as err:
                # Unexpected errors fail the job without a retry
                last_error = err
                logger.exception("Thumbnail job %s raised unexpectedly", task.dedupe_key)
                break
            result = ThumbnailJobResult(
                dedupe_key=task.dedupe_key,
                ok=True,
                attempts=attempt,
                duration_ms=(time.perf_counter() - started_at) * 1000,
                output_path=task.output_path,
            )
            logger.info(
                "Thumbnail job %s succeeded after %d attempt(s) in %.1f ms",
                task.dedupe_key,
                attempt,
                result.duration_ms,
            )
            self._notify(task.on_success, task.output_path, task.dedupe_key)
            return result

        result = ThumbnailJobResult(
            dedupe_key=task.dedupe_key,
            ok=False,
            attempts=attempts,
            duration_ms=(time.perf_counter() - started_at) * 1000,
            error=last_error,
        )
        logger.error(
            "Thumbnail job %s failed after %d attempt(s): %s",
            task.dedupe_key,
            attempts,
            last_error,
        )
        self._notify(task.on_error, last_error, task.dedupe_key)
        return result

    @staticmethod
    def _notify(callback: Callable[[Any], None] | None, value: object, key: str) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception:
            logger.exception("Thumbnail job callback for %s raised", key)
