"""Bounded-concurrency render jobs.

A RenderJob turns one fingerprinted description into one cached artifact
by running the encoder. RenderTaskQueue runs jobs on a thread pool; each
worker blocks on an ffmpeg subprocess.

Guarantees:
  - a fingerprint already in flight is never started twice: a second
    submit returns the first job's Future;
  - an artifact already committed under the fingerprint is reused without
    running the encoder (cache_hits counts these);
  - missing sources fail fast with ResourceNotFoundError and no retry;
  - retryable encoder failures are retried up to MAX_RETRIES times;
  - run_all() surfaces a single error, cancels the rest and discards
    every artifact of the batch.

A Composition submits each fingerprint once into its own cache directory,
so its renders report zero cache hits. Hits come from running further
batches on a queue whose cache already holds their artifacts.
"""

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .cache import CacheManager
from .encoder import MAX_RETRIES, RETRY_DELAY, EncoderRunner, run_with_retries
from .errors import RenderCancelled, ResourceNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class RenderJob:
    """One encoder invocation producing one artifact.

    build_args receives the partial output path and returns the ffmpeg
    arguments with that path last. prepare, when set, runs in the worker
    before the arguments are built (e.g. rasterizing text).
    """

    fingerprint: str
    label: str
    build_args: Callable[[Path], list[str]]
    kind: str = "scene"
    sources: list[Path] = field(default_factory=list)
    prepare: Callable[[], None] | None = None
    duration: float | None = None


class RenderTaskQueue:
    def __init__(
        self,
        cache: CacheManager,
        concurrency: int = 1,
        runner=None,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        on_job_done: Callable[[RenderJob], None] | None = None,
    ):
        self.cache = cache
        self.runner = runner or EncoderRunner()
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.on_job_done = on_job_done
        self.encoder_invocations = 0
        self.cache_hits = 0
        self._executor = ThreadPoolExecutor(
            max_workers=concurrency, thread_name_prefix="scenecompose-job",
        )
        self._lock = threading.RLock()
        self._in_flight: dict[str, Future] = {}
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def submit(self, job: RenderJob) -> Future:
        """Schedule a job, or join the one already running for its fingerprint."""
        with self._lock:
            if self._cancelled.is_set():
                raise RenderCancelled("Render queue has been cancelled")
            existing = self._in_flight.get(job.fingerprint)
            if existing is not None:
                logger.debug("Joining in-flight job %s", job.label)
                return existing
            future = self._executor.submit(self._run_job, job)
            self._in_flight[job.fingerprint] = future
            future.add_done_callback(
                lambda f, fp=job.fingerprint: self._forget(fp, f)
            )
            return future

    def _forget(self, fp: str, future: Future) -> None:
        with self._lock:
            if self._in_flight.get(fp) is future:
                del self._in_flight[fp]

    def run_all(self, jobs: list[RenderJob]) -> list[Path]:
        """Run a batch and return artifact paths in job order.

        Waits until every job succeeds or the first one fails. On failure
        the remaining jobs are cancelled, their subprocesses terminated,
        all artifacts of the batch discarded, and the first error raised.
        """
        futures = [self.submit(job) for job in jobs]
        wait(futures, return_when=FIRST_EXCEPTION)

        error = None
        for future in futures:
            if future.done() and not future.cancelled() and future.exception() is not None:
                error = future.exception()
                break
        if error is None:
            if any(future.cancelled() for future in futures):
                raise RenderCancelled("Render queue was cancelled")
            return [future.result() for future in futures]

        logger.debug("Aborting batch after failure: %s", error)
        self.cancel()
        wait(futures)
        for job in jobs:
            self.cache.discard(job.fingerprint)
        raise error

    def cancel(self) -> None:
        """Stop everything: queued jobs, running encoders, partial files."""
        self._cancelled.set()
        with self._lock:
            futures = list(self._in_flight.values())
        for future in futures:
            future.cancel()
        self.runner.terminate_all()
        self.cache.discard_partials()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def retry_policy(self) -> dict:
        """Keyword arguments for run_with_retries matching this queue.

        Encoder runs outside the pool (the final stitch) use it to share
        the retry limit, the cancel flag and the invocation counter.
        """
        return {
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "cancelled": self._cancelled,
            "on_attempt": self._count_invocation,
        }

    def _count_invocation(self) -> None:
        with self._lock:
            self.encoder_invocations += 1

    # ── Worker ──────────────────────────────────────────────────

    def _check_cancelled(self, job: RenderJob) -> None:
        if self._cancelled.is_set():
            raise RenderCancelled(f"{job.label}: cancelled")

    def _run_job(self, job: RenderJob) -> Path:
        self._check_cancelled(job)
        fp = job.fingerprint
        if self.cache.has_artifact(fp):
            with self._lock:
                self.cache_hits += 1
            logger.debug("Cache hit for %s (%s)", job.label, fp)
            self._done(job)
            return self.cache.artifact_path(fp)

        for source in job.sources:
            if not Path(source).is_file():
                raise ResourceNotFoundError(
                    f"{job.label}: source file not found: {source}", str(source),
                )

        if job.prepare is not None:
            job.prepare()

        partial = self.cache.partial_path(fp)
        run_with_retries(
            self.runner, job.build_args(partial), partial, self.cache.log_path(fp),
            label=job.label, **self.retry_policy(),
        )

        if self._cancelled.is_set():
            partial.unlink(missing_ok=True)
            raise RenderCancelled(f"{job.label}: cancelled")
        artifact = self.cache.commit(fp)
        logger.debug("Rendered %s -> %s", job.label, artifact.name)
        self._done(job)
        return artifact

    def _done(self, job: RenderJob) -> None:
        if self.on_job_done is not None:
            self.on_job_done(job)
