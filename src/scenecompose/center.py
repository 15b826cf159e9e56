"""Render center: queue whole compositions and render them a few at a time.

Each task is a factory returning a ready-to-start Composition. The center
builds it, renders it to completion, destroys it (keeping the output file)
and resolves the task's Future with the output path or the render error.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable

from .composition import Composition
from .errors import ConfigError

logger = logging.getLogger(__name__)


class RenderCenter:
    def __init__(self, parallel: int = 1, timeout: float | None = None):
        if isinstance(parallel, bool) or not isinstance(parallel, int) or parallel <= 0:
            raise ConfigError(f"parallel must be a positive integer, got {parallel!r}")
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=parallel, thread_name_prefix="scenecompose-center",
        )
        self._lock = threading.Lock()
        self._tasks: dict[str, Future] = {}
        self._counter = 0

    def add_task(self, factory: Callable[[], Composition]) -> str:
        """Queue a composition factory and return the task id."""
        if not callable(factory):
            raise ConfigError(f"Task must be a callable returning a Composition, got {factory!r}")
        with self._lock:
            self._counter += 1
            task_id = f"task-{self._counter}"
            self._tasks[task_id] = self._executor.submit(self._run, task_id, factory)
        return task_id

    def future(self, task_id: str) -> Future:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise ConfigError(f"Unknown task '{task_id}'") from None

    def result(self, task_id: str, timeout: float | None = None) -> Path:
        """Output path of a task; re-raises its render error."""
        return self.future(task_id).result(timeout)

    def wait_all(self) -> dict[str, Path | BaseException]:
        """Block until every queued task ends; map task id to path or error."""
        with self._lock:
            tasks = dict(self._tasks)
        outcomes = {}
        for task_id, future in tasks.items():
            error = future.exception()
            outcomes[task_id] = error if error is not None else future.result()
        return outcomes

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()

    def _run(self, task_id: str, factory: Callable[[], Composition]) -> Path:
        composition = factory()
        if not isinstance(composition, Composition):
            raise ConfigError(f"{task_id}: factory returned {composition!r}, not a Composition")
        try:
            logger.info("%s: rendering composition %s", task_id, composition.id)
            output = composition.render(self.timeout)
            logger.info("%s: done -> %s", task_id, output)
            return output
        except Exception as exc:
            logger.error("%s: failed: %s", task_id, exc)
            raise
        finally:
            composition.destroy()
