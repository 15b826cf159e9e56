"""Tests for the render task queue, using a fake encoder runner."""

import threading
import time

import pytest

from conftest import FakeRunner
from scenecompose import Scene
from scenecompose.cache import CacheManager
from scenecompose.config import CompositionConfig
from scenecompose.errors import ExternalProcessError, RenderCancelled, ResourceNotFoundError
from scenecompose.render_queue import MAX_RETRIES, RenderJob, RenderTaskQueue
from scenecompose.stitch import stitch


def _job(fp, sources=None, prepare=None):
    return RenderJob(
        fingerprint=fp,
        label=fp,
        build_args=lambda out: ["-i", "input", str(out)],
        sources=sources or [],
        prepare=prepare,
    )


@pytest.fixture
def cache(tmp_path):
    cache = CacheManager(tmp_path / "cache", tmp_path / "out", run_id="test")
    cache.ensure()
    return cache


class TestSubmit:
    def test_writes_artifact_via_partial(self, cache, fake_runner):
        queue = RenderTaskQueue(cache, runner=fake_runner)
        path = queue.submit(_job("scene-000-a")).result(timeout=5)
        assert path == cache.artifact_path("scene-000-a")
        assert path.read_bytes() == b"artifact"
        assert fake_runner.calls[0][1][-1].endswith(".partial.mp4")
        queue.shutdown()

    def test_in_flight_fingerprint_runs_once(self, cache):
        gate = threading.Event()
        runner = FakeRunner(gate=gate)
        queue = RenderTaskQueue(cache, concurrency=4, runner=runner)
        first = queue.submit(_job("scene-000-same"))
        second = queue.submit(_job("scene-000-same"))
        assert first is second
        gate.set()
        first.result(timeout=5)
        assert len(runner.calls) == 1
        assert queue.encoder_invocations == 1
        queue.shutdown()

    def test_cached_artifact_skips_encoder(self, cache, fake_runner):
        cache.artifact_path("scene-000-cached").write_bytes(b"old")
        queue = RenderTaskQueue(cache, runner=fake_runner)
        path = queue.submit(_job("scene-000-cached")).result(timeout=5)
        assert path.read_bytes() == b"old"
        assert fake_runner.calls == []
        assert queue.cache_hits == 1
        queue.shutdown()

    def test_prepare_runs_before_encoder(self, cache, fake_runner):
        order = []
        queue = RenderTaskQueue(cache, runner=fake_runner)
        queue.submit(_job("scene-000-p", prepare=lambda: order.append("prepare"))).result(timeout=5)
        assert order == ["prepare"]
        queue.shutdown()

    def test_on_job_done_callback(self, cache, fake_runner):
        done = []
        queue = RenderTaskQueue(cache, runner=fake_runner, on_job_done=lambda job: done.append(job.label))
        queue.run_all([_job("a"), _job("b")])
        assert sorted(done) == ["a", "b"]
        queue.shutdown()


class TestRetries:
    def test_transient_failure_is_retried(self, cache):
        runner = FakeRunner(fail=[ExternalProcessError("crash", returncode=-9, retryable=True)])
        queue = RenderTaskQueue(cache, runner=runner, retry_delay=0.01)
        queue.submit(_job("scene-000-r")).result(timeout=5)
        assert len(runner.calls) == 2
        queue.shutdown()

    def test_gives_up_after_max_retries(self, cache):
        errors = [ExternalProcessError("crash", returncode=-9, retryable=True)] * (MAX_RETRIES + 1)
        runner = FakeRunner(fail=errors)
        queue = RenderTaskQueue(cache, runner=runner, retry_delay=0.01)
        with pytest.raises(ExternalProcessError):
            queue.submit(_job("scene-000-r")).result(timeout=5)
        assert len(runner.calls) == MAX_RETRIES + 1
        queue.shutdown()

    def test_retry_policy_shared_with_outside_runs(self, cache, tmp_path):
        runner = FakeRunner(fail=[ExternalProcessError("crash", returncode=-9, retryable=True)])
        queue = RenderTaskQueue(cache, runner=runner, retry_delay=0.01)
        stitch(
            [tmp_path / "a.mp4", tmp_path / "b.mp4"], [Scene(duration=1), Scene(duration=1)],
            tmp_path / "out.mp4", CompositionConfig.from_options(), queue.runner, tmp_path / "log",
            **queue.retry_policy(),
        )
        assert queue.encoder_invocations == 2
        queue.shutdown()

    def test_terminal_failure_not_retried(self, cache):
        runner = FakeRunner(fail=[ExternalProcessError("bad filter", returncode=1, retryable=False)])
        queue = RenderTaskQueue(cache, runner=runner, retry_delay=0.01)
        with pytest.raises(ExternalProcessError):
            queue.submit(_job("scene-000-t")).result(timeout=5)
        assert len(runner.calls) == 1
        assert not cache.partial_path("scene-000-t").exists()
        queue.shutdown()

    def test_missing_source_fails_without_encoder(self, cache, fake_runner, tmp_path):
        queue = RenderTaskQueue(cache, runner=fake_runner)
        with pytest.raises(ResourceNotFoundError):
            queue.submit(_job("scene-000-m", sources=[tmp_path / "gone.mp4"])).result(timeout=5)
        assert fake_runner.calls == []
        queue.shutdown()


class TestRunAll:
    def test_results_in_job_order(self, cache, fake_runner):
        queue = RenderTaskQueue(cache, concurrency=3, runner=fake_runner)
        jobs = [_job(f"scene-00{i}-x") for i in range(3)]
        paths = queue.run_all(jobs)
        assert paths == [cache.artifact_path(j.fingerprint) for j in jobs]
        queue.shutdown()

    def test_failure_discards_sibling_artifacts(self, cache, tmp_path):
        runner = FakeRunner()
        queue = RenderTaskQueue(cache, concurrency=1, runner=runner)
        jobs = [_job("scene-000-ok"), _job("scene-001-bad", sources=[tmp_path / "missing.png"])]
        with pytest.raises(ResourceNotFoundError):
            queue.run_all(jobs)
        assert not cache.has_artifact("scene-000-ok")
        assert queue.cancelled
        assert runner.terminated
        queue.shutdown()

    def test_cancel_rejects_new_work(self, cache, fake_runner):
        queue = RenderTaskQueue(cache, runner=fake_runner)
        queue.cancel()
        with pytest.raises(RenderCancelled):
            queue.submit(_job("scene-000-late"))
        queue.shutdown()

    def test_cancel_interrupts_running_job(self, cache):
        gate = threading.Event()
        runner = FakeRunner(gate=gate)
        queue = RenderTaskQueue(cache, runner=runner, retry_delay=0.01)
        future = queue.submit(_job("scene-000-long"))
        deadline = time.monotonic() + 5
        while not runner.calls and time.monotonic() < deadline:
            time.sleep(0.01)
        queue.cancel()
        with pytest.raises(RenderCancelled):
            future.result(timeout=5)
        assert not cache.partial_path("scene-000-long").exists()
        queue.shutdown()
