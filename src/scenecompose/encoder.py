"""External encoder invocation.

Runs the ffmpeg binary bundled with imageio-ffmpeg as a subprocess. The
process reports progress on stdout (`-progress pipe:1`); stderr goes to a
per-job log file so failures can be classified afterwards.

Failure classification:
  - killed by a signal, or stderr names a transient condition
    -> ExternalProcessError(retryable=True)
  - stderr reports a missing input file -> ResourceNotFoundError
  - anything else -> ExternalProcessError(retryable=False)

run_with_retries() wraps one invocation in the bounded retry used by
every encoder run: scene jobs, clip extractions and the final stitch.
"""

import logging
import subprocess
import threading
from pathlib import Path
from typing import Callable

from .common import ffmpeg_executable
from .errors import ExternalProcessError, RenderCancelled, ResourceNotFoundError

logger = logging.getLogger(__name__)

TRANSIENT_PATTERNS = (
    "Resource temporarily unavailable",
    "Cannot allocate memory",
    "Broken pipe",
    "Connection reset by peer",
    "Device or resource busy",
    "received signal",
)

MISSING_PATTERNS = (
    "No such file or directory",
    "Permission denied",
)

STDERR_TAIL_LINES = 20

MAX_RETRIES = 2

RETRY_DELAY = 0.5


def read_tail(path: Path, lines: int = STDERR_TAIL_LINES) -> str:
    try:
        text = Path(path).read_text(errors="replace")
    except OSError:
        return ""
    return "\n".join(text.strip().splitlines()[-lines:])


def classify_failure(returncode: int, stderr_tail: str, label: str) -> Exception:
    """Map a failed encoder exit to the error the caller should see."""
    if returncode < 0:
        return ExternalProcessError(
            f"{label}: encoder killed by signal {-returncode}",
            returncode=returncode, retryable=True, stderr_tail=stderr_tail,
        )
    if any(p in stderr_tail for p in MISSING_PATTERNS):
        return ResourceNotFoundError(f"{label}: encoder could not open an input\n{stderr_tail}")
    retryable = any(p in stderr_tail for p in TRANSIENT_PATTERNS)
    return ExternalProcessError(
        f"{label}: encoder exited with status {returncode}\n{stderr_tail}",
        returncode=returncode, retryable=retryable, stderr_tail=stderr_tail,
    )


class EncoderRunner:
    """Runs ffmpeg jobs and tracks the live processes so they can be killed."""

    def __init__(self, executable: str | None = None):
        self.executable = executable or ffmpeg_executable()
        self._lock = threading.Lock()
        self._active: set[subprocess.Popen] = set()
        self._terminated = False

    def run(
        self,
        args: list[str],
        log_path: Path,
        on_progress: Callable[[float], None] | None = None,
        label: str = "ffmpeg",
    ) -> None:
        """Run one encoder invocation to completion.

        Args:
            args: ffmpeg arguments after the executable (inputs, filters,
                output path last).
            log_path: Where stderr is written.
            on_progress: Called with the encoded output time in seconds.
            label: Name used in log lines and error messages.

        Raises:
            ExternalProcessError, ResourceNotFoundError: see module docstring.
        """
        cmd = [
            self.executable, "-y", "-hide_banner", "-nostdin",
            "-nostats", "-progress", "pipe:1",
            *args,
        ]
        logger.debug("Running %s: %s", label, subprocess.list2cmdline(cmd))
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)

        with open(log_path, "w") as log:
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=log,
                    text=True,
                )
            except OSError as exc:
                raise ExternalProcessError(
                    f"{label}: could not launch encoder ({exc})", retryable=False,
                ) from exc

            with self._lock:
                self._active.add(proc)
                kill_now = self._terminated
            if kill_now:
                proc.kill()
            try:
                for line in proc.stdout:
                    if on_progress and line.startswith("out_time_us="):
                        value = line.split("=", 1)[1].strip()
                        if value.isdigit():
                            on_progress(int(value) / 1_000_000)
                returncode = proc.wait()
            finally:
                with self._lock:
                    self._active.discard(proc)

        if returncode != 0:
            raise classify_failure(returncode, read_tail(log_path), label)

    def terminate_all(self, grace: float = 5.0) -> None:
        """Terminate every running process; later launches die immediately."""
        with self._lock:
            self._terminated = True
            procs = list(self._active)
        for proc in procs:
            proc.terminate()
        for proc in procs:
            try:
                proc.wait(timeout=grace)
            except subprocess.TimeoutExpired:
                proc.kill()


def run_with_retries(
    runner,
    args: list[str],
    output: Path,
    log_path: Path,
    label: str = "ffmpeg",
    on_progress: Callable[[float], None] | None = None,
    max_retries: int = MAX_RETRIES,
    retry_delay: float = RETRY_DELAY,
    cancelled: threading.Event | None = None,
    on_attempt: Callable[[], None] | None = None,
) -> None:
    """Run one encoder invocation, retrying retryable failures.

    Retries up to max_retries times with a linear delay. `output` is
    removed after every failed attempt. Setting `cancelled` aborts with
    RenderCancelled, also while waiting between attempts.
    """
    cancelled = cancelled or threading.Event()
    attempt = 0
    while True:
        if cancelled.is_set():
            raise RenderCancelled(f"{label}: cancelled")
        if on_attempt is not None:
            on_attempt()
        try:
            runner.run(args, log_path, on_progress=on_progress, label=label)
            return
        except ExternalProcessError as exc:
            Path(output).unlink(missing_ok=True)
            if cancelled.is_set():
                raise RenderCancelled(f"{label}: cancelled") from exc
            if not exc.retryable or attempt >= max_retries:
                raise
            attempt += 1
            logger.warning(
                "%s failed (%s), retry %d/%d", label, exc.returncode, attempt, max_retries,
            )
            if cancelled.wait(retry_delay * attempt):
                raise RenderCancelled(f"{label}: cancelled") from exc
        except Exception:
            Path(output).unlink(missing_ok=True)
            raise
