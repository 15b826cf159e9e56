"""Intermediate artifacts and the final output file.

Each composition owns one subdirectory of the configured cache directory.
Artifacts inside it are keyed by job fingerprint, so no two workers ever
write the same path. Encoders write to a `.partial` sibling and the file
is renamed into place only on success.

The final output is staged next to its destination and published by an
atomic rename as the very last step, so the configured output path never
holds a partial file.
"""

import hashlib
import json
import logging
import os
import shutil
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


def fingerprint(kind: str, payload: dict, index: int | None = None) -> str:
    """Reproducible job key: kind, optional scene index, content hash."""
    blob = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    digest = hashlib.sha256(blob).hexdigest()[:16]
    if index is None:
        return f"{kind}-{digest}"
    return f"{kind}-{index:03d}-{digest}"


def source_stamp(path: str | Path) -> dict:
    """Identity of a source file for fingerprinting (path, size, mtime)."""
    path = Path(path)
    try:
        stat = path.stat()
    except OSError:
        return {"path": str(path), "missing": True}
    return {"path": str(path.resolve()), "size": stat.st_size, "mtime": stat.st_mtime_ns}


class CacheManager:
    def __init__(self, cache_root: str | Path, output_dir: str | Path, run_id: str | None = None):
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.cache_root = Path(cache_root)
        self.cache_dir = self.cache_root / f"composition-{self.run_id}"
        self.output_dir = Path(output_dir)
        self._staging: Path | None = None

    # ── Cache ───────────────────────────────────────────────────

    def ensure(self) -> Path:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        return self.cache_dir

    def artifact_path(self, fp: str, suffix: str = ".mp4") -> Path:
        return self.cache_dir / f"{fp}{suffix}"

    def partial_path(self, fp: str, suffix: str = ".mp4") -> Path:
        return self.cache_dir / f"{fp}.partial{suffix}"

    def log_path(self, fp: str) -> Path:
        return self.cache_dir / f"{fp}.log"

    def asset_path(self, name: str) -> Path:
        """Path for a derived asset such as rasterized text."""
        return self.cache_dir / "assets" / name

    def has_artifact(self, fp: str, suffix: str = ".mp4") -> bool:
        path = self.artifact_path(fp, suffix)
        return path.is_file() and path.stat().st_size > 0

    def commit(self, fp: str, suffix: str = ".mp4") -> Path:
        """Move a finished partial artifact into place."""
        final = self.artifact_path(fp, suffix)
        os.replace(self.partial_path(fp, suffix), final)
        return final

    def discard(self, fp: str, suffix: str = ".mp4") -> None:
        """Remove an artifact and any partial left behind for it."""
        for path in (self.artifact_path(fp, suffix), self.partial_path(fp, suffix)):
            try:
                path.unlink()
            except FileNotFoundError:
                pass

    def discard_partials(self) -> None:
        if not self.cache_dir.exists():
            return
        for path in self.cache_dir.glob("*.partial.*"):
            path.unlink(missing_ok=True)

    def cleanup(self) -> None:
        """Delete this composition's cache subdirectory and any staging file."""
        self.discard_staging()
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir, ignore_errors=True)
            logger.debug("Removed cache directory %s", self.cache_dir)

    # ── Output ──────────────────────────────────────────────────

    def resolve_output(self, output_path: str | Path | None) -> Path:
        """Final output location: the explicit path, or a fresh name in output_dir."""
        if output_path is not None:
            return Path(output_path)
        return self.output_dir / f"{self.run_id}.mp4"

    def staging_path(self, output: Path) -> Path:
        """A hidden sibling of the output, on the same filesystem."""
        output.parent.mkdir(parents=True, exist_ok=True)
        self._staging = output.with_name(f".{output.stem}.{self.run_id}.partial{output.suffix}")
        return self._staging

    def publish(self, staging: Path, output: Path) -> Path:
        """Atomically move the staged file to the output path."""
        os.replace(staging, output)
        self._staging = None
        return output

    def discard_staging(self) -> None:
        if self._staging is not None:
            self._staging.unlink(missing_ok=True)
            self._staging = None
