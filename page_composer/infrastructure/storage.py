from __future__ import annotations

import re
import shutil
import time
import uuid
from pathlib import Path

from page_composer.domain.errors import FileIOError
from page_composer.domain.models import StoredFile
from page_composer.infrastructure.logging import get_logger

logger = get_logger("storage")


def safe_file_name(name: str, default: str = "merged.pdf") -> str:
    clean = name.replace("\\", "/").split("/")[-1]
    clean = re.sub(r"[^A-Za-z0-9._() -]", "_", clean).strip()
    return clean or default


class FileStore:
    """Scratch storage for uploaded sources and staged merge outputs.

    Every file lives under ``root``; nothing here is meant to outlive the
    session that created it.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.uploads_dir = self.root / "uploads"
        self.outputs_dir = self.root / "outputs"

    def _ensure_dirs(self) -> None:
        try:
            self.uploads_dir.mkdir(parents=True, exist_ok=True)
            self.outputs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FileIOError(f"Unable to prepare storage at {self.root}") from exc

    def path_for(self, file_id: str) -> Path:
        return self.uploads_dir / f"{file_id}.pdf"

    def save(self, original_name: str, content: bytes) -> StoredFile:
        self._ensure_dirs()
        file_id = uuid.uuid4().hex
        path = self.path_for(file_id)
        try:
            path.write_bytes(content)
        except OSError as exc:
            raise FileIOError(f"Unable to store {original_name}") from exc
        logger.debug("Stored %s as %s (%d bytes)", original_name, path.name, len(content))
        return StoredFile(file_id=file_id, path=path)

    def read(self, path: Path) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as exc:
            raise FileIOError(f"Unable to read stored file {Path(path).name}") from exc

    def read_file(self, file_id: str) -> bytes:
        return self.read(self.path_for(file_id))

    def delete(self, path: Path) -> bool:
        target = Path(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        except OSError:
            logger.exception("Error removing %s", target)
            return False
        logger.debug("Removed %s", target)
        return True

    def stage_output(self, name: str, content: bytes) -> Path:
        self._ensure_dirs()
        path = self.outputs_dir / f"{uuid.uuid4().hex}_{safe_file_name(name)}"
        try:
            path.write_bytes(content)
        except OSError as exc:
            raise FileIOError(f"Unable to stage output {name}") from exc
        return path

    def staged_outputs(self) -> list[Path]:
        if not self.outputs_dir.exists():
            return []
        return sorted(self.outputs_dir.iterdir())

    def purge(self) -> None:
        shutil.rmtree(self.root, ignore_errors=True)


def _last_modified(directory: Path) -> float:
    latest = directory.stat().st_mtime
    for path in directory.rglob("*"):
        try:
            latest = max(latest, path.stat().st_mtime)
        except OSError:
            continue
    return latest


def purge_stale_sessions(
    storage_dir: Path, max_age_seconds: float, now: float | None = None
) -> list[Path]:
    """Remove session directories untouched for longer than ``max_age_seconds``.

    Sessions that end without ``close()`` (a closed browser tab) leave their
    uploads behind; this sweeps them on the next start.
    """
    root = Path(storage_dir)
    if not root.is_dir():
        return []
    cutoff = (time.time() if now is None else now) - max_age_seconds
    removed: list[Path] = []
    for session_dir in sorted(root.iterdir()):
        if not session_dir.is_dir():
            continue
        try:
            stale = _last_modified(session_dir) < cutoff
        except OSError:
            continue
        if stale:
            shutil.rmtree(session_dir, ignore_errors=True)
            removed.append(session_dir)
    if removed:
        logger.info("Purged %d stale session directories under %s", len(removed), root)
    return removed
