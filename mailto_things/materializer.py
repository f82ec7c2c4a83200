"""Persist attachment payloads under a per-message directory without overwriting."""

from __future__ import annotations

import logging
import mimetypes
import os
from pathlib import Path
from urllib.parse import quote

from .errors import MaterializationFailed
from .models import BinaryLeaf, MaterializedAttachment

logger = logging.getLogger(__name__)


def _safe_component(name: str) -> str:
    """Reduce a name to a single path component."""
    component = name.replace("\\", "/").rsplit("/", 1)[-1].strip()
    if component in ("", ".", ".."):
        return ""
    return component


def _candidate_name(filename: str, attempt: int) -> str:
    if attempt == 0:
        return filename
    stem, ext = os.path.splitext(filename)
    return f"{stem} ({attempt}){ext}"


def write_file_exclusive(path: Path, data: bytes, mode: int) -> None:
    """Create ``path`` and write ``data`` to it; raise FileExistsError if it exists.

    A file that was created but could not be fully written is removed again.
    """
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
    except OSError:
        os.unlink(path)
        raise


class AttachmentMaterializer:
    """Write BinaryLeaf bytes to ``<base_dir>/<message id>/`` and build their URLs."""

    def __init__(
        self,
        base_dir: Path,
        base_url: str,
        file_mode: int = 0o600,
        dir_mode: int = 0o700,
    ) -> None:
        self.base_dir = Path(base_dir)
        self.base_url = base_url.rstrip("/")
        self.file_mode = file_mode
        self.dir_mode = dir_mode

    def materialize(self, message_id: str, leaf: BinaryLeaf) -> MaterializedAttachment:
        directory, directory_url = self._message_dir(message_id)
        filename = self._filename(message_id, leaf)

        attempt = 0
        while True:
            name = _candidate_name(filename, attempt)
            path = directory / name
            try:
                write_file_exclusive(path, leaf.data, self.file_mode)
            except FileExistsError:
                attempt += 1
                continue
            except OSError as exc:
                raise MaterializationFailed(
                    f"Failed to write attachment for message {message_id} to {path}: {exc}"
                ) from exc
            break

        if attempt:
            logger.debug("Attachment name %s taken, wrote %s instead", filename, name)
        location = f"{directory_url}/{quote(name, safe='')}"
        logger.debug("Materialized %s (%s bytes) at %s", path, len(leaf.data), location)
        return MaterializedAttachment(path=path.resolve(), location=location, content_id=leaf.content_id)

    def _message_dir(self, message_id: str) -> tuple[Path, str]:
        component = _safe_component(message_id)
        if not component:
            raise MaterializationFailed(f"Message id {message_id!r} cannot name a directory")
        directory = self.base_dir / component
        try:
            directory.mkdir(mode=self.dir_mode, parents=True, exist_ok=True)
        except OSError as exc:
            raise MaterializationFailed(f"Failed to make attachments dir {directory}: {exc}") from exc
        return directory, f"{self.base_url}/{quote(component, safe='')}"

    @staticmethod
    def _filename(message_id: str, leaf: BinaryLeaf) -> str:
        declared = _safe_component(leaf.filename or "")
        if declared:
            return declared
        extension = mimetypes.guess_extension(leaf.content_type.split(";", 1)[0].strip().lower()) or ""
        return f"{_safe_component(message_id)}{extension}"
