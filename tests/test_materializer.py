"""Unit tests for attachment materialization."""

import errno
import os
import stat
from urllib.parse import quote

import pytest

from mailto_things.errors import MaterializationFailed
from mailto_things.materializer import AttachmentMaterializer
from mailto_things.models import BinaryLeaf

from conftest import BASE_URL


class TestMaterialize:
    """Tests for AttachmentMaterializer.materialize."""

    def test_writes_declared_filename(self, materializer, attachments_dir):
        leaf = BinaryLeaf(data=b"%PDF-1.4", content_type="application/pdf", filename="report.pdf")

        result = materializer.materialize("msg-1", leaf)

        assert result.path == (attachments_dir / "msg-1" / "report.pdf").resolve()
        assert result.path.read_bytes() == b"%PDF-1.4"
        assert result.location == f"{BASE_URL}/msg-1/report.pdf"
        assert result.content_id is None

    def test_applies_file_and_dir_modes(self, materializer, attachments_dir):
        leaf = BinaryLeaf(data=b"x", content_type="text/csv", filename="data.csv")

        result = materializer.materialize("msg-1", leaf)

        assert stat.S_IMODE(os.stat(result.path).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(attachments_dir / "msg-1").st_mode) == 0o700

    def test_same_name_twice_gets_suffix(self, materializer):
        first = materializer.materialize("msg-1", BinaryLeaf(b"one", "application/pdf", "report.pdf"))
        second = materializer.materialize("msg-1", BinaryLeaf(b"two", "application/pdf", "report.pdf"))
        third = materializer.materialize("msg-1", BinaryLeaf(b"three", "application/pdf", "report.pdf"))

        assert first.path.name == "report.pdf"
        assert second.path.name == "report (1).pdf"
        assert third.path.name == "report (2).pdf"
        assert first.path.read_bytes() == b"one"
        assert second.path.read_bytes() == b"two"
        assert second.location == f"{BASE_URL}/msg-1/{quote('report (1).pdf', safe='')}"

    def test_suffix_without_extension(self, materializer):
        materializer.materialize("msg-1", BinaryLeaf(b"a", "application/octet-stream", "README"))
        second = materializer.materialize("msg-1", BinaryLeaf(b"b", "application/octet-stream", "README"))

        assert second.path.name == "README (1)"

    def test_never_overwrites_existing_file(self, materializer, attachments_dir):
        directory = attachments_dir / "msg-1"
        directory.mkdir(parents=True)
        (directory / "photo.png").write_bytes(b"original")

        result = materializer.materialize("msg-1", BinaryLeaf(b"new", "image/png", "photo.png"))

        assert (directory / "photo.png").read_bytes() == b"original"
        assert result.path.name == "photo (1).png"

    def test_messages_get_separate_directories(self, materializer):
        a = materializer.materialize("msg-1", BinaryLeaf(b"a", "text/plain", "notes.txt"))
        b = materializer.materialize("msg-2", BinaryLeaf(b"b", "text/plain", "notes.txt"))

        assert a.path.name == b.path.name == "notes.txt"
        assert a.path.parent != b.path.parent


class TestFilename:
    """Tests for filename selection."""

    def test_synthesizes_name_from_message_id_and_type(self, materializer, png_bytes):
        result = materializer.materialize("msg-1", BinaryLeaf(png_bytes, "image/png", content_id="img1"))

        assert result.path.name == "msg-1.png"
        assert result.content_id == "img1"

    def test_unknown_type_has_no_extension(self, materializer):
        result = materializer.materialize("msg-1", BinaryLeaf(b"?", "application/x-made-up-kind"))

        assert result.path.name == "msg-1"

    def test_declared_path_cannot_escape_directory(self, materializer, attachments_dir):
        result = materializer.materialize("msg-1", BinaryLeaf(b"x", "text/plain", "../../etc/passwd"))

        assert result.path == (attachments_dir / "msg-1" / "passwd").resolve()

    def test_location_escapes_spaces_and_unicode(self, materializer):
        result = materializer.materialize("msg-1", BinaryLeaf(b"x", "application/pdf", "Rechnung März.pdf"))

        assert result.location == f"{BASE_URL}/msg-1/Rechnung%20M%C3%A4rz.pdf"


class TestFailures:
    """Tests for message-fatal storage failures."""

    def test_directory_cannot_be_created(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file")
        materializer = AttachmentMaterializer(blocker, BASE_URL)

        with pytest.raises(MaterializationFailed):
            materializer.materialize("msg-1", BinaryLeaf(b"x", "text/plain", "a.txt"))

    def test_empty_message_id_is_rejected(self, materializer):
        with pytest.raises(MaterializationFailed):
            materializer.materialize("..", BinaryLeaf(b"x", "text/plain", "a.txt"))

    def test_partial_write_is_removed(self, materializer, attachments_dir, monkeypatch):
        def disk_full(fd, mode):
            os.close(fd)
            raise OSError(errno.ENOSPC, "No space left on device")

        monkeypatch.setattr(os, "fdopen", disk_full)

        with pytest.raises(MaterializationFailed):
            materializer.materialize("msg-1", BinaryLeaf(b"x" * 1024, "application/pdf", "big.pdf"))

        assert list((attachments_dir / "msg-1").iterdir()) == []

    def test_name_is_reused_after_failed_write(self, materializer, monkeypatch):
        real_fdopen = os.fdopen

        def disk_full(fd, mode):
            os.close(fd)
            raise OSError(errno.ENOSPC, "No space left on device")

        monkeypatch.setattr(os, "fdopen", disk_full)
        with pytest.raises(MaterializationFailed):
            materializer.materialize("msg-1", BinaryLeaf(b"x", "application/pdf", "big.pdf"))
        monkeypatch.setattr(os, "fdopen", real_fdopen)

        result = materializer.materialize("msg-1", BinaryLeaf(b"x", "application/pdf", "big.pdf"))

        assert result.path.name == "big.pdf"
