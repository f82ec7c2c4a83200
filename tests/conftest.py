"""
Shared pytest fixtures for mailto_things tests.
"""

import io
from datetime import UTC, datetime

import pytest
from PIL import Image

from mailto_things.config import PipelineConfig
from mailto_things.enrichment import NullEnricher
from mailto_things.extraction import default_registry
from mailto_things.materializer import AttachmentMaterializer
from mailto_things.models import MessageMetadata
from mailto_things.pipeline import DocumentPipeline, PayloadWalker

BASE_URL = "https://files.example.com/attachments"


@pytest.fixture
def png_bytes() -> bytes:
    """A tiny but valid PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color="white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def attachments_dir(tmp_path):
    return tmp_path / "attachments"


@pytest.fixture
def materializer(attachments_dir) -> AttachmentMaterializer:
    return AttachmentMaterializer(attachments_dir, BASE_URL, file_mode=0o600, dir_mode=0o700)


@pytest.fixture
def pipeline_config(attachments_dir) -> PipelineConfig:
    return PipelineConfig(attachments_dir=attachments_dir, attachments_url=BASE_URL)


@pytest.fixture
def pipeline(pipeline_config) -> DocumentPipeline:
    return DocumentPipeline(pipeline_config, enricher=NullEnricher())


@pytest.fixture
def walker(materializer) -> PayloadWalker:
    return PayloadWalker("msg-1", default_registry(), materializer, NullEnricher())


@pytest.fixture
def sample_message() -> MessageMetadata:
    return MessageMetadata(
        message_id="AAMkAGI2",
        internet_message_id="<task-1@example.com>",
        subject="Call the plumber",
        sender_email="me@example.com",
        received=datetime(2026, 2, 1, 10, 30, tzinfo=UTC),
        recipients=["tasks@example.com"],
        raw={},
    )


@pytest.fixture
def settings_env(monkeypatch, tmp_path):
    """Minimal environment for Settings()."""
    monkeypatch.setenv("GRAPH_CLIENT_ID", "client-id")
    monkeypatch.setenv("MAILTO_THINGS_INCOMING_EMAIL", "tasks@example.com")
    monkeypatch.setenv("MAILTO_THINGS_OUTGOING_EMAIL", "add-to-things@things.example")
    monkeypatch.setenv("MAILTO_THINGS_ATTACHMENTS_DIR", str(tmp_path / "attachments"))
    monkeypatch.setenv("MAILTO_THINGS_ATTACHMENTS_DIR_URL", BASE_URL + "/")
    for name in ("GRAPH_MAILBOX", "GRAPH_AUTH_MODE", "MAILTO_THINGS_FILE_CREATE_MODE", "MAILTO_THINGS_DIR_CREATE_MODE"):
        monkeypatch.delenv(name, raising=False)
