"""Typed containers shared across the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union


@dataclass
class Text:
    """Already-decoded text that is copied into the document as is."""

    text: str


@dataclass
class StructuredMarkup:
    """Markup (HTML and friends) that needs an extraction strategy."""

    content_type: str
    data: bytes
    charset: str = "utf-8"


@dataclass
class Composite:
    """Ordered container of child nodes. Never carries bytes itself."""

    children: list["ContentNode"] = field(default_factory=list)


@dataclass
class BinaryLeaf:
    """Attachment or inline image payload."""

    data: bytes
    content_type: str
    filename: Optional[str] = None
    content_id: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return self.content_type.lower().startswith("image/")


ContentNode = Union[Text, StructuredMarkup, Composite, BinaryLeaf]


@dataclass
class MaterializedAttachment:
    """A BinaryLeaf persisted to disk together with its public location."""

    path: Path
    location: str
    content_id: Optional[str] = None


@dataclass
class MessageMetadata:
    """Essential metadata about a mailbox message."""

    message_id: str
    internet_message_id: str
    subject: str
    sender_email: str
    received: datetime
    recipients: list[str]
    raw: dict[str, Any]
