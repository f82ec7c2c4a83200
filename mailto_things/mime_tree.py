"""Build a ContentNode tree from raw RFC 822 message bytes."""

from __future__ import annotations

import logging
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Optional

from .extraction import ExtractionRegistry
from .models import BinaryLeaf, Composite, ContentNode, StructuredMarkup, Text

logger = logging.getLogger(__name__)


def parse_message(raw: bytes) -> EmailMessage:
    return BytesParser(policy=policy.default).parsebytes(raw)


def clean_content_id(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    cleaned = str(value).strip().strip("<>").strip()
    return cleaned or None


class ContentTreeBuilder:
    """Translate MIME parts into the pipeline's node variants.

    ``multipart/alternative`` bodies carry the same content several times; with
    ``collapse_alternatives`` only the last alternative the registry can render
    is kept, following RFC 2046's "richest last" ordering.
    """

    def __init__(self, registry: ExtractionRegistry, collapse_alternatives: bool = True) -> None:
        self.registry = registry
        self.collapse_alternatives = collapse_alternatives

    def build(self, raw: bytes) -> ContentNode:
        return self.build_part(parse_message(raw))

    def build_part(self, part: EmailMessage) -> ContentNode:
        if part.get_content_maintype() == "multipart":
            children = list(part.iter_parts())
            if self.collapse_alternatives and part.get_content_subtype() == "alternative":
                children = self._preferred_alternative(children)
            return Composite([self.build_part(child) for child in children])

        content_type = part.get_content_type()
        filename = part.get_filename()
        disposition = part.get_content_disposition()
        is_body_text = (
            part.get_content_maintype() == "text" and disposition != "attachment" and not filename
        )

        if is_body_text and content_type == "text/plain":
            try:
                return Text(part.get_content())
            except LookupError:
                # Unknown charset; let the plain-text strategy report it.
                logger.debug("Unknown charset %r on text/plain part", part.get_content_charset())
        if is_body_text:
            return StructuredMarkup(
                content_type=content_type,
                data=part.get_payload(decode=True) or b"",
                charset=part.get_content_charset() or "utf-8",
            )
        return BinaryLeaf(
            data=self._leaf_bytes(part),
            content_type=content_type,
            filename=filename,
            content_id=clean_content_id(part.get("Content-ID")),
        )

    def _preferred_alternative(self, children: list[EmailMessage]) -> list[EmailMessage]:
        for child in reversed(children):
            if child.get_content_maintype() == "multipart" or child.get_content_type() == "text/plain":
                return [child]
            if self.registry.supports(child.get_content_type()):
                return [child]
        logger.debug("No renderable alternative among %s parts; keeping all", len(children))
        return children

    @staticmethod
    def _leaf_bytes(part: EmailMessage) -> bytes:
        if part.get_content_type() == "message/rfc822":
            payload = part.get_payload()
            if isinstance(payload, list) and payload:
                return payload[0].as_bytes()
        return part.get_payload(decode=True) or b""
