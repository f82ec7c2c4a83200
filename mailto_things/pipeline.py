"""Turn a message's content tree into one flattened task document.

The walk produces the document text and a content-id map in a single
depth-first pass. Inline ``cid:`` references are substituted only after the
whole tree has been walked, because a reference can appear in text that comes
before the attachment it points at.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from .config import PipelineConfig
from .enrichment import Enricher, build_enricher, enrichment_block
from .errors import EnrichmentFailed, UnsupportedContentKind
from .extraction import ExtractionRegistry, default_registry
from .materializer import AttachmentMaterializer
from .models import BinaryLeaf, Composite, ContentNode, StructuredMarkup, Text

logger = logging.getLogger(__name__)

PARAGRAPH_SEPARATOR = "\n\n"
REFERENCE_PREFIX = "cid:"

IdentifierMap = Dict[str, str]


def reference_token(content_id: str) -> str:
    return f"{REFERENCE_PREFIX}{content_id}"


def resolve(document_text: str, identifiers: Mapping[str, str]) -> str:
    """Replace every ``cid:<id>`` reference whose id is mapped with its location.

    Unmapped references are left as they are.
    """
    if not identifiers or REFERENCE_PREFIX not in document_text:
        return document_text
    # Longest first so that cid:img1 cannot match inside cid:img10.
    keys = sorted(identifiers, key=len, reverse=True)
    pattern = re.compile(
        re.escape(REFERENCE_PREFIX) + "(" + "|".join(re.escape(key) for key in keys) + ")"
    )
    return pattern.sub(lambda match: identifiers[match.group(1)], document_text)


class PayloadWalker:
    """Depth-first walk over one message's content tree."""

    def __init__(
        self,
        message_id: str,
        registry: ExtractionRegistry,
        materializer: AttachmentMaterializer,
        enricher: Enricher,
    ) -> None:
        self.message_id = message_id
        self.registry = registry
        self.materializer = materializer
        self.enricher = enricher
        self.attachment_count = 0

    def walk(self, node: ContentNode) -> Tuple[str, IdentifierMap]:
        if isinstance(node, Text):
            return node.text, {}
        if isinstance(node, StructuredMarkup):
            return self._walk_markup(node), {}
        if isinstance(node, Composite):
            return self._walk_composite(node)
        if isinstance(node, BinaryLeaf):
            return self._walk_leaf(node)
        raise TypeError(f"Unknown content node {type(node).__name__}")

    def _walk_markup(self, node: StructuredMarkup) -> str:
        try:
            text = self.registry.extract(node.content_type, node.data, node.charset)
        except UnsupportedContentKind as exc:
            logger.warning("Skipping part of message %s: %s", self.message_id, exc)
            return ""
        return text + PARAGRAPH_SEPARATOR

    def _walk_composite(self, node: Composite) -> Tuple[str, IdentifierMap]:
        pieces: list[str] = []
        identifiers: IdentifierMap = {}
        for child in node.children:
            text, child_identifiers = self.walk(child)
            pieces.append(text)
            # Later siblings win on duplicate content ids.
            identifiers.update(child_identifiers)
        return "".join(pieces), identifiers

    def _walk_leaf(self, leaf: BinaryLeaf) -> Tuple[str, IdentifierMap]:
        attachment = self.materializer.materialize(self.message_id, leaf)
        self.attachment_count += 1
        text = attachment.location

        if leaf.is_image:
            recognized: Optional[str] = None
            try:
                recognized = self.enricher.enrich(attachment.path, leaf.content_type)
            except EnrichmentFailed as exc:
                logger.warning("OCR skipped for %s: %s", attachment.path, exc)
            except Exception:
                # Enrichment never decides the fate of the attachment or the message.
                logger.exception("Enricher failed unexpectedly on %s", attachment.path)
            if recognized:
                text += enrichment_block(recognized)

        identifiers: IdentifierMap = {}
        if leaf.content_id:
            identifiers[leaf.content_id] = attachment.location
        return text, identifiers


class DocumentPipeline:
    """Single entry point used by the inbox processor."""

    def __init__(
        self,
        config: PipelineConfig,
        registry: ExtractionRegistry | None = None,
        enricher: Enricher | None = None,
    ) -> None:
        self.config = config
        self.registry = registry or default_registry()
        self.enricher = enricher or build_enricher(config.ocr_enabled, config.ocr_languages)
        self.materializer = AttachmentMaterializer(
            base_dir=config.attachments_dir,
            base_url=config.attachments_url,
            file_mode=config.file_mode,
            dir_mode=config.dir_mode,
        )

    def with_attachments_dir(self, attachments_dir: Path) -> "DocumentPipeline":
        """Same registry and enricher, attachments written somewhere else."""
        config = replace(self.config, attachments_dir=attachments_dir)
        return DocumentPipeline(config, registry=self.registry, enricher=self.enricher)

    def walker(self, message_id: str) -> PayloadWalker:
        return PayloadWalker(message_id, self.registry, self.materializer, self.enricher)

    def process(self, message_id: str, root: ContentNode) -> str:
        """Return the fully resolved document text for one message.

        ExtractionFailed and MaterializationFailed propagate to the caller.
        """
        walker = self.walker(message_id)
        text, identifiers = walker.walk(root)
        logger.debug(
            "Walked message %s: %s attachments, %s content ids",
            message_id,
            walker.attachment_count,
            len(identifiers),
        )
        return resolve(text, identifiers)
