"""Per-message orchestration: fetch, flatten, forward, clean up."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Protocol

from .errors import MESSAGE_FATAL_ERRORS
from .mime_tree import ContentTreeBuilder
from .models import MessageMetadata
from .pipeline import DocumentPipeline
from .processed_log import ProcessedLog
from .utils import sha256_hex

logger = logging.getLogger(__name__)


class Mailbox(Protocol):
    def iter_unread(self, recipient: str, max_messages: int | None = None): ...

    def fetch_mime(self, message_id: str) -> bytes: ...

    def send_mail(self, to: str, subject: str, body: str) -> None: ...

    def mark_read(self, message_id: str) -> None: ...

    def trash(self, message_id: str) -> None: ...


class InboxProcessor:
    """Turn every unread task mail into one forwarded document."""

    def __init__(
        self,
        mailbox: Mailbox,
        pipeline: DocumentPipeline,
        builder: ContentTreeBuilder,
        ledger: ProcessedLog,
        outgoing_email: str,
        dry_run: bool = False,
    ) -> None:
        self.mailbox = mailbox
        self.pipeline = pipeline
        self.builder = builder
        self.ledger = ledger
        self.outgoing_email = outgoing_email
        self.dry_run = dry_run

    def run(self, incoming_email: str, max_messages: int | None = None) -> dict[str, int]:
        stats = {"found": 0, "forwarded": 0, "skipped": 0, "failed": 0}

        for message in self.mailbox.iter_unread(incoming_email, max_messages=max_messages):
            stats["found"] += 1

            if self.ledger.seen(message.message_id):
                logger.info(
                    "Message %s was already forwarded; finishing cleanup only", message.message_id
                )
                if not self.dry_run:
                    self._mark_handled(message)
                stats["skipped"] += 1
                continue

            try:
                body = self._render(message)
            except MESSAGE_FATAL_ERRORS:
                logger.exception(
                    "Failed to process message %s (\"%s\"); leaving it unread for a later run",
                    message.message_id,
                    message.subject,
                )
                stats["failed"] += 1
                continue

            if self.dry_run:
                logger.info(
                    "[DRY-RUN] Would send '%s' to %s:\n%s", message.subject, self.outgoing_email, body
                )
                continue

            self.mailbox.send_mail(self.outgoing_email, message.subject, body)
            self.ledger.record(
                message_id=message.message_id,
                internet_message_id=message.internet_message_id,
                subject=message.subject,
                body_sha256=sha256_hex(body.encode("utf-8")),
            )
            self._mark_handled(message)
            stats["forwarded"] += 1
            logger.info("Processed message %s (\"%s\")", message.message_id, message.subject)

        if not stats["found"]:
            logger.info("No messages found that require processing")
        return stats

    def _render(self, message: MessageMetadata) -> str:
        raw = self.mailbox.fetch_mime(message.message_id)
        root = self.builder.build(raw)
        if not self.dry_run:
            return self.pipeline.process(message.message_id, root)
        # Dry runs must not claim attachment names in the real storage directory.
        with tempfile.TemporaryDirectory(prefix="mailto-things-dry-run-") as scratch:
            return self.pipeline.with_attachments_dir(Path(scratch)).process(message.message_id, root)

    def _mark_handled(self, message: MessageMetadata) -> None:
        self.mailbox.mark_read(message.message_id)
        self.mailbox.trash(message.message_id)
