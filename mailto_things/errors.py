"""Failure conditions raised while turning a message into a task document."""

from __future__ import annotations


class MailtoThingsError(Exception):
    """Base class for pipeline failures."""


class UnsupportedContentKind(MailtoThingsError):
    """No extraction strategy is registered for a markup content type.

    Recoverable: the node is skipped and the walk continues.
    """

    def __init__(self, content_type: str) -> None:
        super().__init__(f"No extraction strategy registered for '{content_type}'")
        self.content_type = content_type


class ExtractionFailed(MailtoThingsError):
    """A registered strategy could not turn its bytes into text. Aborts the message."""


class MaterializationFailed(MailtoThingsError):
    """An attachment could not be written to storage. Aborts the message."""


class EnrichmentFailed(MailtoThingsError):
    """OCR of an image attachment failed. The attachment is still linked."""


# Failures that must leave the source message untouched for a later run.
MESSAGE_FATAL_ERRORS = (ExtractionFailed, MaterializationFailed)
