"""Content-type keyed strategies that turn raw part bytes into document text."""

from __future__ import annotations

import logging
from typing import Callable, Dict

import html2text

from .errors import ExtractionFailed, UnsupportedContentKind

logger = logging.getLogger(__name__)

Strategy = Callable[[bytes, str], str]


def _normalize_tag(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def plain_text(data: bytes, charset: str) -> str:
    """Identity strategy: decode and pass through."""
    return data.decode(charset or "utf-8")


def html_to_text(data: bytes, charset: str) -> str:
    """Flatten HTML into readable text, keeping links and image sources as references."""
    converter = html2text.HTML2Text()
    converter.ignore_links = False
    converter.ignore_images = False
    converter.ignore_emphasis = False
    converter.body_width = 0  # Don't wrap lines
    return converter.handle(data.decode(charset or "utf-8")).strip()


class ExtractionRegistry:
    """Map content-type tags to extraction strategies."""

    def __init__(self) -> None:
        self._strategies: Dict[str, Strategy] = {}

    def register(self, content_type: str, strategy: Strategy) -> None:
        tag = _normalize_tag(content_type)
        if tag in self._strategies:
            logger.debug("Replacing extraction strategy for %s", tag)
        self._strategies[tag] = strategy

    def supports(self, content_type: str) -> bool:
        return _normalize_tag(content_type) in self._strategies

    def extract(self, content_type: str, data: bytes, charset: str = "utf-8") -> str:
        """Run the strategy registered for ``content_type``.

        Raises UnsupportedContentKind when nothing is registered for the tag and
        ExtractionFailed when the strategy cannot handle its input.
        """
        tag = _normalize_tag(content_type)
        strategy = self._strategies.get(tag)
        if strategy is None:
            raise UnsupportedContentKind(tag)
        try:
            return strategy(data, charset)
        except Exception as exc:
            raise ExtractionFailed(f"Could not extract text from {tag} part: {exc}") from exc


def default_registry() -> ExtractionRegistry:
    registry = ExtractionRegistry()
    registry.register("text/plain", plain_text)
    registry.register("text/html", html_to_text)
    return registry
