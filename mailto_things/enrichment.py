"""Optional OCR enrichment for image attachments."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional, Protocol

import pytesseract
from PIL import Image, UnidentifiedImageError

from .errors import EnrichmentFailed

logger = logging.getLogger(__name__)

_MULTI_NEWLINES = re.compile(r"[\r\n]+")
_MULTI_SPACES = re.compile(r" +")


class Enricher(Protocol):
    def enrich(self, path: Path, content_type: str) -> Optional[str]:
        ...


def normalize_ocr_text(text: str) -> str:
    """Collapse blank lines and repeated spaces produced by OCR."""
    text = _MULTI_NEWLINES.sub("\n", text)
    text = _MULTI_SPACES.sub(" ", text)
    return text.strip()


class NullEnricher:
    """Used when OCR is disabled."""

    def enrich(self, path: Path, content_type: str) -> Optional[str]:
        return None


class TesseractEnricher:
    """Recognize text in images with Tesseract."""

    def __init__(self, languages: str = "eng") -> None:
        self.languages = languages

    def enrich(self, path: Path, content_type: str) -> Optional[str]:
        if not content_type.lower().startswith("image/"):
            return None
        try:
            with Image.open(path) as image:
                raw = pytesseract.image_to_string(image, lang=self.languages)
        except (pytesseract.TesseractNotFoundError, RuntimeError) as exc:
            # TesseractError and pytesseract's timeout are both RuntimeErrors.
            raise EnrichmentFailed(f"Tesseract failed on {path}: {exc}") from exc
        except (OSError, UnidentifiedImageError, Image.DecompressionBombError) as exc:
            raise EnrichmentFailed(f"Could not read image {path}: {exc}") from exc

        text = normalize_ocr_text(raw)
        if not text:
            logger.debug("No text recognized in %s", path)
            return None
        return text


def build_enricher(enabled: bool, languages: str = "eng") -> Enricher:
    if enabled:
        return TesseractEnricher(languages)
    return NullEnricher()


def enrichment_block(text: str) -> str:
    return f"\n\n[Image text]\n{text}\n\n"
