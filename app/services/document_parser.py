"""
Document ingestion for uploaded PRDs (PDF, DOCX, plain text / Markdown).

Turns raw upload bytes into an immutable PRDDocument: text is extracted,
control characters are stripped and the document is tagged with a coarse
source type.  PDF headings (detected by font size) and DOCX heading styles are
rendered as Markdown ``#`` lines so section metadata works the same for every
format.  Image-only PDF pages fall back to Tesseract OCR.
"""
from __future__ import annotations

import io
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import fitz  # PyMuPDF
import pytesseract
from docx import Document as DocxDocument
from PIL import Image

from app.config import settings
from app.models.schemas import PRDDocument, SourceType
from app.utils.helpers import generate_id, strip_control_chars

logger = logging.getLogger(__name__)


class DocumentIngestionError(ValueError):
    """Unreadable or empty upload."""


class UnsupportedFileTypeError(DocumentIngestionError):
    """File extension or MIME type the ingestor cannot handle."""


_EXTENSION_TYPES: Dict[str, SourceType] = {
    ".pdf": SourceType.PDF,
    ".docx": SourceType.DOCX,
    ".txt": SourceType.TEXT,
    ".md": SourceType.TEXT,
    ".markdown": SourceType.TEXT,
}

_DOCX_HEADING_STYLES: Dict[str, int] = {
    "title": 1,
    "heading 1": 1,
    "heading 2": 2,
    "heading 3": 3,
    "heading 4": 3,
    "subtitle": 2,
}


class DocumentIngestor:
    """Parses uploaded files into PRDDocument objects."""

    def __init__(self) -> None:
        if settings.TESSERACT_CMD:
            pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD

    async def ingest(
        self,
        filename: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> PRDDocument:
        """
        Parse an upload and return a PRDDocument.

        Args:
            filename:     Original file name (used for display and type detection).
            data:         Raw file bytes.
            content_type: Optional MIME type reported by the client.

        Raises:
            UnsupportedFileTypeError: unknown extension or MIME type.
            DocumentIngestionError: unreadable file or no extractable text.
        """
        source_type = self.detect_source_type(filename, content_type)

        if source_type == SourceType.PDF:
            text = await self._parse_pdf(data)
        elif source_type == SourceType.DOCX:
            text = await self._parse_docx(data)
        else:
            text = _decode_text(data)

        text = strip_control_chars(text).strip()
        if not text:
            raise DocumentIngestionError("Document contains no extractable text.")

        document = PRDDocument(
            id=generate_id(),
            name=filename,
            content=text,
            source_type=source_type,
            size_bytes=len(data),
            uploaded_at=datetime.now(timezone.utc),
            metadata=extract_metadata(text),
        )
        logger.info(
            "Ingested %r as %s (%d bytes, %d words)",
            filename,
            source_type.value,
            document.size_bytes,
            document.metadata["word_count"],
        )
        return document

    @staticmethod
    def detect_source_type(filename: str, content_type: Optional[str] = None) -> SourceType:
        """Map a file name (or, failing that, a MIME type) to a SourceType."""
        ext = Path(filename or "").suffix.lower()
        if ext in _EXTENSION_TYPES and ext in settings.SUPPORTED_FILE_TYPES:
            return _EXTENSION_TYPES[ext]

        mime = (content_type or "").lower()
        if not ext:
            if mime == "application/pdf":
                return SourceType.PDF
            if "wordprocessingml" in mime:
                return SourceType.DOCX
            if mime.startswith("text/"):
                return SourceType.TEXT

        raise UnsupportedFileTypeError(
            f"Unsupported file type '{ext or mime or 'unknown'}'. "
            f"Accepted: {', '.join(settings.SUPPORTED_FILE_TYPES)}"
        )

    # ------------------------------------------------------------------
    # PDF
    # ------------------------------------------------------------------

    async def _parse_pdf(self, data: bytes) -> str:
        """Extract PDF text, marking large-font lines as headings."""
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:
            raise DocumentIngestionError(f"Cannot open PDF file: {exc}") from exc

        try:
            if doc.needs_pass:
                raise DocumentIngestionError(
                    "PDF is password-protected. Please provide an unlocked copy."
                )

            # Pass 1: the modal span size is the body font
            font_sizes: List[float] = []
            for page in doc:
                for line in _pdf_lines(page):
                    font_sizes.extend(s for _, s, _ in line if s > 0)
            body_size = _modal_font_size(font_sizes) if font_sizes else 11.0
            heading_threshold = body_size * 1.15

            # Pass 2: text with Markdown-style headings
            page_texts: List[str] = []
            for page in doc:
                lines: List[str] = []
                for line in _pdf_lines(page):
                    text = " ".join(t for t, _, _ in line).strip()
                    if not text or re.match(r"^\d{1,4}$", text):
                        continue
                    max_size = max(s for _, s, _ in line)
                    is_bold = any(bold for _, _, bold in line)
                    if max_size >= heading_threshold or (
                        is_bold and max_size >= body_size and len(text.split()) <= 15
                    ):
                        level = _estimate_heading_level(max_size, body_size)
                        lines.append(f"{'#' * level} {text}")
                    else:
                        lines.append(text)

                if not lines:
                    ocr = self._ocr_page(page)
                    if ocr.strip():
                        lines.append(ocr.strip())
                page_texts.append("\n".join(lines))
        finally:
            doc.close()

        return "\n\n".join(t for t in page_texts if t)

    def _ocr_page(self, page: "fitz.Page") -> str:
        """Render an image-only page at 2× scale and run Tesseract OCR."""
        try:
            pix = page.get_pixmap(matrix=fitz.Matrix(2, 2))
            img = Image.open(io.BytesIO(pix.tobytes("png")))
            return pytesseract.image_to_string(img)
        except Exception as exc:
            logger.warning("Full-page OCR failed on page %d: %s", page.number + 1, exc)
            return ""

    # ------------------------------------------------------------------
    # DOCX
    # ------------------------------------------------------------------

    async def _parse_docx(self, data: bytes) -> str:
        """Extract DOCX paragraphs (headings as Markdown) and tables."""
        try:
            doc = DocxDocument(io.BytesIO(data))
        except Exception as exc:
            raise DocumentIngestionError(f"Cannot open DOCX file: {exc}") from exc

        parts: List[str] = []
        for para in doc.paragraphs:
            text = para.text.strip()
            if not text:
                continue
            style_name = para.style.name.lower() if para.style and para.style.name else ""
            level = _DOCX_HEADING_STYLES.get(style_name, 0)
            parts.append(f"{'#' * level} {text}" if level else text)

        for table in doc.tables:
            rows: List[str] = []
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells]
                if any(cells):
                    rows.append(" | ".join(cells))
            if rows:
                parts.append("\n".join(rows))

        return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

_HEADING_LINE = re.compile(r"^#{1,3}\s+")
_USER_TYPE = re.compile(r"\b\w+\s+user\b", re.IGNORECASE)


def extract_metadata(content: str) -> Dict[str, Any]:
    """Section headings, ``<x> user`` mentions and word count of *content*."""
    sections: List[str] = []
    user_types: List[str] = []

    for line in strip_control_chars(content).splitlines():
        trimmed = line.strip()
        if _HEADING_LINE.match(trimmed):
            sections.append(_HEADING_LINE.sub("", trimmed))
        lowered = trimmed.lower()
        if "user" in lowered or "customer" in lowered:
            match = _USER_TYPE.search(trimmed)
            if match and match.group(0) not in user_types:
                user_types.append(match.group(0))

    return {
        "sections": sections,
        "user_types": user_types,
        "word_count": len(content.split()),
    }


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

def _decode_text(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def _pdf_lines(page: "fitz.Page") -> List[List[tuple]]:
    """Text lines of a page as lists of (text, size, is_bold) spans."""
    lines: List[List[tuple]] = []
    for block in page.get_text("dict")["blocks"]:
        if block.get("type") != 0:
            continue
        for line in block.get("lines", []):
            spans = [
                (span.get("text", ""), span.get("size", 0.0), bool(span.get("flags", 0) & 16))
                for span in line.get("spans", [])
                if span.get("text", "").strip()
            ]
            if spans:
                lines.append(spans)
    return lines


def _modal_font_size(sizes: List[float]) -> float:
    """Return the most frequently occurring font size (proxy for body text)."""
    rounded = [round(s, 1) for s in sizes]
    freq: Dict[float, int] = {}
    for s in rounded:
        freq[s] = freq.get(s, 0) + 1
    return max(freq, key=lambda k: freq[k])


def _estimate_heading_level(span_size: float, body_size: float) -> int:
    """Map a span's font-size ratio to an H1/H2/H3 level."""
    ratio = span_size / body_size if body_size > 0 else 1.0
    if ratio >= 1.5:
        return 1
    if ratio >= 1.25:
        return 2
    return 3
