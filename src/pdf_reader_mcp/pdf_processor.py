"""
Core PDF processing logic.

Wraps pypdf (document structure, metadata, encryption) and pdfplumber (text)
behind validated paths. Library calls run in worker threads, bounded by a
concurrency ceiling and a timeout. A timed-out call is abandoned by the caller
but its thread keeps running until the library returns.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

try:
    import pdfplumber
    from pypdf import PasswordType, PdfReader
except ImportError as e:
    raise ImportError(f"Required PDF processing library not installed: {e}")

from .config import ServerConfig
from .errors import ErrorKind, PDFReaderError, ProcessingTimeoutError, classify_error
from .pages import parse_page_range
from .safety import ValidatedPath, validate_pdf_file

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PDF_VERSION = "1.4"
OUTPUT_FORMATS = ("text", "structured")
_WHITESPACE_RE = re.compile(r"\s+")

_METADATA_STRING_FIELDS = ("title", "author", "subject", "creator", "producer")
_METADATA_DATE_FIELDS = ("creation_date", "modification_date")


@dataclass
class DocumentInfo:
    """Structural facts read from a PDF by pypdf."""

    pdf_version: str
    is_encrypted: bool
    is_readable: bool
    page_count: Optional[int] = None
    metadata: Dict[str, str] = field(default_factory=dict)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def count_words(text: str) -> int:
    return len(text.split())


def _clean_string(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def _metadata_date(doc_info: Any, attr: str) -> Optional[str]:
    # pypdf parses PDF date strings lazily and raises on malformed ones.
    try:
        value = getattr(doc_info, attr)
    except (ValueError, TypeError):
        return None
    return value.isoformat() if isinstance(value, datetime) else None


def _pdf_version(reader: PdfReader) -> str:
    header = reader.pdf_header or ""
    version = header.replace("%PDF-", "").strip()
    return version or DEFAULT_PDF_VERSION


def read_document_info(path: Path) -> DocumentInfo:
    """Read version, encryption state, page count and document info."""
    reader = PdfReader(str(path))
    info = DocumentInfo(
        pdf_version=_pdf_version(reader),
        is_encrypted=reader.is_encrypted,
        is_readable=True,
    )

    if reader.is_encrypted and reader.decrypt("") == PasswordType.NOT_DECRYPTED:
        info.is_readable = False
        return info

    info.page_count = len(reader.pages)

    doc_info = reader.metadata
    if doc_info is not None:
        for name in _METADATA_STRING_FIELDS:
            value = _clean_string(getattr(doc_info, name, None))
            if value is not None:
                info.metadata[name] = value
        for name in _METADATA_DATE_FIELDS:
            value = _metadata_date(doc_info, name)
            if value is not None:
                info.metadata[name] = value

    return info


def _require_readable(info: DocumentInfo) -> None:
    if not info.is_readable:
        raise PDFReaderError(
            ErrorKind.PROCESSING_ERROR, "PDF is encrypted and cannot be read without a password"
        )


def extract_page_texts(path: Path, page_range: Optional[str]) -> Tuple[int, List[Tuple[int, str]]]:
    """Return ``(total_pages, [(page_number, text), ...])`` for the requested pages.

    Page numbers are resolved against the real page count, so the range is
    parsed only after the document is open.
    """
    with pdfplumber.open(path) as pdf:
        total_pages = len(pdf.pages)
        page_numbers = parse_page_range(page_range, total_pages)
        texts = []
        for page_num in page_numbers:
            page = pdf.pages[page_num - 1]  # Convert to 0-indexed
            texts.append((page_num, page.extract_text() or ""))
        return total_pages, texts


def extract_page_contents(path: Path, page_range: str, output_format: str) -> List[Dict[str, Any]]:
    """Extract per-page content; a failing page is reported inline."""
    pages: List[Dict[str, Any]] = []
    with pdfplumber.open(path) as pdf:
        page_numbers = parse_page_range(page_range, len(pdf.pages))
        for page_num in page_numbers:
            try:
                raw = (pdf.pages[page_num - 1].extract_text() or "").strip()
                content = raw if output_format == "structured" else collapse_whitespace(raw)
                pages.append({
                    "page_number": page_num,
                    "content": content,
                    "word_count": count_words(content),
                })
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.warning(f"Text extraction failed for page {page_num}: {e}")
                pages.append({
                    "page_number": page_num,
                    "content": f"Error extracting page {page_num}: {e}",
                    "word_count": 0,
                })
    return pages


class PDFProcessor:
    """PDF extraction service operating on validated paths only."""

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self._semaphore = asyncio.Semaphore(self.config.concurrent_processing_limit)

    async def validate_path(self, file_path: str) -> ValidatedPath:
        return await asyncio.to_thread(validate_pdf_file, file_path, self.config)

    async def run_limited(self, func: Callable[..., T], *args: Any) -> T:
        """
        Run a blocking library call in a worker thread.

        Calls beyond the concurrency limit wait for a free slot. The timeout
        covers the library call only, not the wait.

        Raises:
            ProcessingTimeoutError: If the call exceeds the configured timeout
        """
        async with self._semaphore:
            try:
                return await asyncio.wait_for(
                    asyncio.to_thread(func, *args),
                    timeout=self.config.processing_timeout_s,
                )
            except asyncio.TimeoutError as e:
                logger.error(f"Processing exceeded {self.config.processing_timeout_ms}ms, abandoning call")
                raise ProcessingTimeoutError(self.config.processing_timeout_ms) from e

    def _metadata_payload(self, info: DocumentInfo, validated: ValidatedPath) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(info.metadata)
        payload.update({
            "page_count": info.page_count,
            "pdf_version": info.pdf_version,
            "file_size_bytes": validated.size_bytes,
        })
        return payload

    async def extract_text(self, file_path: str, pages: Optional[str] = "all",
                           preserve_formatting: bool = True,
                           include_metadata: bool = False) -> Dict[str, Any]:
        """
        Extract text from the requested pages of a PDF.

        Args:
            file_path: Path to PDF file
            pages: Page range expression, ``"all"`` by default
            preserve_formatting: Keep line breaks and spacing as extracted
            include_metadata: Add document metadata to the result

        Returns:
            Dictionary with text, page_count, optional metadata and timing
        """
        start = time.perf_counter()
        validated = await self.validate_path(file_path)

        info = await self.run_limited(read_document_info, validated.resolved)
        _require_readable(info)

        total_pages, texts = await self.run_limited(extract_page_texts, validated.resolved, pages)
        text = "\n\n".join(t for _, t in texts)
        if not preserve_formatting:
            text = collapse_whitespace(text)

        result: Dict[str, Any] = {
            "text": text,
            "page_count": total_pages,
        }
        if include_metadata:
            result["metadata"] = self._metadata_payload(info, validated)
        result["processing_time_ms"] = int((time.perf_counter() - start) * 1000)
        return result

    async def extract_metadata(self, file_path: str) -> Dict[str, Any]:
        """Extract document metadata without processing page content."""
        validated = await self.validate_path(file_path)
        info = await self.run_limited(read_document_info, validated.resolved)
        _require_readable(info)
        return self._metadata_payload(info, validated)

    async def extract_pages(self, file_path: str, page_range: str,
                            output_format: str = "text") -> Dict[str, Any]:
        """
        Extract content page by page.

        Args:
            file_path: Path to PDF file
            page_range: Page range expression (e.g. ``"1-3,5"`` or ``"all"``)
            output_format: ``"text"`` collapses whitespace, ``"structured"``
                keeps line structure

        Returns:
            Dictionary with per-page content and the number of pages extracted
        """
        if output_format not in OUTPUT_FORMATS:
            raise PDFReaderError(
                ErrorKind.INVALID_ARGUMENTS,
                f"output_format must be one of: {', '.join(OUTPUT_FORMATS)}",
            )

        validated = await self.validate_path(file_path)
        info = await self.run_limited(read_document_info, validated.resolved)
        _require_readable(info)

        pages = await self.run_limited(extract_page_contents, validated.resolved, page_range, output_format)
        return {
            "pages": pages,
            "total_pages_extracted": len(pages),
        }

    async def validate(self, file_path: str) -> Dict[str, Any]:
        """
        Check integrity and readability of a PDF.

        Never raises for a bad file; failures are reported in the result.
        """
        validated: Optional[ValidatedPath] = None
        try:
            validated = await self.validate_path(file_path)
            info = await self.run_limited(read_document_info, validated.resolved)
        except Exception as e:  # pylint: disable=broad-exception-caught
            classified = classify_error(e)
            if validated is not None:
                size = validated.size_bytes
            else:
                size = getattr(e, "size_bytes", None) or 0
            return {
                "is_valid": False,
                "is_encrypted": False,
                "is_readable": False,
                "error_message": classified["message"],
                "file_size_bytes": size,
            }

        result: Dict[str, Any] = {
            "is_valid": True,
            "pdf_version": info.pdf_version,
            "is_encrypted": info.is_encrypted,
            "is_readable": info.is_readable,
        }
        if info.page_count is not None:
            result["page_count"] = info.page_count
        else:
            result["error_message"] = "PDF is encrypted and cannot be read without a password"
        result["file_size_bytes"] = validated.size_bytes
        return result
