"""
Safety validation and file guards for PDF Reader MCP Server.

Every file path supplied by a client passes through ``validate_file_path``
before the filesystem is touched for anything other than an ``lstat``, and
through ``validate_pdf_file`` before any PDF library sees it.

Rejections caused by the shape of the path all raise the same
``SECURITY_VIOLATION`` with one generic message, so a client cannot learn
which rule matched by trying different inputs.
"""

from __future__ import annotations

import logging
import os
import re
import stat
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote_to_bytes

from .config import ServerConfig
from .errors import ErrorKind, PDFReaderError

logger = logging.getLogger(__name__)

SECURITY_VIOLATION_MESSAGE = "Invalid file path: access denied for security reasons"
PDF_MAGIC = b"%PDF"

_TRAVERSAL_MARKERS = ("..", "./", ".\\", "~")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_BAD_PERCENT_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_DRIVE_PREFIX_RE = re.compile(r"^[A-Za-z]:")
_WINDOWS_ABSOLUTE_RE = re.compile(r"^[A-Za-z]:[\\/]")
_SEPARATORS_RE = re.compile(r"[\\/]+")
_MAX_DECODE_ROUNDS = 3

WINDOWS_RESERVED_NAMES = frozenset(
    {"CON", "PRN", "AUX", "NUL"}
    | {f"COM{i}" for i in range(1, 10)}
    | {f"LPT{i}" for i in range(1, 10)}
)

SENSITIVE_PATH_FRAGMENTS = (
    "/etc/",
    "/root/",
    "/proc/",
    "/dev/",
    "/sys/",
    "/var/log/",
    "c:\\windows\\",
)


@dataclass(frozen=True, slots=True)
class ValidatedPath:
    """A file path that passed every safety check.

    ``path`` is the candidate exactly as the caller supplied it; ``resolved``
    is the absolute location used for I/O.
    """

    path: str
    resolved: Path
    size_bytes: int

    def __str__(self) -> str:
        return self.path


def _reject() -> PDFReaderError:
    return PDFReaderError(ErrorKind.SECURITY_VIOLATION, SECURITY_VIOLATION_MESSAGE)


def _has_traversal(value: str) -> bool:
    return any(marker in value for marker in _TRAVERSAL_MARKERS)


def _has_hidden_chars(value: str) -> bool:
    if _CONTROL_CHARS_RE.search(value):
        return True
    # Zero-width, BOM and bidi overrides render invisibly; lone surrogates
    # cannot be encoded for the filesystem.
    return any(ch == "\u034f" or unicodedata.category(ch) in ("Cf", "Cs") for ch in value)


def _decode_uri_component(value: str) -> str:
    """Strict percent-decoding; raises ValueError on malformed input."""
    if _BAD_PERCENT_RE.search(value):
        raise ValueError("malformed percent escape")
    return unquote_to_bytes(value).decode("utf-8")


def _has_encoded_traversal(value: str) -> bool:
    current = value
    for _ in range(_MAX_DECODE_ROUNDS):
        if "%" not in current:
            return False
        try:
            current = _decode_uri_component(current)
        except ValueError:
            return True
        if _has_traversal(current) or _has_hidden_chars(current):
            return True
    return False


def _is_reserved_device_name(value: str) -> bool:
    basename = _SEPARATORS_RE.split(value)[-1]
    stem = basename.split(".", 1)[0].strip().upper()
    return stem in WINDOWS_RESERVED_NAMES


def _is_absolute(value: str) -> bool:
    return value.startswith("/") or value.startswith("\\\\") or bool(_WINDOWS_ABSOLUTE_RE.match(value))


def _is_sensitive_absolute(value: str) -> bool:
    if not _is_absolute(value):
        return False
    lowered = value.lower()
    forms = {lowered, lowered.replace("\\", "/"), lowered.replace("/", "\\")}
    return any(fragment in form for form in forms for fragment in SENSITIVE_PATH_FRAGMENTS)


def _has_alternate_data_stream(value: str) -> bool:
    if value.startswith("/"):
        return False
    rest = value[2:] if _DRIVE_PREFIX_RE.match(value) else value
    return ":" in rest


def _exceeds_limits(value: str, config: ServerConfig) -> bool:
    if len(value) > config.max_path_length:
        return True
    segments = [s for s in _SEPARATORS_RE.split(value) if s]
    return len(segments) > config.max_path_depth


def validate_file_path(file_path: str, config: ServerConfig | None = None) -> ValidatedPath:
    """
    Validate a client-supplied file path.

    Args:
        file_path: Raw path string from the tool arguments
        config: Limits to enforce; defaults to ``ServerConfig()``

    Returns:
        ValidatedPath for an existing regular file within the size limit

    Raises:
        PDFReaderError: INVALID_PATH, SECURITY_VIOLATION, FILE_NOT_FOUND,
            NOT_A_FILE or FILE_TOO_LARGE
    """
    config = config or ServerConfig()

    if not isinstance(file_path, str) or not file_path.strip():
        raise PDFReaderError(ErrorKind.INVALID_PATH, "File path must be a non-empty string")

    shape_checks = (
        _has_traversal,
        _has_hidden_chars,
        _has_encoded_traversal,
        _is_reserved_device_name,
        _is_sensitive_absolute,
        _has_alternate_data_stream,
    )
    for check in shape_checks:
        if check(file_path):
            logger.debug("Path rejected by %s", check.__name__)
            raise _reject()
    if _exceeds_limits(file_path, config):
        logger.debug("Path rejected by length/depth limits")
        raise _reject()

    absolute = Path(os.path.abspath(file_path))
    try:
        st = os.lstat(absolute)
    except OSError as exc:
        raise PDFReaderError(ErrorKind.FILE_NOT_FOUND, "File not found or inaccessible") from exc
    except ValueError as exc:
        # Not representable as a filesystem path.
        logger.debug("Path rejected: %s", type(exc).__name__)
        raise _reject() from exc

    if stat.S_ISLNK(st.st_mode):
        logger.debug("Path rejected: symbolic link")
        raise _reject()
    if not stat.S_ISREG(st.st_mode):
        raise PDFReaderError(ErrorKind.NOT_A_FILE, "Path does not point to a file")
    if st.st_size > config.max_file_size:
        raise PDFReaderError(
            ErrorKind.FILE_TOO_LARGE,
            f"File size {st.st_size} exceeds maximum allowed size {config.max_file_size}",
            size_bytes=st.st_size,
        )

    return ValidatedPath(path=file_path, resolved=absolute, size_bytes=st.st_size)


def validate_pdf_file(file_path: str, config: ServerConfig | None = None) -> ValidatedPath:
    """
    Validate a path and confirm the file starts with the PDF signature.

    Only the first four bytes are checked; structural validity is left to the
    PDF library.

    Raises:
        PDFReaderError: any ``validate_file_path`` kind, INVALID_PDF or READ_ERROR
    """
    validated = validate_file_path(file_path, config)

    try:
        with open(validated.resolved, "rb") as fh:
            header = fh.read(len(PDF_MAGIC))
    except OSError as exc:
        raise PDFReaderError(
            ErrorKind.READ_ERROR, "Error reading PDF file", size_bytes=validated.size_bytes
        ) from exc

    if len(header) < len(PDF_MAGIC):
        raise PDFReaderError(
            ErrorKind.INVALID_PDF, "File is too small to be a valid PDF", size_bytes=validated.size_bytes
        )
    if header != PDF_MAGIC:
        raise PDFReaderError(
            ErrorKind.INVALID_PDF,
            "File does not appear to be a PDF (invalid magic number)",
            size_bytes=validated.size_bytes,
        )

    return validated
