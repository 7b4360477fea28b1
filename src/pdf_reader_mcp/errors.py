"""Error taxonomy and classification for PDF Reader MCP Server.

Every failure inside the server is raised as a ``PDFReaderError`` carrying an
``ErrorKind``. At the tool boundary ``classify_error`` turns any raised value
into a stable, JSON-RPC style error object so that no exception ever reaches
the transport as a bare traceback.
"""

from __future__ import annotations

import errno
import logging
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

# Upper bound for free-form error detail returned to clients.
MAX_DETAIL_CHARS = 200
MAX_OUTPUT_PATH_CHARS = 255


class ErrorKind(str, Enum):
    """Internal failure kinds."""

    INVALID_PATH = "INVALID_PATH"
    SECURITY_VIOLATION = "SECURITY_VIOLATION"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    NOT_A_FILE = "NOT_A_FILE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    INVALID_PDF = "INVALID_PDF"
    READ_ERROR = "READ_ERROR"
    INVALID_PAGE_RANGE = "INVALID_PAGE_RANGE"
    INVALID_PAGE_NUMBER = "INVALID_PAGE_NUMBER"
    INVALID_ARGUMENTS = "INVALID_ARGUMENTS"
    PROCESSING_TIMEOUT = "PROCESSING_TIMEOUT"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class PDFReaderError(Exception):
    """Base exception for all classified failures.

    ``size_bytes`` is set when the file was stat'ed before the failure.
    """

    def __init__(self, kind: ErrorKind, message: str, size_bytes: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.size_bytes = size_bytes


class ProcessingTimeoutError(PDFReaderError):
    """Raised when a library call does not finish within the configured time."""

    def __init__(self, timeout_ms: int):
        super().__init__(ErrorKind.PROCESSING_TIMEOUT, f"Processing timeout after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class ConfigError(PDFReaderError):
    """Raised when host configuration is invalid."""

    def __init__(self, message: str):
        super().__init__(ErrorKind.INVALID_ARGUMENTS, message)


# kind -> (JSON-RPC code, error_type)
_KIND_TABLE: dict[ErrorKind, tuple[int, str]] = {
    ErrorKind.INVALID_PATH: (-32602, "VALIDATION_ERROR"),
    ErrorKind.SECURITY_VIOLATION: (-32602, "VALIDATION_ERROR"),
    ErrorKind.INVALID_ARGUMENTS: (-32602, "VALIDATION_ERROR"),
    ErrorKind.FILE_NOT_FOUND: (-32603, "FILE_ERROR"),
    ErrorKind.FILE_TOO_LARGE: (-32604, "SIZE_ERROR"),
    ErrorKind.INVALID_PDF: (-32605, "FORMAT_ERROR"),
    ErrorKind.INVALID_PAGE_RANGE: (-32602, "VALIDATION_ERROR"),
    ErrorKind.INVALID_PAGE_NUMBER: (-32602, "VALIDATION_ERROR"),
    ErrorKind.NOT_A_FILE: (-32603, "VALIDATION_ERROR"),
    ErrorKind.READ_ERROR: (-32603, "VALIDATION_ERROR"),
    ErrorKind.PROCESSING_TIMEOUT: (-32603, "TIMEOUT_ERROR"),
    ErrorKind.PROCESSING_ERROR: (-32603, "PROCESSING_ERROR"),
    ErrorKind.UNKNOWN_ERROR: (-32603, "UNKNOWN_ERROR"),
}

_CLIENT_ERROR_TYPES = {"VALIDATION_ERROR", "FILE_ERROR", "SIZE_ERROR", "FORMAT_ERROR"}


def sanitize_path_for_output(file_path: str) -> str:
    """Return a copy of a caller-supplied path that is safe to echo back.

    Control and format characters are dropped and the length is capped.
    """
    cleaned = "".join(
        ch for ch in file_path if ch.isprintable() and not (0x7F <= ord(ch) <= 0x9F)
    )
    return cleaned[:MAX_OUTPUT_PATH_CHARS]


def create_mcp_error(
    code: int,
    message: str,
    error_type: str,
    file_path: str | None = None,
    details: str | None = None,
) -> dict[str, Any]:
    """Build a structured protocol error object."""
    data: dict[str, Any] = {"error_type": error_type}
    if file_path:
        data["file_path"] = sanitize_path_for_output(file_path)
    if details:
        data["details"] = details[:MAX_DETAIL_CHARS]
    return {"code": code, "message": message, "data": data}


def _system_error(error: BaseException) -> tuple[str, str] | None:
    """Match OS-level failures by errno or by their symbolic name in the text."""
    code = getattr(error, "errno", None)
    text = str(error)
    if code == errno.ENOENT or "ENOENT" in text:
        return "File not found", "FILE_ERROR"
    if code == errno.EACCES or "EACCES" in text:
        return "Permission denied", "PERMISSION_ERROR"
    if code in (errno.EMFILE, errno.ENFILE) or "EMFILE" in text or "ENFILE" in text:
        return "Too many open files", "RESOURCE_ERROR"
    return None


def classify_error(error: Any, file_path: str | None = None) -> dict[str, Any]:
    """Map any raised value onto the external error taxonomy.

    Never raises.
    """
    if isinstance(error, PDFReaderError):
        code, error_type = _KIND_TABLE.get(error.kind, (-32603, "VALIDATION_ERROR"))
        result = create_mcp_error(code, error.message, error_type, file_path)
    elif isinstance(error, BaseException):
        matched = _system_error(error)
        if matched is not None:
            message, error_type = matched
            code = -32604 if error_type == "RESOURCE_ERROR" else -32603
            result = create_mcp_error(code, message, error_type, file_path)
        else:
            message = str(error) or type(error).__name__
            details = f"{type(error).__name__}: {error}"
            result = create_mcp_error(-32603, message, "PROCESSING_ERROR", file_path, details)
    else:
        result = create_mcp_error(-32603, "Unknown error occurred", "UNKNOWN_ERROR", file_path)

    error_type = result["data"]["error_type"]
    if error_type in _CLIENT_ERROR_TYPES:
        logger.warning("Request rejected [%s]: %s", error_type, result["message"])
    else:
        logger.error("Request failed [%s]: %s", error_type, result["message"])
    return result


def success_result(data: Any) -> dict[str, Any]:
    """Build a standard tool success envelope."""
    return {"ok": True, "data": data}


def error_result(mcp_error: dict[str, Any]) -> dict[str, Any]:
    """Build a standard tool error envelope from a classified error."""
    return {"ok": False, **mcp_error}
