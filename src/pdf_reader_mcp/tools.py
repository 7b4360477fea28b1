"""
PDF extraction tools for MCP server.

Implements tool adapters that validate arguments, call the PDF processor and
wrap every outcome in a JSON envelope. Any failure is classified into a
structured error; nothing raised here reaches the transport.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from .config import ServerConfig, load_config_from_env
from .errors import ErrorKind, PDFReaderError, classify_error, error_result, success_result
from .pdf_processor import OUTPUT_FORMATS, PDFProcessor

logger = logging.getLogger(__name__)

_FILE_PATH_SCHEMA = {
    "type": "string",
    "minLength": 1,
}

# Tool metadata for MCP registration
TOOL_METADATA: dict[str, dict[str, Any]] = {
    "extract_pdf_text": {
        "description": "Extract text content from PDF documents with optional metadata and formatting preservation",
        "inputSchema": {
            "type": "object",
            "properties": {
                "file_path": {**_FILE_PATH_SCHEMA, "description": "Path to the PDF file to extract text from"},
                "pages": {
                    "type": "string",
                    "default": "all",
                    "description": 'Page range to extract (e.g., "1-5", "1,3,5", or "all")',
                },
                "preserve_formatting": {
                    "type": "boolean",
                    "default": True,
                    "description": "Whether to preserve text formatting and structure",
                },
                "include_metadata": {
                    "type": "boolean",
                    "default": False,
                    "description": "Whether to include document metadata in the response",
                },
            },
            "required": ["file_path"],
            "additionalProperties": False,
        },
    },
    "extract_pdf_metadata": {
        "description": "Extract metadata and document information from PDF files",
        "inputSchema": {
            "type": "object",
            "properties": {
                "file_path": {**_FILE_PATH_SCHEMA, "description": "Path to the PDF file to extract metadata from"},
            },
            "required": ["file_path"],
            "additionalProperties": False,
        },
    },
    "extract_pdf_pages": {
        "description": "Extract content from specific pages or page ranges of PDF documents",
        "inputSchema": {
            "type": "object",
            "properties": {
                "file_path": {**_FILE_PATH_SCHEMA, "description": "Path to the PDF file to extract pages from"},
                "page_range": {
                    "type": "string",
                    "minLength": 1,
                    "description": 'Page range to extract (e.g., "1-3", "2,4,6", or "all")',
                },
                "output_format": {
                    "type": "string",
                    "enum": list(OUTPUT_FORMATS),
                    "default": "text",
                    "description": 'Output format: "text" for plain text, "structured" for formatted text',
                },
            },
            "required": ["file_path", "page_range"],
            "additionalProperties": False,
        },
    },
    "validate_pdf": {
        "description": "Validate PDF file integrity and readability",
        "inputSchema": {
            "type": "object",
            "properties": {
                "file_path": {**_FILE_PATH_SCHEMA, "description": "Path to the PDF file to validate"},
            },
            "required": ["file_path"],
            "additionalProperties": False,
        },
    },
}

_JSON_TYPES: dict[str, type | tuple[type, ...]] = {
    "string": str,
    "boolean": bool,
    "object": dict,
    "array": list,
}


@dataclass(frozen=True, slots=True)
class Runtime:
    """Per-server dependencies shared across tool calls."""

    config: ServerConfig
    processor: PDFProcessor


_RUNTIME: Runtime | None = None


def initialize_runtime(config: ServerConfig) -> Runtime:
    """Build the runtime from an explicit configuration and cache it."""
    global _RUNTIME  # pylint: disable=global-statement
    _RUNTIME = Runtime(config=config, processor=PDFProcessor(config))
    return _RUNTIME


def initialize_runtime_from_env() -> Runtime:
    """Initialize and cache runtime from environment.

    Called at server startup (fail-fast), and can also be used lazily.
    """
    if _RUNTIME is not None:
        return _RUNTIME
    return initialize_runtime(load_config_from_env())


def _invalid(message: str) -> PDFReaderError:
    return PDFReaderError(ErrorKind.INVALID_ARGUMENTS, message)


def validate_tool_arguments(tool_name: str, arguments: dict[str, Any]) -> None:
    """Validate tool arguments against the tool's declared input schema.

    Enforces required fields, no extra properties, basic JSON types, string
    minimum length and enums. It does NOT implement full JSON Schema.
    """
    if tool_name not in TOOL_METADATA:
        raise _invalid(f"Unknown tool: {tool_name}")

    schema = TOOL_METADATA[tool_name]["inputSchema"]
    props: dict[str, Any] = schema.get("properties", {})

    file_path = arguments.get("file_path")
    if not isinstance(file_path, str) or not file_path:
        raise PDFReaderError(ErrorKind.INVALID_PATH, "File path must be a non-empty string")

    for k in schema.get("required", []):
        if k not in arguments:
            raise _invalid(f"Missing required field: {k}")

    if schema.get("additionalProperties", True) is False:
        extras = [k for k in arguments if k not in props]
        if extras:
            raise _invalid(f"Unexpected fields are not allowed: {', '.join(sorted(extras))}")

    for k, spec in props.items():
        if k not in arguments:
            continue
        v = arguments[k]
        expected = spec.get("type")
        if expected in _JSON_TYPES and not isinstance(v, _JSON_TYPES[expected]):
            article = "an" if expected[0] in "aeiou" else "a"
            raise _invalid(f"Field '{k}' must be {article} {expected}")
        min_len = spec.get("minLength")
        if isinstance(v, str) and isinstance(min_len, int) and len(v) < min_len:
            raise _invalid(f"Field '{k}' must be at least {min_len} characters")
        allowed = spec.get("enum")
        if allowed is not None and v not in allowed:
            raise _invalid(f"Field '{k}' must be one of: {', '.join(allowed)}")


async def _tool_extract_pdf_text(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    return await runtime.processor.extract_text(
        arguments["file_path"],
        pages=arguments.get("pages", "all"),
        preserve_formatting=arguments.get("preserve_formatting", True),
        include_metadata=arguments.get("include_metadata", False),
    )


async def _tool_extract_pdf_metadata(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    return await runtime.processor.extract_metadata(arguments["file_path"])


async def _tool_extract_pdf_pages(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    return await runtime.processor.extract_pages(
        arguments["file_path"],
        arguments["page_range"],
        output_format=arguments.get("output_format", "text"),
    )


async def _tool_validate_pdf(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    return await runtime.processor.validate(arguments["file_path"])


_TOOL_FUNCS: dict[str, Callable[[Runtime, dict[str, Any]], Awaitable[dict[str, Any]]]] = {
    "extract_pdf_text": _tool_extract_pdf_text,
    "extract_pdf_metadata": _tool_extract_pdf_metadata,
    "extract_pdf_pages": _tool_extract_pdf_pages,
    "validate_pdf": _tool_validate_pdf,
}


async def dispatch_tool(name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Dispatch a tool call.

    Always returns an ``ok`` envelope; failures carry the classified error.
    """
    raw_path = arguments.get("file_path") if isinstance(arguments, dict) else None
    file_path = raw_path if isinstance(raw_path, str) else None

    try:
        if not isinstance(arguments, dict):
            raise _invalid("Tool arguments must be an object")
        runtime = initialize_runtime_from_env()

        func = _TOOL_FUNCS.get(name)
        if func is None:
            raise _invalid(f"Unknown tool: {name}. Available tools: {', '.join(sorted(TOOL_METADATA))}")

        validate_tool_arguments(name, arguments)
        result = await func(runtime, arguments)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        return error_result(classify_error(exc, file_path))

    logger.info("Tool %s completed", name)
    return success_result(result)
