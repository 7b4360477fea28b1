"""
MCP Server setup and registration for PDF Reader.

Handles server initialization, tool registration, resource setup,
and JSON-RPC communication over stdio.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import sys
from typing import Any

try:
    from mcp.server import Server
    from mcp.types import Resource, TextContent, Tool
except ImportError as exc:  # pragma: no cover
    raise ImportError("MCP library not installed. Install with: pip install mcp") from exc

from . import __version__
from .config import ServerConfig
from .errors import ConfigError, classify_error, error_result
from .tools import TOOL_METADATA, dispatch_tool, initialize_runtime_from_env

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

SUPPORTED_FEATURES_URI = "pdf://supported-features"
SERVER_STATUS_URI = "pdf://server-status"

server = Server("pdf-reader-mcp")


def configure_logging(level: str = "INFO") -> None:
    """Send logs to stderr; stdout carries the protocol stream."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def _resources() -> list[Resource]:
    return [
        Resource(
            uri=SUPPORTED_FEATURES_URI,
            name="Supported PDF Features",
            description="Information about supported PDF processing capabilities",
        ),
        Resource(
            uri=SERVER_STATUS_URI,
            name="Server Status",
            description="Current server status and non-secret limits",
        ),
    ]


def supported_features() -> dict[str, Any]:
    return {
        "text_extraction": True,
        "page_range_extraction": True,
        "metadata_extraction": True,
        "integrity_validation": True,
        "ocr_support": False,
        "table_extraction": False,
        "image_extraction": False,
        "supported_formats": [".pdf"],
        "page_range_syntax": ['"all"', '"5"', '"1-3"', '"1-3,5,7-10"'],
        "dependencies": {
            "pypdf": "Document structure, metadata and encryption",
            "pdfplumber": "Text extraction",
        },
        "limitations": [
            "Password-protected PDFs can only be validated, not extracted",
            "Scanned documents without a text layer return empty text",
        ],
    }


def server_status(config: ServerConfig) -> dict[str, Any]:
    return {
        "server_name": "PDF Reader MCP Server",
        "version": __version__,
        "tools_available": len(TOOL_METADATA),
        "tool_names": sorted(TOOL_METADATA.keys()),
        "limits": {
            "max_file_size_bytes": config.max_file_size,
            "processing_timeout_ms": config.processing_timeout_ms,
            "max_memory_usage_bytes": config.max_memory_usage,
            "concurrent_processing_limit": config.concurrent_processing_limit,
            "max_path_length": config.max_path_length,
            "max_path_depth": config.max_path_depth,
        },
        "safety_features": [
            "Path traversal protection",
            "Encoded traversal detection",
            "Control character rejection",
            "Reserved device name rejection",
            "Sensitive system path rejection",
            "Symbolic link rejection",
            "PDF signature check",
            "File size limits",
            "Timeout protection",
        ],
    }


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available PDF processing tools."""
    tools = [
        Tool(
            name=tool_name,
            description=metadata["description"],
            inputSchema=metadata["inputSchema"],
        )
        for tool_name, metadata in TOOL_METADATA.items()
    ]

    logger.info("Listed %s PDF processing tools", len(tools))
    return tools


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """
    Handle tool execution requests.

    Always returns list[TextContent] holding a JSON envelope, for failures too.
    """
    if not isinstance(arguments, dict):
        arguments = {}

    logger.info("Tool called: %s", name)

    try:
        raw_result = await dispatch_tool(name, arguments)
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("Tool %s failed with unexpected exception: %s", name, exc)
        raw_result = error_result(classify_error(exc))

    return [TextContent(type="text", text=json.dumps(raw_result, indent=2, default=str))]


@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    resources = _resources()
    logger.info("Listed %s resources", len(resources))
    return resources


@server.read_resource()
async def read_resource(uri: Any) -> str:
    """Read resource content."""
    uri_s = uri if isinstance(uri, str) else str(uri)
    logger.info("Resource requested: %s", uri_s)

    if uri_s == SUPPORTED_FEATURES_URI:
        return json.dumps(supported_features(), indent=2)

    if uri_s == SERVER_STATUS_URI:
        return json.dumps(server_status(initialize_runtime_from_env().config), indent=2)

    raise ValueError(f"Unknown resource URI: {uri_s}")


def _install_signal_handlers(task: asyncio.Task) -> None:
    """Cancel the server task on SIGINT/SIGTERM so the transport is released."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # add_signal_handler is unavailable on Windows event loops.
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, task.cancel)


async def run_server() -> None:
    """Run the PDF Reader MCP Server over stdio."""
    # Fail fast on invalid host configuration.
    try:
        runtime = initialize_runtime_from_env()
    except ConfigError as exc:
        configure_logging()
        logger.error("Startup configuration error: %s", exc.message)
        raise

    configure_logging(runtime.config.log_level)
    logger.info("Starting PDF Reader MCP Server %s", __version__)
    logger.info("Registered tools: %s", ", ".join(TOOL_METADATA.keys()))

    current = asyncio.current_task()
    if current is not None:
        _install_signal_handlers(current)

    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            logger.info("PDF Reader MCP Server ready for connections")
            await server.run(read_stream, write_stream, server.create_initialization_options())
    except asyncio.CancelledError:
        logger.info("Server stopped by signal")


async def test_server() -> None:
    """Lightweight self-test: list tools and resources, read server status."""
    configure_logging()
    tools = await list_tools()
    print(f"Available tools: {[t.name for t in tools]}", file=sys.stderr)

    resources = await list_resources()
    print(f"Available resources: {[r.name for r in resources]}", file=sys.stderr)

    status = await read_resource(SERVER_STATUS_URI)
    print(f"Server status: {status}", file=sys.stderr)
