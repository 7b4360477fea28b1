"""PDF Reader MCP Server.

A Model Context Protocol server that exposes PDF text and metadata extraction
as tools, guarded by strict file path validation.

Features:
- Text extraction for whole documents or selected page ranges
- Per-page content with word counts
- Document metadata and integrity checks
- Path traversal, encoding and device-name protection
- Processing timeouts and a concurrency ceiling

Run with: uvx python -m pdf_reader_mcp
"""

__version__ = "1.0.0"
