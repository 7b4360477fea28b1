"""Command line entry point: ``python -m pdf_reader_mcp`` or ``pdf-reader-mcp``.

Without options the server speaks MCP over stdio until the client closes the
stream or a signal arrives. ``--test`` prints the tool and resource catalog
to stderr and exits.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from pdf_reader_mcp import __version__
from pdf_reader_mcp.errors import ConfigError
from pdf_reader_mcp.server import run_server, test_server

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_BAD_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdf-reader-mcp",
        description="MCP server for PDF text and metadata extraction.",
        epilog="Limits are read from PDF_MAX_FILE_SIZE, PDF_PROCESSING_TIMEOUT, "
               "PDF_MAX_MEMORY_USAGE, PDF_CONCURRENT_PROCESSING_LIMIT and LOG_LEVEL.",
    )
    parser.add_argument("--test", action="store_true",
                        help="list tools and resources on stderr, then exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    entry = test_server if args.test else run_server

    try:
        asyncio.run(entry())
    except KeyboardInterrupt:
        print("\nServer stopped by user", file=sys.stderr)
    except ConfigError as e:
        print(f"Configuration error: {e.message}", file=sys.stderr)
        return EXIT_BAD_CONFIG
    except Exception as e:  # pylint: disable=broad-exception-caught
        print(f"Server error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
