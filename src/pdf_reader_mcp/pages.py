"""Page range parsing."""

from __future__ import annotations

from .errors import ErrorKind, PDFReaderError

ALL_PAGES = "all"


def _parse_int(value: str) -> int | None:
    value = value.strip()
    if not value.isdecimal():
        return None
    return int(value)


def parse_page_range(page_range: str | None, total_pages: int) -> list[int]:
    """
    Parse a page range expression such as ``"1-3,5,7-10"``.

    ``None``, an empty string or ``"all"`` selects every page. The result is
    ascending and free of duplicates.

    Raises:
        PDFReaderError: INVALID_PAGE_RANGE or INVALID_PAGE_NUMBER naming the
            offending term
    """
    if page_range is None or not page_range.strip() or page_range.strip().lower() == ALL_PAGES:
        return list(range(1, total_pages + 1))

    pages: set[int] = set()
    for part in page_range.split(","):
        term = part.strip()

        if "-" in term:
            bounds = term.split("-")
            start = _parse_int(bounds[0]) if len(bounds) == 2 else None
            end = _parse_int(bounds[1]) if len(bounds) == 2 else None
            if start is None or end is None or start < 1 or end < start or end > total_pages:
                raise PDFReaderError(ErrorKind.INVALID_PAGE_RANGE, f"Invalid page range: {term}")
            pages.update(range(start, end + 1))
        else:
            page = _parse_int(term)
            if page is None or page < 1 or page > total_pages:
                raise PDFReaderError(ErrorKind.INVALID_PAGE_NUMBER, f"Invalid page number: {term}")
            pages.add(page)

    return sorted(pages)
