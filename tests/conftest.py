from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from pypdf import PdfWriter


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_text_pdf(pages: list[str], info: dict[str, str] | None = None, version: str = "1.7") -> bytes:
    """Assemble a small PDF with one Helvetica text block per page.

    Lines within a page are separated by newlines in ``pages``.
    """
    n = len(pages)
    page_ids = [4 + 2 * i for i in range(n)]
    kids = " ".join(f"{pid} 0 R" for pid in page_ids)

    objects: list[bytes] = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        f"<< /Type /Pages /Kids [{kids}] /Count {n} >>".encode(),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    for i, text in enumerate(pages):
        content_id = page_ids[i] + 1
        objects.append(
            (
                "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Contents {content_id} 0 R /Resources << /Font << /F1 3 0 R >> >> >>"
            ).encode()
        )
        ops = ["BT", "/F1 12 Tf", "16 TL", "72 720 Td"]
        for j, line in enumerate(text.split("\n")):
            ops.append(f"({_escape(line)}) Tj" if j == 0 else f"T* ({_escape(line)}) Tj")
        ops.append("ET")
        stream = "\n".join(ops).encode("latin-1")
        objects.append(b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream")

    info_id = None
    if info:
        entries = " ".join(f"/{k} ({_escape(v)})" for k, v in info.items())
        objects.append(f"<< {entries} >>".encode("latin-1"))
        info_id = len(objects)

    out = bytearray(f"%PDF-{version}\n".encode())
    offsets = []
    for idx, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{idx} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_pos = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for off in offsets:
        out += f"{off:010d} 00000 n \n".encode()
    trailer = f"<< /Size {len(objects) + 1} /Root 1 0 R"
    if info_id is not None:
        trailer += f" /Info {info_id} 0 R"
    trailer += " >>"
    out += f"trailer\n{trailer}\nstartxref\n{xref_pos}\n%%EOF\n".encode()
    return bytes(out)


def create_minimal_pdf(path: Path, pages: int = 1) -> None:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=72, height=72)
    with path.open("wb") as f:
        writer.write(f)


def create_encrypted_pdf(path: Path, password: str = "secret") -> None:
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    writer.encrypt(user_password=password, owner_password="owner-" + password)
    with path.open("wb") as f:
        writer.write(f)


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run the test from inside tmp_path so fixtures use safe relative paths."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / "docs").mkdir()
    return tmp_path


@pytest.fixture
def make_pdf(workdir: Path) -> Callable[..., str]:
    """Write a text PDF under docs/ and return its relative path."""

    def _make(name: str = "report.pdf", pages: list[str] | None = None, info: dict[str, str] | None = None) -> str:
        rel = f"docs/{name}"
        data = build_text_pdf(pages if pages is not None else ["Hello page one"], info=info)
        (workdir / rel).write_bytes(data)
        return rel

    return _make


@pytest.fixture
def blank_pdf(workdir: Path) -> str:
    rel = "docs/blank.pdf"
    create_minimal_pdf(workdir / rel, pages=3)
    return rel


@pytest.fixture
def encrypted_pdf(workdir: Path) -> str:
    rel = "docs/locked.pdf"
    create_encrypted_pdf(workdir / rel)
    return rel
