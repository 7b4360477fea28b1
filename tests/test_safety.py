import asyncio
import os
from pathlib import Path

import pytest

from pdf_reader_mcp import safety
from pdf_reader_mcp.config import ServerConfig
from pdf_reader_mcp.errors import ErrorKind, PDFReaderError


def _kind(candidate, config=None):
    with pytest.raises(PDFReaderError) as exc:
        safety.validate_file_path(candidate, config)
    return exc.value.kind


def _message(candidate):
    with pytest.raises(PDFReaderError) as exc:
        safety.validate_file_path(candidate)
    return exc.value.message


def test_accepts_safe_relative_paths(make_pdf, workdir):
    rel = make_pdf()
    (workdir / "docs" / "2024").mkdir()
    nested = "docs/2024/summary.pdf"
    (workdir / nested).write_bytes((workdir / rel).read_bytes())

    for candidate in (rel, nested):
        validated = safety.validate_file_path(candidate)
        assert validated.path == candidate
        assert validated.resolved == (workdir / candidate).resolve()
        assert validated.size_bytes == (workdir / candidate).stat().st_size


def test_revalidating_a_validated_path_is_idempotent(make_pdf):
    first = safety.validate_file_path(make_pdf())
    second = safety.validate_file_path(str(first))
    assert second == first


@pytest.mark.parametrize("candidate", ["", " ", "\t", "\n", "\r\n", "   \t  \n  "])
def test_rejects_empty_or_whitespace(candidate):
    assert _kind(candidate) == ErrorKind.INVALID_PATH


def test_rejects_non_string():
    assert _kind(None) == ErrorKind.INVALID_PATH
    assert _kind(42) == ErrorKind.INVALID_PATH


@pytest.mark.parametrize(
    "candidate",
    [
        "../secret.pdf",
        "../../etc/passwd",
        "valid/../../../secret.pdf",
        "/safe/path/../../../etc/shadow",
        "C:\\safe\\path\\..\\..\\..\\Windows\\system32",
        "~/secret.pdf",
        "~root/.ssh/id_rsa",
        "docs/~backup.pdf",
    ],
)
def test_rejects_traversal_and_home_shortcuts(candidate):
    assert _kind(candidate) == ErrorKind.SECURITY_VIOLATION


@pytest.mark.parametrize(
    "candidate",
    ["./docs/report.pdf", "docs/./report.pdf", "docs/sub/../report.pdf", "./report.pdf"],
)
def test_rejects_dot_segments_even_when_they_normalize_safely(make_pdf, candidate):
    make_pdf()
    assert _kind(candidate) == ErrorKind.SECURITY_VIOLATION


@pytest.mark.parametrize(
    "candidate",
    ["document.pdf\x00", "\x00document.pdf", "docu\x00ment.pdf", "document\x01.pdf",
     "document\x7f.pdf", "docu\x08ment.pdf", "\x1bdocument.pdf", "doc\x85ument.pdf"],
)
def test_rejects_control_characters(candidate):
    assert _kind(candidate) == ErrorKind.SECURITY_VIOLATION


@pytest.mark.parametrize(
    "candidate",
    ["document\u200b.pdf", "document\ufeff.pdf", "document\u202e.pdf", "doc\u034fument.pdf"],
)
def test_rejects_invisible_unicode(candidate):
    assert _kind(candidate) == ErrorKind.SECURITY_VIOLATION


@pytest.mark.parametrize("candidate", ["docs/a\ud800.pdf", "\udfffreport.pdf", "docs/\udc80/x.pdf"])
def test_rejects_lone_surrogates(workdir, candidate):
    assert _kind(candidate) == ErrorKind.SECURITY_VIOLATION
    assert _message(candidate) == safety.SECURITY_VIOLATION_MESSAGE


def test_unencodable_path_is_rejected_not_raised(workdir, monkeypatch):
    def refuse(_path):
        raise UnicodeEncodeError("utf-8", "x", 0, 1, "surrogates not allowed")

    monkeypatch.setattr(safety.os, "lstat", refuse)
    assert _kind("docs/report.pdf") == ErrorKind.SECURITY_VIOLATION


@pytest.mark.parametrize(
    "candidate",
    [
        "%2e%2e%2f",
        "%2e%2e%5c",
        "..%2f",
        "%2E%2E/secret.pdf",
        "%252e%252e%252f",
        "%25252e%25252e%25252f",
        "valid%2e%2e%2fsecret.pdf",
        "%7e/secret.pdf",
        "report%00.pdf",
        "%USERPROFILE%\\secret.pdf",
        "100%.pdf",
        "bad%ff%fe.pdf",
    ],
)
def test_rejects_encoded_traversal_and_malformed_escapes(candidate):
    assert _kind(candidate) == ErrorKind.SECURITY_VIOLATION


def test_percent_escape_of_ordinary_character_is_allowed(workdir):
    name = "docs/q%41.pdf"
    (workdir / name).write_bytes(b"%PDF-1.4\n")
    assert safety.validate_file_path(name).path == name


@pytest.mark.parametrize("name", sorted(safety.WINDOWS_RESERVED_NAMES))
def test_rejects_windows_reserved_names(name):
    assert _kind(f"{name}.pdf") == ErrorKind.SECURITY_VIOLATION
    assert _kind(f"docs/{name.lower()}.tar.gz") == ErrorKind.SECURITY_VIOLATION
    assert _kind(name) == ErrorKind.SECURITY_VIOLATION


def test_reserved_name_only_matches_whole_stem(workdir):
    name = "docs/console.pdf"
    (workdir / name).write_bytes(b"%PDF-1.4\n")
    assert safety.validate_file_path(name).path == name


@pytest.mark.parametrize(
    "candidate",
    [
        "/etc/passwd",
        "/etc/shadow",
        "/root/.ssh/id_rsa",
        "/proc/version",
        "/dev/mem",
        "/sys/kernel/notes",
        "/var/log/auth.log",
        "/ETC/hosts",
        "C:\\Windows\\system32\\config\\sam",
        "c:/windows/system32/drivers/etc/hosts",
    ],
)
def test_rejects_sensitive_absolute_paths(candidate):
    assert _kind(candidate) == ErrorKind.SECURITY_VIOLATION


@pytest.mark.parametrize("candidate", ["document.pdf:hidden.exe", "normal.pdf:$DATA", "file.pdf::$DATA"])
def test_rejects_alternate_data_streams(candidate):
    assert _kind(candidate) == ErrorKind.SECURITY_VIOLATION


def test_drive_letter_colon_is_not_a_data_stream():
    # Passes every shape check; only the lookup fails on a POSIX host.
    kind = _kind("C:\\reports\\q3.pdf")
    assert kind in (ErrorKind.FILE_NOT_FOUND, ErrorKind.NOT_A_FILE)


def test_rejects_excessive_length():
    assert _kind("a" * 300 + ".pdf") == ErrorKind.SECURITY_VIOLATION


def test_rejects_excessive_depth():
    deep = "/".join(["subdir"] * 100) + "/document.pdf"
    assert _kind(deep) == ErrorKind.SECURITY_VIOLATION


def test_limits_come_from_injected_config(workdir):
    nested = workdir / "a" / "b" / "c"
    nested.mkdir(parents=True)
    (nested / "x.pdf").write_bytes(b"%PDF-1.4\n")

    assert safety.validate_file_path("a/b/c/x.pdf").path == "a/b/c/x.pdf"
    assert _kind("a/b/c/x.pdf", ServerConfig(max_path_depth=3)) == ErrorKind.SECURITY_VIOLATION
    assert _kind("a/b/c/x.pdf", ServerConfig(max_path_length=8)) == ErrorKind.SECURITY_VIOLATION


def test_security_messages_do_not_vary_with_attack_vector():
    vectors = ["../../../etc/passwd", "~/secret.pdf", "/etc/shadow", "document.pdf\x00",
               "%2e%2e%2f", "CON.pdf", "file.pdf::$DATA", "a" * 300]
    messages = {_message(v) for v in vectors}

    assert messages == {safety.SECURITY_VIOLATION_MESSAGE}
    for message in messages:
        lowered = message.lower()
        assert "/etc/" not in lowered
        assert "shadow" not in lowered
        assert "passwd" not in lowered


def test_missing_file(workdir):
    assert _kind("docs/missing.pdf") == ErrorKind.FILE_NOT_FOUND


def test_directory_is_not_a_file(workdir):
    (workdir / "docs" / "folder.pdf").mkdir()
    assert _kind("docs/folder.pdf") == ErrorKind.NOT_A_FILE


def test_rejects_symlink_even_to_a_valid_pdf(make_pdf, workdir):
    target = make_pdf()
    link = workdir / "docs" / "link.pdf"
    try:
        os.symlink(workdir / target, link)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported on this platform")

    assert _kind("docs/link.pdf") == ErrorKind.SECURITY_VIOLATION
    assert _message("docs/link.pdf") == safety.SECURITY_VIOLATION_MESSAGE


def test_rejects_file_over_size_limit(make_pdf, workdir):
    rel = make_pdf()
    with pytest.raises(PDFReaderError) as exc:
        safety.validate_file_path(rel, ServerConfig(max_file_size=10))
    assert exc.value.kind == ErrorKind.FILE_TOO_LARGE
    assert exc.value.size_bytes == (workdir / rel).stat().st_size
    assert rel not in exc.value.message


def test_concurrent_validation_of_identical_paths(make_pdf):
    rel = make_pdf()

    async def run_all():
        return await asyncio.gather(
            *(asyncio.to_thread(safety.validate_file_path, rel) for _ in range(100))
        )

    results = asyncio.run(run_all())
    assert len(results) == 100
    assert all(r == results[0] for r in results)


def test_pdf_guard_accepts_pdf_signature(make_pdf, blank_pdf):
    assert safety.validate_pdf_file(make_pdf()).size_bytes > 0
    assert safety.validate_pdf_file(blank_pdf).path == blank_pdf


def test_pdf_guard_rejects_wrong_signature(workdir):
    (workdir / "docs" / "fake.pdf").write_bytes(b"PK\x03\x04 not a pdf at all")
    with pytest.raises(PDFReaderError) as exc:
        safety.validate_pdf_file("docs/fake.pdf")
    assert exc.value.kind == ErrorKind.INVALID_PDF
    assert exc.value.size_bytes == len(b"PK\x03\x04 not a pdf at all")


def test_pdf_guard_rejects_short_file(workdir):
    (workdir / "docs" / "tiny.pdf").write_bytes(b"%P")
    with pytest.raises(PDFReaderError) as exc:
        safety.validate_pdf_file("docs/tiny.pdf")
    assert exc.value.kind == ErrorKind.INVALID_PDF


def test_pdf_guard_runs_path_validation_first(workdir):
    with pytest.raises(PDFReaderError) as exc:
        safety.validate_pdf_file("../outside.pdf")
    assert exc.value.kind == ErrorKind.SECURITY_VIOLATION


def test_pdf_guard_read_failure(make_pdf, monkeypatch):
    rel = make_pdf()

    def broken_open(*args, **kwargs):
        raise PermissionError("EACCES")

    monkeypatch.setattr(safety, "open", broken_open, raising=False)
    with pytest.raises(PDFReaderError) as exc:
        safety.validate_pdf_file(rel)
    assert exc.value.kind == ErrorKind.READ_ERROR


def test_validated_path_is_immutable(make_pdf):
    validated = safety.validate_file_path(make_pdf())
    with pytest.raises(AttributeError):
        validated.path = "other.pdf"
    assert isinstance(validated.resolved, Path)
