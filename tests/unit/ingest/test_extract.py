"""Tests for file text extraction."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from archivist.ingest.extract import UnsupportedFileError, extract_text, html_to_text


def _mock_reader(page_texts: list[str | None]):
    pages = []
    for text in page_texts:
        page = MagicMock()
        page.extract_text.return_value = text
        pages.append(page)
    reader = MagicMock()
    reader.pages = pages
    return reader


def test_plain_text_read_verbatim(tmp_path: Path):
    f = tmp_path / "notes.txt"
    f.write_text("line one\nline two\n", encoding="utf-8")
    assert extract_text(f) == "line one\nline two\n"


def test_markdown_keeps_markup(tmp_path: Path):
    f = tmp_path / "README.MD"
    f.write_text("# Title\n\n*emphasis*", encoding="utf-8")
    assert extract_text(f) == "# Title\n\n*emphasis*"


def test_html_strips_scripts_and_navigation(tmp_path: Path):
    f = tmp_path / "page.html"
    f.write_text(
        "<html><head><style>p{}</style><script>alert(1)</script></head>"
        "<body><nav>Home | About</nav><p>The bridge spans the river.</p></body></html>",
        encoding="utf-8",
    )
    text = extract_text(f)
    assert "The bridge spans the river." in text
    assert "alert" not in text
    assert "Home | About" not in text


def test_html_to_text_drops_links_targets():
    text = html_to_text('<p>See <a href="https://example.com">the report</a>.</p>')
    assert "the report" in text
    assert "example.com" not in text


def test_pdf_pages_joined_and_blank_pages_skipped(tmp_path: Path):
    f = tmp_path / "scan.pdf"
    f.write_bytes(b"%PDF-1.4")
    with patch("archivist.ingest.extract.pypdf.PdfReader", return_value=_mock_reader(["Page one", None, "  ", "Page three"])):
        assert extract_text(f) == "Page one\n\nPage three"


def test_unsupported_extension_raises(tmp_path: Path):
    f = tmp_path / "song.mp3"
    f.write_bytes(b"\x00")
    with pytest.raises(UnsupportedFileError, match=".mp3"):
        extract_text(f)


def test_unsupported_is_a_value_error():
    assert issubclass(UnsupportedFileError, ValueError)


def test_missing_file_raises_oserror(tmp_path: Path):
    with pytest.raises(OSError):
        extract_text(tmp_path / "absent.txt")
