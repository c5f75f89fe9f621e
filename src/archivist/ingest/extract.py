"""Text extraction for uploaded files: object content from disk.

Dispatch by extension:
  .txt .text .log .csv .rst → read as UTF-8
  .md .markdown             → read verbatim (markup kept)
  .html .htm                → BeautifulSoup cleanup + html2text
  .pdf                      → page-by-page via pypdf
"""

from __future__ import annotations

from pathlib import Path

import html2text
import pypdf
from bs4 import BeautifulSoup

_TEXT_EXTS = {".txt", ".text", ".log", ".csv", ".rst"}
_MD_EXTS = {".md", ".markdown"}
_HTML_EXTS = {".html", ".htm"}
_PDF_EXTS = {".pdf"}
SUPPORTED_EXTENSIONS = _TEXT_EXTS | _MD_EXTS | _HTML_EXTS | _PDF_EXTS

_h2t = html2text.HTML2Text()
_h2t.ignore_links = True
_h2t.ignore_images = True
_h2t.body_width = 0


class UnsupportedFileError(ValueError):
    """Raised when a file type has no extractor."""


def extract_text(path: Path | str) -> str:
    """Return the text content of the file at *path*.

    Raises:
        UnsupportedFileError: If the extension is not supported.
        OSError: If the file cannot be read.
    """
    p = Path(path)
    ext = p.suffix.lower()
    if ext in _TEXT_EXTS or ext in _MD_EXTS:
        return p.read_text(encoding="utf-8", errors="replace")
    if ext in _HTML_EXTS:
        return html_to_text(p.read_text(encoding="utf-8", errors="replace"))
    if ext in _PDF_EXTS:
        return pdf_to_text(p)
    supported = ", ".join(sorted(SUPPORTED_EXTENSIONS))
    raise UnsupportedFileError(
        f"Unsupported file type '{ext or p.name}'. Supported: {supported}"
    )


def html_to_text(html: str) -> str:
    """Convert an HTML document to plain text (scripts, styles and navigation dropped)."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "footer", "header", "noscript"]):
        tag.decompose()
    return _h2t.handle(str(soup)).strip()


def pdf_to_text(path: Path | str) -> str:
    """Extract all page text from the PDF at *path*; pages without text are skipped."""
    reader = pypdf.PdfReader(str(path))
    parts: list[str] = []
    for page in reader.pages:
        page_text = (page.extract_text() or "").strip()
        if page_text:
            parts.append(page_text)
    return "\n\n".join(parts)
