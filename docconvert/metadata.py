"""
Title/author detection for the output document.

Tried in order, each only for fields still empty:
1. Metadata embedded in the source file
2. Heuristic scan of the first few pages of text
3. The filename (title only)

Metadata is cosmetic, so nothing here ever fails the pipeline.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

logger = logging.getLogger(__name__)

MAX_SCAN_PAGES = 5
TITLE_MIN_LEN = 3
TITLE_MAX_LEN = 200
AUTHOR_MIN_LEN = 3
AUTHOR_MAX_LEN = 80
AUTHOR_SCAN_LINES = 5


@dataclass(frozen=True)
class DocumentMetadata:
    """Title and author of a document, either may be missing."""

    title: str | None = None
    author: str | None = None

    def __post_init__(self) -> None:
        # Normalise blanks to None
        object.__setattr__(self, "title", (self.title or "").strip() or None)
        object.__setattr__(self, "author", (self.author or "").strip() or None)

    @property
    def complete(self) -> bool:
        return bool(self.title and self.author)


# A reader returns (embedded metadata dict, text of the first pages)
MetadataReader = Callable[[Path, int], tuple[dict, list[str]]]


def read_pdf_metadata(path: Path, max_pages: int = MAX_SCAN_PAGES) -> tuple[dict, list[str]]:
    """Read embedded metadata and first-page text with PyMuPDF."""
    import fitz

    with fitz.open(str(path)) as doc:
        meta = doc.metadata or {}
        pages = [doc[i].get_text() for i in range(min(max_pages, len(doc)))]
    return meta, pages


def _lines(page_text: str) -> list[str]:
    return [line.strip() for line in page_text.split("\n") if line.strip()]


def _find_title(lines: list[str]) -> str | None:
    for line in lines:
        if TITLE_MIN_LEN < len(line) < TITLE_MAX_LEN:
            return line
    return None


def _find_author(lines: list[str]) -> str | None:
    for line in lines[1:AUTHOR_SCAN_LINES]:
        if line.lower().startswith("by "):
            return line[3:].strip() or None
        if AUTHOR_MIN_LEN < len(line) < AUTHOR_MAX_LEN and not any(c.isdigit() for c in line):
            return line
    return None


def scan_pages(
    pages: Iterable[str],
    title: str | None = None,
    author: str | None = None,
    max_pages: int = MAX_SCAN_PAGES,
) -> DocumentMetadata:
    """Guess title and author from page text.

    Scanning stops at the first page that yields a title (or the first page
    with text when the title is already known). The author is only taken from
    lines 2-5 of that page.

    Args:
        pages: Text of each page, in order
        title: Title already known, kept as-is
        author: Author already known, kept as-is
        max_pages: Number of pages to look at

    Returns:
        DocumentMetadata with whatever could be found
    """
    for i, text in enumerate(pages):
        if i >= max_pages:
            break
        lines = _lines(text or "")
        if not lines:
            continue

        if not title:
            title = _find_title(lines)
        if title:
            if not author:
                author = _find_author(lines)
            break

    return DocumentMetadata(title=title, author=author)


def title_from_filename(path: Path) -> str:
    """Filename stem with underscores and hyphens turned into spaces."""
    return Path(path).stem.replace("_", " ").replace("-", " ")


def infer_metadata(
    path: Path,
    title: str | None = None,
    author: str | None = None,
    reader: MetadataReader = read_pdf_metadata,
) -> DocumentMetadata:
    """Fill in title/author that the user did not supply.

    Args:
        path: Source document
        title: User-supplied title, never overridden
        author: User-supplied author, never overridden
        reader: Returns (embedded metadata, page texts) for a path

    Returns:
        DocumentMetadata; fields may still be None
    """
    known = DocumentMetadata(title=title, author=author)
    if known.complete:
        return known

    title, author = known.title, known.author

    try:
        meta, pages = reader(Path(path), MAX_SCAN_PAGES)
    except Exception as e:
        logger.debug(f"Could not read metadata from {path}: {e}")
        meta, pages = {}, []

    title = title or (meta.get("title") or "").strip() or None
    author = author or (meta.get("author") or "").strip() or None

    if not title or not author:
        scanned = scan_pages(pages, title=title, author=author)
        title, author = scanned.title, scanned.author

    if not title:
        title = title_from_filename(path)

    return DocumentMetadata(title=title, author=author)
