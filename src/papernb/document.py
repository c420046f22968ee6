"""Input loading for research papers (Markdown, plain text or PDF)."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import fitz  # PyMuPDF

from .domain import PaperDomain, detect_domain

__all__ = ["PaperDocument", "load_paper", "extract_pdf_text", "infer_title", "extract_abstract"]

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".md", ".markdown", ".txt"}
PDF_SUFFIXES = {".pdf"}

_ABSTRACT_HEADING = re.compile(r"^\s*(?:#+\s*)?abstract\b[:.\s]*", re.IGNORECASE | re.MULTILINE)
_ABSTRACT_END = re.compile(
    r"\n\s*(?:#+\s*)?(?:\d+\.?\s+)?(?:introduction|keywords|index terms)\b|\n\s*\n\s*\n",
    re.IGNORECASE,
)
_PAGE_HEADER = re.compile(r"^--- Page \d+ ---$")


@dataclass(slots=True)
class PaperDocument:
    """Container for paper text and the metadata the pipeline needs."""

    text: str
    title: str
    source: Path
    domain: PaperDomain
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "source": str(self.source),
            "domain": self.domain.value,
            "metadata": self.metadata,
            "length": len(self.text),
        }


def extract_pdf_text(pdf_path: Path | str) -> tuple[str, dict[str, Any]]:
    """Return page text framed by ``--- Page N ---`` headers and the PDF metadata."""

    pdf_path = Path(pdf_path).expanduser()
    chunks: list[str] = []
    with fitz.open(pdf_path) as doc:
        metadata = {key: value for key, value in (doc.metadata or {}).items() if value}
        metadata["pages"] = doc.page_count
        for page_index, page in enumerate(doc, start=1):
            page_text = " ".join(page.get_text("text").split())
            chunks.append(f"--- Page {page_index} ---\n{page_text}\n")
    logger.debug("Extracted %s pages from %s", len(chunks), pdf_path)
    return "\n".join(chunks), metadata


def infer_title(text: str, fallback: str) -> str:
    for line in text.splitlines():
        candidate = line.strip()
        if not candidate or _PAGE_HEADER.match(candidate):
            continue
        if candidate.startswith("#"):
            return candidate.lstrip("#").strip() or fallback
        return candidate[:200]
    return fallback


def extract_abstract(text: str, limit: int = 1500) -> str:
    heading = _ABSTRACT_HEADING.search(text)
    if heading is None:
        return ""
    body = text[heading.end() :]
    end = _ABSTRACT_END.search(body)
    if end is not None:
        body = body[: end.start()]
    return " ".join(body.split())[:limit]


def load_paper(
    source: Path | str,
    *,
    domain: PaperDomain | str | None = None,
    encoding: str = "utf-8",
) -> PaperDocument:
    """Load a paper and detect its domain unless one is given."""

    source_path = Path(source).expanduser()
    if not source_path.exists():
        raise FileNotFoundError(
            f"Input file not found: {source_path}. Provide --input pointing to a PDF, Markdown or text file."
        )

    suffix = source_path.suffix.lower()
    fallback_title = source_path.stem.replace("_", " ").replace("-", " ").title()
    if suffix in TEXT_SUFFIXES:
        text = source_path.read_text(encoding=encoding)
        metadata: dict[str, Any] = {"kind": "markdown" if suffix != ".txt" else "text"}
        title = infer_title(text, fallback_title)
    elif suffix in PDF_SUFFIXES:
        text, pdf_metadata = extract_pdf_text(source_path)
        metadata = {"kind": "pdf", **pdf_metadata}
        title = str(pdf_metadata.get("title") or "").strip() or infer_title(text, fallback_title)
    else:
        raise ValueError(
            f"Unsupported input format '{suffix or source_path.name}'. Please supply a .pdf, .md or .txt file."
        )

    if not text.strip():
        raise ValueError(f"No text could be extracted from {source_path}.")

    metadata["length"] = len(text)
    abstract = extract_abstract(text)
    if abstract:
        metadata["abstract"] = abstract
    resolved = PaperDomain.parse(domain) if domain is not None else detect_domain(text)
    logger.info("Loaded %s (%s characters, domain %s)", source_path.name, len(text), resolved.value)
    return PaperDocument(text=text, title=title, source=source_path, domain=resolved, metadata=metadata)
