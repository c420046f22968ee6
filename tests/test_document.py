from __future__ import annotations

from pathlib import Path

import fitz
import pytest

from papernb.document import extract_abstract, extract_pdf_text, infer_title, load_paper
from papernb.domain import PaperDomain

MARKDOWN_PAPER = """# Policy Gradients for Tiny Gridworlds

## Abstract
We train an agent with a policy gradient and a shaped reward.

## 1. Introduction
Reinforcement learning on small episodes.
"""


def _write_pdf(path: Path, pages: list[str], title: str | None = None) -> Path:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    if title:
        doc.set_metadata({"title": title})
    doc.save(str(path))
    doc.close()
    return path


def test_load_markdown_paper_detects_title_and_domain(tmp_path: Path) -> None:
    source = tmp_path / "gridworld.md"
    source.write_text(MARKDOWN_PAPER, encoding="utf-8")

    document = load_paper(source)

    assert document.title == "Policy Gradients for Tiny Gridworlds"
    assert document.domain is PaperDomain.RL_CONTROL
    assert document.metadata["kind"] == "markdown"
    assert document.metadata["abstract"] == "We train an agent with a policy gradient and a shaped reward."
    assert document.to_dict()["domain"] == "RL-Control"


def test_explicit_domain_overrides_detection(tmp_path: Path) -> None:
    source = tmp_path / "notes.txt"
    source.write_text("An agent collects reward.", encoding="utf-8")

    document = load_paper(source, domain="NLP-Language")

    assert document.domain is PaperDomain.NLP_LANGUAGE
    assert document.metadata["kind"] == "text"


def test_missing_input_raises_file_not_found(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="Input file not found"):
        load_paper(tmp_path / "absent.pdf")


def test_unsupported_suffix_is_rejected(tmp_path: Path) -> None:
    source = tmp_path / "paper.docx"
    source.write_bytes(b"binary")

    with pytest.raises(ValueError, match="Unsupported input format"):
        load_paper(source)


def test_blank_text_file_is_rejected(tmp_path: Path) -> None:
    source = tmp_path / "empty.md"
    source.write_text("  \n\n", encoding="utf-8")

    with pytest.raises(ValueError, match="No text"):
        load_paper(source)


def test_pdf_pages_are_framed_with_headers(tmp_path: Path) -> None:
    pdf_path = _write_pdf(tmp_path / "paper.pdf", ["First page text", "Second page text"])

    text, metadata = extract_pdf_text(pdf_path)

    assert metadata["pages"] == 2
    assert "--- Page 1 ---\nFirst page text" in text
    assert "--- Page 2 ---\nSecond page text" in text


def test_pdf_title_comes_from_metadata(tmp_path: Path) -> None:
    pdf_path = _write_pdf(tmp_path / "routing.pdf", ["Image segmentation with pixel routing"], title="Pixel Routing")

    document = load_paper(pdf_path)

    assert document.title == "Pixel Routing"
    assert document.metadata["kind"] == "pdf"
    assert document.domain is PaperDomain.VISION_PERCEPTION


def test_infer_title_skips_page_headers() -> None:
    assert infer_title("--- Page 1 ---\nDeep Widgets\nbody", "Fallback") == "Deep Widgets"
    assert infer_title("\n\n", "Fallback") == "Fallback"


def test_extract_abstract_stops_at_introduction() -> None:
    text = "Title\nAbstract: Short summary here.\n1 Introduction\nLong body."

    assert extract_abstract(text) == "Short summary here."
    assert extract_abstract("No summary section") == ""
