"""Serialize :class:`GeneratedContent` into nbformat 4.5 JSON."""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Dict, List

from .schema import GeneratedContent, NotebookCell

__all__ = [
    "NBFORMAT",
    "NBFORMAT_MINOR",
    "KERNELSPEC",
    "LANGUAGE_INFO",
    "source_lines",
    "cell_to_dict",
    "to_notebook_dict",
    "dumps_notebook",
    "write_notebook",
]

NBFORMAT = 4
NBFORMAT_MINOR = 5

KERNELSPEC: Dict[str, str] = {
    "display_name": "Python 3",
    "language": "python",
    "name": "python3",
}

LANGUAGE_INFO: Dict[str, Any] = {
    "codemirror_mode": {"name": "ipython", "version": 3},
    "file_extension": ".py",
    "mimetype": "text/x-python",
    "name": "python",
    "nbconvert_exporter": "python",
    "pygments_lexer": "ipython3",
    "version": "3.10.0",
}


def source_lines(source: str) -> List[str]:
    """Split cell source into newline-terminated lines, one entry per line."""

    return [f"{line}\n" for line in source.split("\n")]


def cell_to_dict(cell: NotebookCell) -> Dict[str, Any]:
    return {
        "cell_type": cell.kind,
        "metadata": {},
        "source": source_lines(cell.source),
        "outputs": [],
        "execution_count": None,
    }


def to_notebook_dict(content: GeneratedContent) -> Dict[str, Any]:
    return {
        "cells": [cell_to_dict(cell) for cell in content.cells],
        "metadata": {
            "kernelspec": dict(KERNELSPEC),
            "language_info": copy.deepcopy(LANGUAGE_INFO),
        },
        "nbformat": NBFORMAT,
        "nbformat_minor": NBFORMAT_MINOR,
    }


def dumps_notebook(content: GeneratedContent) -> str:
    return json.dumps(to_notebook_dict(content), indent=2, ensure_ascii=False)


def write_notebook(content: GeneratedContent, directory: Path | str, filename: str | None = None) -> Path:
    """Write the notebook into ``directory`` and return the file path."""

    target_dir = Path(directory).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / (filename or content.suggested_filename)
    path.write_text(dumps_notebook(content) + "\n", encoding="utf-8")
    return path
