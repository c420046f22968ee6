from __future__ import annotations

import json

import pytest

from papernb.llm.errors import InsufficientContentError
from papernb.notebook.parsing import DEFAULT_GUIDE, notebook_filename, parse_notebook


MARKER_REPLY = """TITLE: Toy Attention Demo
GUIDE: Run all cells in order.
Expect a heatmap at the end.

---CELL_MARKDOWN---
# Toy Attention
Intro text.
---CELL_CODE---
import random
print("hi")
---CELL_CODE---
```python
x = 1
```
"""


def test_marker_protocol_produces_ordered_cells_and_preamble():
    content = parse_notebook(MARKER_REPLY)

    assert [cell.kind for cell in content.cells] == ["markdown", "code", "code"]
    assert content.cells[0].source == "# Toy Attention\nIntro text."
    assert content.cells[1].source == 'import random\nprint("hi")'
    assert content.cells[2].source == "x = 1"
    assert content.guide == "Run all cells in order.\nExpect a heatmap at the end."
    assert content.suggested_filename == "toy_attention_demo.ipynb"


def test_marker_variants_are_accepted():
    reply = "----- cell_markdown -----\nIntro\n---CELL_CODE----\nprint(2)\n"

    content = parse_notebook(reply)

    assert [(cell.kind, cell.source) for cell in content.cells] == [
        ("markdown", "Intro"),
        ("code", "print(2)"),
    ]


def test_empty_marker_sections_are_dropped():
    reply = "---CELL_MARKDOWN---\n\n---CELL_MARKDOWN---\n# Title\n---CELL_CODE---\n   \n---CELL_CODE---\nprint(3)"

    content = parse_notebook(reply)

    assert [cell.source for cell in content.cells] == ["# Title", "print(3)"]


def test_bold_title_label_is_unwrapped():
    reply = "**TITLE:** Gradient Descent Walkthrough\n---CELL_MARKDOWN---\nIntro\n---CELL_CODE---\nprint(1)"

    content = parse_notebook(reply)

    assert content.suggested_filename == "gradient_descent_walkthrough.ipynb"
    assert content.guide == DEFAULT_GUIDE


def test_code_fences_are_used_when_markers_are_missing():
    reply = """TITLE: Linear Regression Toy

Here we generate data.

```python
import random
data = [random.random() for _ in range(10)]
```

Now summarise it.

```python
print(sum(data) / len(data))
```

That's it.
"""

    content = parse_notebook(reply)

    assert [cell.kind for cell in content.cells] == ["markdown", "code", "markdown", "code", "markdown"]
    assert content.cells[0].source == "Here we generate data."
    assert content.cells[3].source == "print(sum(data) / len(data))"
    assert content.cells[4].source == "That's it."
    assert content.suggested_filename == "linear_regression_toy.ipynb"


def test_lone_code_fence_gets_a_title_cell():
    content = parse_notebook("TITLE: Hello World\n```python\nprint(1)\n```")

    assert [(cell.kind, cell.source) for cell in content.cells] == [
        ("markdown", "# Hello World"),
        ("code", "print(1)"),
    ]


def test_json_notebook_document_is_accepted():
    reply = json.dumps(
        {
            "notebookName": "Cool Stuff",
            "guide": "Open it in Jupyter.",
            "cells": [
                {"cell_type": "markdown", "source": "# A"},
                {"cell_type": "code", "source": ["x = 1\n", "print(x)"]},
                {"cell_type": "code", "source": "   "},
            ],
        }
    )

    content = parse_notebook(reply)

    assert content.suggested_filename == "cool_stuff.ipynb"
    assert content.guide == "Open it in Jupyter."
    assert [cell.source for cell in content.cells] == ["# A", "x = 1\nprint(x)"]


def test_json_notebook_skips_unsupported_cell_records():
    reply = json.dumps(
        {
            "cells": [
                {"cell_type": "markdown", "source": "# Intro"},
                {"cell_type": "raw", "source": "ignored"},
                "not a record",
                {"cell_type": "code", "source": 42},
                {"cell_type": "code", "source": "print('kept')"},
            ]
        }
    )

    content = parse_notebook(reply)

    assert [(cell.kind, cell.source) for cell in content.cells] == [
        ("markdown", "# Intro"),
        ("code", "print('kept')"),
    ]


def test_json_notebook_with_too_few_valid_cells_falls_back_to_raw_text():
    reply = json.dumps({"cells": [{"cell_type": "raw", "source": "x"}, {"cell_type": "code", "source": "y"}]})

    content = parse_notebook(reply)

    assert [cell.kind for cell in content.cells] == ["markdown", "code"]
    assert content.cells[1].source == reply


def test_single_cell_json_notebook_falls_back_to_raw_text():
    reply = json.dumps({"cells": [{"cell_type": "code", "source": "x = 1"}]})

    content = parse_notebook(reply)

    assert len(content.cells) == 2
    assert content.cells[1].source == reply


def test_plain_prose_is_wrapped_into_two_cells():
    content = parse_notebook("Just some prose without any code.")

    assert [cell.kind for cell in content.cells] == ["markdown", "code"]
    assert content.suggested_filename == "toy_implementation.ipynb"


@pytest.mark.parametrize("reply", ["", "   \n ", "TITLE: Only a title"])
def test_unrecoverable_replies_raise_insufficient_content(reply):
    with pytest.raises(InsufficientContentError):
        parse_notebook(reply)


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Attention Is All You Need!", "attention_is_all_you_need.ipynb"),
        ("my_notebook.ipynb", "my_notebook.ipynb"),
        ("  Q-Learning: a toy  ", "q_learning_a_toy.ipynb"),
        ("!!!", "toy_implementation.ipynb"),
        (None, "toy_implementation.ipynb"),
    ],
)
def test_notebook_filename_slugifies_titles(title, expected):
    assert notebook_filename(title) == expected


def test_notebook_filename_caps_stem_length():
    assert notebook_filename("a" * 200) == "a" * 80 + ".ipynb"
