"""Recover structured stage results from free-form model output.

Stages 1 and 2 answer with labeled plain text (``INTENT: ...``). Stage 3 answers
with a ``TITLE:``/``GUIDE:`` preamble followed by ``---CELL_CODE---`` and
``---CELL_MARKDOWN---`` markers. Models drift from both protocols, so every
parser walks an ordered chain of strategies:

* labeled fields: labels, then an embedded JSON object, then a result
  synthesized from the raw text. These parsers never raise.
* notebook: markers, then a JSON document with a ``cells`` array, then fenced
  code blocks, then the raw text. Fewer than two cells from every strategy raises
  :class:`~papernb.llm.errors.InsufficientContentError`.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Type, TypeVar

from pydantic import ValidationError

from ..llm.errors import InsufficientContentError
from .schema import (
    PLACEHOLDER,
    AnalysisResult,
    Complexity,
    DesignResult,
    FrozenBaseModel,
    GeneratedContent,
    MockComponent,
    ModuleMapping,
    NotebookCell,
    Simplification,
)

__all__ = [
    "ANALYSIS_LABELS",
    "DESIGN_LABELS",
    "DEFAULT_NOTEBOOK_FILENAME",
    "DEFAULT_GUIDE",
    "extract_labeled_fields",
    "split_list",
    "parse_analysis",
    "parse_design",
    "parse_notebook",
    "notebook_filename",
]

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=FrozenBaseModel)

ANALYSIS_LABELS = ("INTENT", "NOVELTY", "CORE_ALGORITHMS", "COMPLEXITY", "DEPENDENCIES")
DESIGN_LABELS = (
    "ARCHITECTURE",
    "SIMPLIFICATIONS",
    "MOCK_COMPONENTS",
    "EXPECTED_BEHAVIOR",
    "MODULE_BREAKDOWN",
)

SYNTHESIS_LIMIT = 200
DEFAULT_NOTEBOOK_FILENAME = "toy_implementation.ipynb"
DEFAULT_GUIDE = (
    "Run the notebook from top to bottom. Every section prints its intermediate "
    "results; install any missing package with pip if an import fails."
)

_BOLD = r"(?:\*\*|__)"


def _label_pattern(labels: Sequence[str]) -> re.Pattern[str]:
    names = "|".join(label.replace("_", r"[ _]") for label in labels)
    return re.compile(
        r"^[ \t]*(?:>[ \t]*)?(?:#{1,6}[ \t]+)?(?:(?:[-*+•]|\d+[.)])[ \t]+)?"
        + _BOLD
        + r"?[ \t]*(?P<label>"
        + names
        + r")[ \t]*"
        + _BOLD
        + r"?[ \t]*:(?:"
        + _BOLD
        + r"(?=\s))?[ \t]*",
        re.IGNORECASE | re.MULTILINE,
    )


def _inline_label_pattern(labels: Sequence[str]) -> re.Pattern[str]:
    # Mid-line labels count only in their exact uppercase spelling.
    return re.compile(r"(?<!\w)(?P<label>" + "|".join(labels) + r")[ \t]*:[ \t]*")


_ANALYSIS_PATTERNS = (_label_pattern(ANALYSIS_LABELS), _inline_label_pattern(ANALYSIS_LABELS))
_DESIGN_PATTERNS = (_label_pattern(DESIGN_LABELS), _inline_label_pattern(DESIGN_LABELS))

_BULLET = re.compile(r"^\s*(?:[-*+•]|\d+[.)]|\(\d+\))\s+")
_FENCE_LINE = re.compile(r"^[ \t]*```[\w+-]*[ \t]*$", re.MULTILINE)
_LIST_SEPARATOR = re.compile(r",(?![^()]*\))")
_ARROW = re.compile(r"\s*(?:->|→|=>)\s*")
_TRAILING_PAREN = re.compile(r"\(([^()]*)\)\s*$")
_MOCK_LINE = re.compile(
    r"^(?P<name>[^:(]+?)\s*(?:\((?P<kind>[^)]*)\))?\s*(?::\s*(?P<implementation>.*))?$"
)
_COMPLEXITY = re.compile(r"\b(simple|moderate|complex)", re.IGNORECASE)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_WHOLE_FENCE = re.compile(r"```[^\n]*\n(?P<body>.*?)\n?[ \t]*```", re.DOTALL)
_FENCE = re.compile(r"```[^\n`]*\n(?P<body>.*?)```", re.DOTALL)
_MARKER = re.compile(r"-{3,}[ \t]*CELL_(CODE|MARKDOWN)[ \t]*-{3,}", re.IGNORECASE)
_BLANK_LINE = re.compile(r"\n[ \t]*\n")


def _preamble_pattern(label: str) -> re.Pattern[str]:
    return re.compile(
        r"^[ \t]*(?:#{1,6}[ \t]+)?" + _BOLD + r"?" + label + _BOLD + r"?[ \t]*:[ \t]*(?P<value>.*)$",
        re.IGNORECASE | re.MULTILINE,
    )


_TITLE = _preamble_pattern("TITLE")
_GUIDE = _preamble_pattern("GUIDE")
_RESIDUAL_LABEL = re.compile(
    r"^[ \t]*" + _BOLD + r"?(?:TITLE|GUIDE)" + _BOLD + r"?[ \t]*:[ \t]*",
    re.IGNORECASE | re.MULTILINE,
)


# ----------------------------------------------------------------------
# Shared helpers
# ----------------------------------------------------------------------

def extract_labeled_fields(text: str, labels: Sequence[str]) -> Dict[str, str]:
    """Map canonical label names to their raw values.

    Labels start a field at the beginning of a line (with optional markdown
    decoration) or anywhere in a line when written in uppercase, so
    ``INTENT: a. NOVELTY: b.`` yields two fields. A value runs from its label
    to the next recognized label or the end of the text. When a label repeats,
    the first occurrence wins.
    """

    return _extract_with((_label_pattern(labels), _inline_label_pattern(labels)), text)


def _extract_with(patterns: Sequence[re.Pattern[str]], text: str) -> Dict[str, str]:
    candidates = sorted(
        (match for pattern in patterns for match in pattern.finditer(text)),
        key=lambda match: (match.start(), -match.end()),
    )
    matches: List[re.Match[str]] = []
    for match in candidates:
        if matches and match.start() < matches[-1].end():
            continue
        matches.append(match)
    fields: Dict[str, str] = {}
    for index, match in enumerate(matches):
        key = re.sub(r"[ _]+", "_", match.group("label").upper())
        end = matches[index + 1].start() if index + 1 < len(matches) else len(text)
        value = _FENCE_LINE.sub("", text[match.end() : end]).strip()
        fields.setdefault(key, value)
    return fields


def _strip_item(item: str) -> str:
    return _BULLET.sub("", item).strip().strip("*_`").strip()


def split_list(value: str | None) -> List[str]:
    """Split a plain list field on newlines, bullets and top-level commas."""

    items: List[str] = []
    for line in (value or "").splitlines():
        for part in _LIST_SEPARATOR.split(_BULLET.sub("", line)):
            item = _strip_item(part)
            if item:
                items.append(item)
    return items


def _item_lines(value: str | None) -> List[str]:
    return [line for line in (_strip_item(raw) for raw in (value or "").splitlines()) if line]


def _text(value: Any) -> str:
    if value is None:
        return PLACEHOLDER
    text = str(value).strip()
    return text or PLACEHOLDER


def _coerce_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    if isinstance(value, str):
        return split_list(value)
    return []


def _normalize_complexity(value: Any) -> Complexity:
    match = _COMPLEXITY.search(str(value or ""))
    if match is None:
        return "Moderate"
    return match.group(1).capitalize()  # type: ignore[return-value]


def _excerpt(text: str) -> str:
    return text.strip()[:SYNTHESIS_LIMIT].strip() or PLACEHOLDER


def _extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    candidates = [text.strip()]
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    return None


# ----------------------------------------------------------------------
# Stage 1
# ----------------------------------------------------------------------

def parse_analysis(text: str) -> AnalysisResult:
    """Parse a stage-1 response. Always returns a fully populated result."""

    text = text or ""
    fields = _extract_with(_ANALYSIS_PATTERNS, text)
    if not fields.get("INTENT") and not fields.get("NOVELTY"):
        data = _extract_json_object(text)
        if data is not None and ("intent" in data or "novelty" in data):
            logger.debug("Analysis labels missing; using embedded JSON object")
            return _analysis_from_mapping(data)
        logger.warning("Analysis response had no recognizable fields; synthesizing from raw text")
        fields["INTENT"] = _excerpt(text)
    return AnalysisResult(
        intent=_text(fields.get("INTENT")),
        novelty=_text(fields.get("NOVELTY")),
        core_algorithms=split_list(fields.get("CORE_ALGORITHMS")) or [PLACEHOLDER],
        complexity=_normalize_complexity(fields.get("COMPLEXITY")),
        dependencies=split_list(fields.get("DEPENDENCIES")) or [PLACEHOLDER],
    )


def _analysis_from_mapping(data: Mapping[str, Any]) -> AnalysisResult:
    return AnalysisResult(
        intent=_text(data.get("intent")),
        novelty=_text(data.get("novelty")),
        core_algorithms=_coerce_list(data.get("core_algorithms")) or [PLACEHOLDER],
        complexity=_normalize_complexity(data.get("complexity")),
        dependencies=_coerce_list(data.get("dependencies")) or [PLACEHOLDER],
    )


# ----------------------------------------------------------------------
# Stage 2
# ----------------------------------------------------------------------

def _parse_simplification(line: str) -> Simplification:
    head, _, rationale = line.partition("|")
    parts = _ARROW.split(head, maxsplit=1)
    if len(parts) == 2:
        original, simplified = parts
    else:
        original, simplified = head, ""
    rationale = rationale.strip()
    if not rationale and simplified:
        trailing = _TRAILING_PAREN.search(simplified)
        if trailing:
            rationale = trailing.group(1)
            simplified = simplified[: trailing.start()]
    return Simplification(
        original=_text(original),
        simplified=_text(simplified),
        rationale=_text(rationale),
    )


def _parse_mock_component(line: str) -> MockComponent:
    match = _MOCK_LINE.match(line)
    if match is None:
        return MockComponent(name=_text(line))
    return MockComponent(
        name=_text(match.group("name").strip("*_` ")),
        kind=(match.group("kind") or "").strip() or "component",
        implementation=_text(match.group("implementation")),
    )


def _parse_module_mapping(line: str) -> ModuleMapping:
    parts = _ARROW.split(line, maxsplit=1)
    if len(parts) != 2:
        parts = line.split(":", 1)
    if len(parts) == 2:
        return ModuleMapping(section=_text(parts[0]), cell_purpose=_text(parts[1]))
    return ModuleMapping(section=_text(line))


def _structured_items(
    value: Any,
    model: Type[ModelT],
    parse_line: Callable[[str], ModelT],
) -> List[ModelT]:
    if isinstance(value, str):
        return [parse_line(line) for line in _item_lines(value)]
    if not isinstance(value, (list, tuple)):
        return []
    items: List[ModelT] = []
    for entry in value:
        if isinstance(entry, Mapping):
            cleaned = {key: str(val).strip() for key, val in entry.items() if val is not None and str(val).strip()}
            try:
                items.append(model.model_validate(cleaned))
            except ValidationError:
                logger.debug("Skipping malformed %s entry: %r", model.__name__, entry)
        elif isinstance(entry, str) and entry.strip():
            items.append(parse_line(_strip_item(entry)))
    return items


def _finalize_design(
    architecture: Any,
    expected_behavior: Any,
    simplifications: List[Simplification],
    mock_components: List[MockComponent],
    module_breakdown: List[ModuleMapping],
) -> DesignResult:
    return DesignResult(
        architecture=_text(architecture),
        simplifications=simplifications
        or [Simplification(original=PLACEHOLDER, simplified=PLACEHOLDER, rationale=PLACEHOLDER)],
        mock_components=mock_components or [MockComponent(name=PLACEHOLDER)],
        expected_behavior=_text(expected_behavior),
        module_breakdown=module_breakdown or [ModuleMapping(section=PLACEHOLDER)],
    )


def parse_design(text: str) -> DesignResult:
    """Parse a stage-2 response. Always returns a fully populated result."""

    text = text or ""
    fields = _extract_with(_DESIGN_PATTERNS, text)
    if not fields.get("ARCHITECTURE") and not fields.get("EXPECTED_BEHAVIOR"):
        data = _extract_json_object(text)
        if data is not None and any(
            key in data for key in ("architecture", "toy_architecture", "expected_behavior")
        ):
            logger.debug("Design labels missing; using embedded JSON object")
            return _finalize_design(
                data.get("architecture") or data.get("toy_architecture"),
                data.get("expected_behavior"),
                _structured_items(data.get("simplifications"), Simplification, _parse_simplification),
                _structured_items(data.get("mock_components"), MockComponent, _parse_mock_component),
                _structured_items(data.get("module_breakdown"), ModuleMapping, _parse_module_mapping),
            )
        logger.warning("Design response had no recognizable fields; synthesizing from raw text")
        fields["ARCHITECTURE"] = _excerpt(text)
    return _finalize_design(
        fields.get("ARCHITECTURE"),
        fields.get("EXPECTED_BEHAVIOR"),
        _structured_items(fields.get("SIMPLIFICATIONS"), Simplification, _parse_simplification),
        _structured_items(fields.get("MOCK_COMPONENTS"), MockComponent, _parse_mock_component),
        _structured_items(fields.get("MODULE_BREAKDOWN"), ModuleMapping, _parse_module_mapping),
    )


# ----------------------------------------------------------------------
# Stage 3
# ----------------------------------------------------------------------

def notebook_filename(title: str | None) -> str:
    """Slugify a notebook title into ``snake_case.ipynb``."""

    if not title:
        return DEFAULT_NOTEBOOK_FILENAME
    stem = title.strip()
    if stem.lower().endswith(".ipynb"):
        stem = stem[: -len(".ipynb")]
    slug = re.sub(r"[^0-9A-Za-z]+", "_", stem).strip("_").lower()[:80].rstrip("_")
    return f"{slug}.ipynb" if slug else DEFAULT_NOTEBOOK_FILENAME


def _head_end(text: str) -> int:
    positions = [len(text)]
    marker = _MARKER.search(text)
    if marker:
        positions.append(marker.start())
    else:
        fence = text.find("```")
        if fence != -1:
            positions.append(fence)
    return min(positions)


def _extract_preamble(text: str) -> tuple[Optional[str], Optional[str], str]:
    """Split ``TITLE:``/``GUIDE:`` off the head of the response.

    Returns ``(title, guide, body)`` where ``body`` is the text with the
    preamble spans removed.
    """

    head_end = _head_end(text)
    head = text[:head_end]
    spans: List[tuple[int, int]] = []

    title: Optional[str] = None
    title_match = _TITLE.search(head)
    if title_match:
        title = title_match.group("value").strip().strip("*_`\"'").strip() or None
        spans.append((title_match.start(), title_match.end()))

    guide: Optional[str] = None
    guide_match = _GUIDE.search(head)
    if guide_match:
        end = head_end
        if not _MARKER.search(text):
            blank = _BLANK_LINE.search(head, guide_match.end())
            if blank:
                end = blank.start()
        if title_match and guide_match.end() <= title_match.start() < end:
            end = title_match.start()
        guide = text[guide_match.start("value") : end].strip() or None
        spans.append((guide_match.start(), end))

    body = text
    for start, end in sorted(spans, reverse=True):
        body = body[:start] + body[end:]
    return title, guide, body


def _unwrap_code(source: str) -> str:
    match = _WHOLE_FENCE.fullmatch(source)
    if match and "```" not in match.group("body"):
        return match.group("body").strip()
    return source


def _cells_from_markers(body: str) -> List[NotebookCell]:
    parts = _MARKER.split(body)
    cells: List[NotebookCell] = []
    for kind, chunk in zip(parts[1::2], parts[2::2]):
        source = chunk.strip()
        if kind.upper() == "CODE":
            source = _unwrap_code(source)
        if not source:
            continue
        cells.append(NotebookCell(kind="code" if kind.upper() == "CODE" else "markdown", source=source))
    return cells


def _json_cell(index: int, record: Any) -> Optional[NotebookCell]:
    if not isinstance(record, Mapping):
        logger.debug("Skipping notebook cell %s: not an object (%r)", index, record)
        return None
    kind = record.get("cell_type", record.get("kind"))
    if kind not in ("code", "markdown"):
        logger.debug("Skipping notebook cell %s: unsupported cell_type %r", index, kind)
        return None
    source = record.get("source", "")
    if isinstance(source, list) and all(isinstance(line, str) for line in source):
        source = "".join(source)
    if not isinstance(source, str):
        logger.debug("Skipping notebook cell %s: non-text source", index)
        return None
    source = source.strip()
    if not source:
        return None
    return NotebookCell(kind=kind, source=source)


def _content_from_json(text: str) -> Optional[GeneratedContent]:
    stripped = text.strip()
    fenced = _WHOLE_FENCE.fullmatch(stripped)
    if fenced and "```" not in fenced.group("body"):
        stripped = fenced.group("body").strip()
    if not (stripped.startswith("{") and stripped.endswith("}")):
        return None
    try:
        data = json.loads(stripped)
    except ValueError:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("cells"), list):
        return None

    cells = [cell for cell in (_json_cell(i, record) for i, record in enumerate(data["cells"])) if cell]
    if len(cells) < 2:
        logger.debug("JSON notebook yielded %s usable cell(s); trying other strategies", len(cells))
        return None
    title = data.get("notebookName") or data.get("notebook_name") or data.get("suggested_filename") or data.get("title")
    guide = data.get("guide")
    return GeneratedContent(
        guide=str(guide).strip() if guide and str(guide).strip() else DEFAULT_GUIDE,
        suggested_filename=notebook_filename(str(title) if title else None),
        cells=tuple(cells),
    )


def _clean_prose(text: str) -> str:
    cleaned = _MARKER.sub("", text)
    cleaned = _RESIDUAL_LABEL.sub("", cleaned)
    return cleaned.strip()


def _cells_from_fences(body: str, title: Optional[str]) -> List[NotebookCell]:
    cells: List[NotebookCell] = []
    cursor = 0
    found = False
    for match in _FENCE.finditer(body):
        found = True
        prose = _clean_prose(body[cursor : match.start()])
        if prose:
            cells.append(NotebookCell(kind="markdown", source=prose))
        code = match.group("body").strip()
        if code:
            cells.append(NotebookCell(kind="code", source=code))
        cursor = match.end()
    if not found:
        return []
    trailing = _clean_prose(body[cursor:])
    if trailing:
        cells.append(NotebookCell(kind="markdown", source=trailing))
    if len(cells) == 1 and cells[0].is_code:
        cells.insert(0, NotebookCell(kind="markdown", source=f"# {title or 'Toy Implementation'}"))
    return cells


def _cells_from_raw(text: str, body: str) -> List[NotebookCell]:
    remaining = _clean_prose(body)
    raw = text.strip()
    if not remaining or not raw:
        return []
    return [NotebookCell(kind="markdown", source=remaining), NotebookCell(kind="code", source=raw)]


def parse_notebook(text: str) -> GeneratedContent:
    """Parse a stage-3 response into notebook cells.

    Malformed records in a JSON notebook are skipped. Raises
    :class:`InsufficientContentError` only when no strategy recovers at least
    two cells.
    """

    if not text or not text.strip():
        raise InsufficientContentError("The model returned an empty notebook response.")

    title, guide, body = _extract_preamble(text)
    cells = _cells_from_markers(body)
    if len(cells) < 2:
        if not _MARKER.search(body):
            from_json = _content_from_json(text)
            if from_json is not None:
                logger.debug("Parsed notebook from JSON document with %s cells", len(from_json.cells))
                return from_json
        logger.warning("Cell markers yielded %s cell(s); falling back to code fences", len(cells))
        cells = _cells_from_fences(body, title)
    if len(cells) < 2:
        logger.warning("No usable code fences; wrapping raw response")
        cells = _cells_from_raw(text, body)
    if len(cells) < 2:
        raise InsufficientContentError(
            "Could not recover at least two notebook cells from the model response. "
            "Try again or pick another model.",
            details=text.strip()[:500],
        )

    return GeneratedContent(
        guide=guide or DEFAULT_GUIDE,
        suggested_filename=notebook_filename(title),
        cells=tuple(cells),
    )
