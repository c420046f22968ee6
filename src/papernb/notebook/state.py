"""Pipeline stage machine, progress events and per-stage truncation budgets."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Mapping, Optional, TypedDict

from ..domain import PaperDomain
from .schema import AnalysisResult, DesignResult, GeneratedContent

__all__ = [
    "PipelineStage",
    "STAGE_STEPS",
    "TOTAL_STEPS",
    "ProgressEvent",
    "ProgressCallback",
    "StageTracker",
    "PipelineState",
    "TruncationTable",
    "DEFAULT_TRUNCATION",
    "DEFAULT_STAGE_TIMEOUT",
    "truncate_text",
]


class PipelineStage(str, Enum):
    PREPARING = "preparing"
    ANALYZING = "analyzing"
    DESIGNING = "designing"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStage.COMPLETE, PipelineStage.ERRORED)


_FORWARD = (
    PipelineStage.PREPARING,
    PipelineStage.ANALYZING,
    PipelineStage.DESIGNING,
    PipelineStage.GENERATING,
    PipelineStage.COMPLETE,
)

# step index and display name per progress-emitting stage
STAGE_STEPS: Mapping[PipelineStage, tuple[int, str]] = MappingProxyType(
    {
        PipelineStage.PREPARING: (0, "Preparation"),
        PipelineStage.ANALYZING: (1, "Analysis"),
        PipelineStage.DESIGNING: (2, "Design"),
        PipelineStage.GENERATING: (3, "Code Generation"),
    }
)
TOTAL_STEPS = 3


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    current_step: int
    total_steps: int
    step_name: str
    message: str

    @classmethod
    def for_stage(cls, stage: PipelineStage, message: str) -> "ProgressEvent":
        step, name = STAGE_STEPS[stage]
        return cls(current_step=step, total_steps=TOTAL_STEPS, step_name=name, message=message)

    def format(self) -> str:
        return f"[{self.current_step}/{self.total_steps}] {self.step_name}: {self.message}"


ProgressCallback = Callable[[ProgressEvent], None]


class StageTracker:
    """Forward-only state machine; ``ERRORED`` is reachable from any live stage."""

    def __init__(self) -> None:
        self._stage: Optional[PipelineStage] = None
        self.history: list[PipelineStage] = []

    @property
    def stage(self) -> Optional[PipelineStage]:
        return self._stage

    def advance(self, target: PipelineStage) -> None:
        current = self._stage
        if target is PipelineStage.ERRORED:
            if current is None or current.is_terminal:
                raise RuntimeError(f"Cannot fail a pipeline in state {current}.")
        else:
            expected = _FORWARD[0] if current is None else _next_stage(current)
            if target is not expected:
                raise RuntimeError(f"Illegal pipeline transition {current} -> {target}.")
        self._stage = target
        self.history.append(target)


def _next_stage(stage: PipelineStage) -> Optional[PipelineStage]:
    if stage.is_terminal:
        return None
    return _FORWARD[_FORWARD.index(stage) + 1]


class PipelineState(TypedDict, total=False):
    """State propagated through the LangGraph workflow."""

    paper_text: str
    domain: PaperDomain
    analysis: AnalysisResult
    design: DesignResult
    content: GeneratedContent


DEFAULT_STAGE_TIMEOUT = 900.0

_HOSTED = (20_000, 30_000, 40_000)
_SMALL_CONTEXT = (6_000, 8_000, 10_000)


def _default_limits() -> dict[tuple[PipelineStage, str], int]:
    limits: dict[tuple[PipelineStage, str], int] = {}
    for provider in ("gemini", "openai", "anthropic", "groq", "ollama", "huggingface"):
        budget = _SMALL_CONTEXT if provider in ("ollama", "huggingface") else _HOSTED
        for stage, chars in zip(
            (PipelineStage.ANALYZING, PipelineStage.DESIGNING, PipelineStage.GENERATING), budget
        ):
            limits[(stage, provider)] = chars
    return limits


@dataclass(frozen=True, slots=True)
class TruncationTable:
    """Character budgets for the paper excerpt, keyed by ``(stage, provider)``."""

    limits: Mapping[tuple[PipelineStage, str], int] = field(default_factory=_default_limits)
    fallback: tuple[int, int, int] = _HOSTED

    def __post_init__(self) -> None:
        if not self.fallback[0] < self.fallback[1] < self.fallback[2]:
            raise ValueError("fallback budgets must grow from analysis to generation")

    def limit(self, stage: PipelineStage, provider: str) -> int:
        key = (stage, provider)
        if key in self.limits:
            return self.limits[key]
        index = (PipelineStage.ANALYZING, PipelineStage.DESIGNING, PipelineStage.GENERATING).index(stage)
        return self.fallback[index]


DEFAULT_TRUNCATION = TruncationTable()


def truncate_text(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n…\n"
