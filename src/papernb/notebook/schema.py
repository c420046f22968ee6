"""Structured results exchanged between the pipeline stages."""

from __future__ import annotations

from typing import List, Literal, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

__all__ = [
    "Complexity",
    "CellKind",
    "PLACEHOLDER",
    "FrozenBaseModel",
    "AnalysisResult",
    "Simplification",
    "MockComponent",
    "ModuleMapping",
    "DesignResult",
    "NotebookCell",
    "GeneratedContent",
]

Complexity = Literal["Simple", "Moderate", "Complex"]
CellKind = Literal["code", "markdown"]

PLACEHOLDER = "Not specified"


class FrozenBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class AnalysisResult(FrozenBaseModel):
    """Stage 1 output: what the paper is about and how hard it is to build."""

    intent: str = Field(..., description="Problem the paper solves, 1-2 sentences.")
    novelty: str = Field(..., description="What is new compared to prior work.")
    core_algorithms: List[str] = Field(default_factory=list, description="Key algorithms by name.")
    complexity: Complexity = Field(default="Moderate", description="Implementation complexity bucket.")
    dependencies: List[str] = Field(
        default_factory=list, description="Existing algorithms or models the paper builds on."
    )

    def to_prompt_block(self) -> str:
        return "\n".join(
            [
                f"- Intent: {self.intent}",
                f"- Novelty: {self.novelty}",
                f"- Core Algorithms: {', '.join(self.core_algorithms)}",
                f"- Complexity: {self.complexity}",
                f"- Dependencies: {', '.join(self.dependencies)}",
            ]
        )

    def to_markdown(self) -> str:
        lines = [
            "# Paper Analysis",
            "",
            f"**Intent**: {self.intent}",
            "",
            f"**Novelty**: {self.novelty}",
            "",
            f"**Complexity**: {self.complexity}",
            "",
            "## Core Algorithms",
            *[f"- {name}" for name in self.core_algorithms],
            "",
            "## Dependencies",
            *[f"- {name}" for name in self.dependencies],
        ]
        return "\n".join(lines).strip() + "\n"


class Simplification(FrozenBaseModel):
    original: str = Field(..., description="Heavy component in the paper.")
    simplified: str = Field(..., description="Toy replacement.")
    rationale: str = Field(default=PLACEHOLDER, description="Why the replacement preserves behaviour.")


class MockComponent(FrozenBaseModel):
    name: str
    kind: str = Field(default="component", validation_alias=AliasChoices("kind", "type"))
    implementation: str = Field(default=PLACEHOLDER)


class ModuleMapping(FrozenBaseModel):
    section: str = Field(..., description="Paper section name.")
    cell_purpose: str = Field(
        default=PLACEHOLDER,
        validation_alias=AliasChoices("cell_purpose", "notebook_cell"),
        description="Notebook cell that implements the section.",
    )


class DesignResult(FrozenBaseModel):
    """Stage 2 output: the toy architecture the notebook will implement."""

    architecture: str = Field(..., validation_alias=AliasChoices("architecture", "toy_architecture"))
    simplifications: List[Simplification] = Field(default_factory=list)
    mock_components: List[MockComponent] = Field(default_factory=list)
    expected_behavior: str = Field(default=PLACEHOLDER)
    module_breakdown: List[ModuleMapping] = Field(default_factory=list)

    def to_prompt_block(self) -> str:
        lines = [f"Architecture: {self.architecture}", "", "Simplifications:"]
        lines.extend(
            f"- {item.original} → {item.simplified} ({item.rationale})" for item in self.simplifications
        )
        lines.extend(["", "Mock Components:"])
        lines.extend(
            f"- {item.name} ({item.kind}): {item.implementation}" for item in self.mock_components
        )
        lines.extend(["", f"Expected Behavior: {self.expected_behavior}", "", "Module Breakdown:"])
        lines.extend(f"- {item.section} → {item.cell_purpose}" for item in self.module_breakdown)
        return "\n".join(lines)


class NotebookCell(FrozenBaseModel):
    kind: CellKind = Field(..., validation_alias=AliasChoices("kind", "cell_type"))
    source: str

    @property
    def is_code(self) -> bool:
        return self.kind == "code"


class GeneratedContent(FrozenBaseModel):
    """Terminal artefact of the pipeline."""

    guide: str
    suggested_filename: str = Field(
        ..., validation_alias=AliasChoices("suggested_filename", "notebookName", "notebook_name")
    )
    cells: Tuple[NotebookCell, ...]

    @property
    def code_cells(self) -> Tuple[NotebookCell, ...]:
        return tuple(cell for cell in self.cells if cell.is_code)
