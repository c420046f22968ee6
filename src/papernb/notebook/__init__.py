"""Paper-to-notebook pipeline: prompts, parsers, serialization and orchestration."""

from .ipynb import dumps_notebook, to_notebook_dict, write_notebook
from .orchestrator import NotebookPipeline, generate_notebook
from .parsing import parse_analysis, parse_design, parse_notebook
from .prompts import DEFAULT_PROMPTS, PromptSet, StagePromptBuilder
from .schema import (
    AnalysisResult,
    DesignResult,
    GeneratedContent,
    MockComponent,
    ModuleMapping,
    NotebookCell,
    Simplification,
)
from .state import PipelineStage, ProgressEvent, TruncationTable

__all__ = [
    "AnalysisResult",
    "DesignResult",
    "GeneratedContent",
    "MockComponent",
    "ModuleMapping",
    "NotebookCell",
    "Simplification",
    "PromptSet",
    "DEFAULT_PROMPTS",
    "StagePromptBuilder",
    "parse_analysis",
    "parse_design",
    "parse_notebook",
    "to_notebook_dict",
    "dumps_notebook",
    "write_notebook",
    "PipelineStage",
    "ProgressEvent",
    "TruncationTable",
    "NotebookPipeline",
    "generate_notebook",
]
