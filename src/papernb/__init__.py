"""Turn research papers into runnable toy Jupyter notebooks."""

from .config import AppConfig, LLMSettings, PipelineSettings, RetrySettings
from .document import PaperDocument, load_paper
from .domain import PaperDomain, detect_domain
from .llm import (
    DEFAULT_MODELS,
    PROVIDERS,
    PaperNotebookError,
    ProviderConfig,
    RetryOptions,
    RetryPolicy,
    build_gateway,
    call_provider,
)
from .notebook import (
    AnalysisResult,
    DesignResult,
    GeneratedContent,
    NotebookCell,
    NotebookPipeline,
    PipelineStage,
    ProgressEvent,
    dumps_notebook,
    generate_notebook,
    parse_analysis,
    parse_design,
    parse_notebook,
    to_notebook_dict,
    write_notebook,
)

__version__ = "0.1.0"

__all__ = [
    "AppConfig",
    "LLMSettings",
    "PipelineSettings",
    "RetrySettings",
    "PaperDocument",
    "load_paper",
    "PaperDomain",
    "detect_domain",
    "DEFAULT_MODELS",
    "PROVIDERS",
    "PaperNotebookError",
    "ProviderConfig",
    "RetryOptions",
    "RetryPolicy",
    "build_gateway",
    "call_provider",
    "AnalysisResult",
    "DesignResult",
    "GeneratedContent",
    "NotebookCell",
    "NotebookPipeline",
    "PipelineStage",
    "ProgressEvent",
    "dumps_notebook",
    "generate_notebook",
    "parse_analysis",
    "parse_design",
    "parse_notebook",
    "to_notebook_dict",
    "write_notebook",
]
