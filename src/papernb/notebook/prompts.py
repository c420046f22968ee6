"""Prompt texts and message builders for the three generation stages."""

from __future__ import annotations

import textwrap
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from ..domain import PaperDomain
from .schema import AnalysisResult, DesignResult

__all__ = [
    "CELL_CODE_MARKER",
    "CELL_MARKDOWN_MARKER",
    "ANALYSIS_PROMPT",
    "DESIGN_PROMPT",
    "NOTEBOOK_SYSTEM_INSTRUCTION",
    "CELL_PROTOCOL",
    "DOMAIN_GUIDANCE",
    "PromptSet",
    "DEFAULT_PROMPTS",
    "StagePromptBuilder",
]

CELL_CODE_MARKER = "---CELL_CODE---"
CELL_MARKDOWN_MARKER = "---CELL_MARKDOWN---"


def _block(text: str) -> str:
    return textwrap.dedent(text).strip()


ANALYSIS_PROMPT = _block(
    """
    # Stage 1: Paper Analysis

    Extract structured information from the research paper to guide implementation planning.

    ## Required fields
    1. INTENT: what problem the paper solves (1-2 sentences)
    2. NOVELTY: what is new compared to prior work (1-2 sentences)
    3. CORE_ALGORITHMS: 2-4 key algorithms or techniques by name
    4. COMPLEXITY: Simple | Moderate | Complex
    5. DEPENDENCIES: existing algorithms or models the paper builds on

    ## Complexity scale
    Simple: single algorithm, few steps, minimal dependencies.
    Moderate: multi-stage pipeline, moderate dependencies, reasonable training time.
    Complex: distributed training, large models, many interacting components.

    ## Output format
    Answer with plain text, one labeled field per line, exactly like this:
    INTENT: <text>
    NOVELTY: <text>
    CORE_ALGORITHMS: <name>, <name>
    COMPLEXITY: <Simple|Moderate|Complex>
    DEPENDENCIES: <name>, <name>
    Do not answer in JSON and do not wrap the answer in code fences.
    """
)

DESIGN_PROMPT = _block(
    """
    # Stage 2: Toy Architecture Design

    Design a simplified implementation. The algorithm does not know it is a toy.

    Preserve interfaces, control flow, decision logic and algorithm structure.
    Simplify models (tiny networks, 5-50 units), data (synthetic, 50-100 samples),
    scale (single machine, CPU only) and compute (minutes, not hours).

    ## Required fields
    ARCHITECTURE: high-level toy design in 3-5 sentences
    SIMPLIFICATIONS: one line per heavy component, formatted `original -> simplified | rationale`
    MOCK_COMPONENTS: one line per mocked component, formatted `name (kind): implementation`
    EXPECTED_BEHAVIOR: the qualitative trends the toy should reproduce
    MODULE_BREAKDOWN: one line per paper section, formatted `section -> notebook cell purpose`

    Answer with plain labeled text in the order above. List items go on their own
    lines below the label. Do not answer in JSON.
    """
)

_NOTEBOOK_MISSION = _block(
    """
    # Research paper to toy implementation

    You turn academic research papers into runnable, pedagogical Jupyter notebooks
    that implement the paper's core algorithms with toy components. The goal is
    understanding through building, not reproduction or benchmarking.

    Never replicate exact paper numbers, use large pretrained models, require GPUs,
    or assume external APIs or private datasets. Prefer clarity, prints, plots and
    intuition over elegance.
    """
)

_NOTEBOOK_RUNTIME = _block(
    """
    # Runtime contract

    Assume a CPU-only Python 3.10 runtime with no credentials and no private network
    access. Prefer the standard library, numpy and matplotlib. Seed all randomness,
    generate all data inside the notebook and make sure it runs top to bottom
    without edits in under about fifteen minutes.
    """
)

_NOTEBOOK_TEMPLATE = _block(
    """
    # Notebook structure

    1. Title, citation and what the notebook teaches
    2. Setup: imports, seeds, environment check
    3. Problem setup in plain English
    4. Synthetic dataset generation (print a few examples)
    5. Reward, scoring or metric functions
    6. Mock models or components
    7. Baseline method
    8. The paper's main algorithms, one per cell, with verbose step-by-step prints
    9. Experiment loop collecting metrics over several trials
    10. Visualizations with labelled axes
    11. Summary: what we learned and how to extend it
    """
)

NOTEBOOK_SYSTEM_INSTRUCTION = "\n\n---\n\n".join(
    [_NOTEBOOK_MISSION, _NOTEBOOK_RUNTIME, _NOTEBOOK_TEMPLATE]
)

CELL_PROTOCOL = _block(
    f"""
    ## Output protocol
    Do not answer in JSON. Start with two preamble lines:
    TITLE: <short notebook title>
    GUIDE: <how to run the notebook and what to look for>

    Then emit every cell in order. Put the marker on its own line followed by the
    literal cell source:
    {CELL_MARKDOWN_MARKER}
    # Markdown text
    {CELL_CODE_MARKER}
    print("python source")

    Use {CELL_CODE_MARKER} for Python cells and {CELL_MARKDOWN_MARKER} for prose.
    Do not wrap cell sources in code fences.
    """
)

DOMAIN_GUIDANCE: Mapping[PaperDomain, str] = MappingProxyType(
    {
        PaperDomain.ML_TRAINING: _block(
            """
            ## Machine learning training domain
            Typical papers: optimizers, loss functions, training dynamics, regularization.
            Toy simplifications: synthetic XOR, spiral or moons data (50-200 points),
            2-3 layer networks with 10-50 parameters, 50-200 epochs.
            Key plots: loss curves (baseline vs proposed), gradient norms, learning rate schedule.
            """
        ),
        PaperDomain.NLP_LANGUAGE: _block(
            """
            ## NLP and language domain
            Typical papers: attention mechanisms, sequence modelling, text classification, embeddings.
            Toy simplifications: fixed vocabulary of 50-200 words, sequences of 5-20 tokens,
            embedding dimension 8-32, synthetic sentences with clear patterns, rule-based tokenization.
            Key plots: attention heatmaps, 2D embedding projections, accuracy or perplexity curves.
            """
        ),
        PaperDomain.VISION_PERCEPTION: _block(
            """
            ## Computer vision domain
            Typical papers: CNN architectures, detection, segmentation, representation learning.
            Toy simplifications: 8x8 to 28x28 synthetic images of simple shapes, 1-2 conv layers
            with a handful of filters, hand-made bounding boxes or masks.
            Key plots: example images with predictions, learned filters, accuracy curves.
            """
        ),
        PaperDomain.RL_CONTROL: _block(
            """
            ## Reinforcement learning and control domain
            Typical papers: policy optimization, value methods, exploration, reward modelling.
            Toy simplifications: gridworlds or bandits with a few states and actions,
            tabular or tiny linear policies, 100-500 short episodes.
            Key plots: episode return curves, policy or value heatmaps, action distributions.
            """
        ),
        PaperDomain.OTHER: _block(
            """
            ## General domain
            Identify the core computational idea and build the smallest synthetic setting
            where it is observable. Keep every component replaceable and print intermediate
            state generously.
            Key plots: whichever trend the paper's main claim depends on.
            """
        ),
    }
)


@dataclass(frozen=True, slots=True)
class PromptSet:
    """Immutable bundle of every prompt text the pipeline sends."""

    analysis_system: str = ANALYSIS_PROMPT
    design_system: str = DESIGN_PROMPT
    notebook_system: str = NOTEBOOK_SYSTEM_INSTRUCTION
    cell_protocol: str = CELL_PROTOCOL
    domain_guidance: Mapping[PaperDomain, str] = field(default_factory=lambda: DOMAIN_GUIDANCE)

    def guidance_for(self, domain: PaperDomain) -> str:
        return self.domain_guidance.get(domain) or self.domain_guidance.get(PaperDomain.OTHER, "")


DEFAULT_PROMPTS = PromptSet()


class StagePromptBuilder:
    """Assemble the system/human message pair for each stage."""

    def __init__(self, prompts: PromptSet | None = None) -> None:
        self.prompts = prompts or DEFAULT_PROMPTS

    def analysis_messages(self, paper_excerpt: str) -> List[BaseMessage]:
        excerpt = paper_excerpt.strip()
        if not excerpt:
            raise ValueError("Paper text is empty; unable to build prompt.")
        user_prompt = (
            "Analyze this research paper and extract the required fields.\n\n"
            f"Paper content:\n{excerpt}"
        )
        return [SystemMessage(content=self.prompts.analysis_system), HumanMessage(content=user_prompt)]

    def design_messages(
        self,
        analysis: AnalysisResult,
        paper_excerpt: str,
        domain: PaperDomain,
    ) -> List[BaseMessage]:
        system_prompt = f"{self.prompts.design_system}\n\n{self.prompts.guidance_for(domain)}"
        user_prompt = "\n".join(
            [
                "Based on the following paper analysis, design a toy implementation.",
                "",
                "## Paper Analysis",
                analysis.to_prompt_block(),
                "",
                "## Paper Content (for reference)",
                paper_excerpt.strip(),
                "",
                "Design the toy architecture following the guidelines.",
            ]
        )
        return [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]

    def notebook_messages(
        self,
        analysis: AnalysisResult,
        design: DesignResult,
        paper_excerpt: str,
        domain: PaperDomain,
    ) -> List[BaseMessage]:
        user_prompt = "\n".join(
            [
                "Generate a complete, runnable Jupyter notebook implementing this paper as a toy.",
                "",
                "## Paper Analysis",
                analysis.to_prompt_block(),
                "",
                "## Toy Design",
                design.to_prompt_block(),
                "",
                "## Domain-Specific Guidance",
                self.prompts.guidance_for(domain),
                "",
                "## Paper Content",
                paper_excerpt.strip(),
                "",
                self.prompts.cell_protocol,
            ]
        )
        return [SystemMessage(content=self.prompts.notebook_system), HumanMessage(content=user_prompt)]
