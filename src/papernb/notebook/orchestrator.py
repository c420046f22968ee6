"""LangGraph-powered orchestration of the paper-to-notebook pipeline.

The pipeline chains three model stages (analysis, design, generation) behind a
network-free preparation step. Each stage builds its prompt from the structured
result of the previous one, calls the configured provider through the retry
policy, and parses the reply into a frozen result model. A pipeline instance
serves exactly one invocation; create a new one to run again.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, List, Optional

import httpx
from langchain_core.messages import BaseMessage
from langgraph.graph import END, START, StateGraph

from ..domain import PaperDomain, detect_domain
from ..llm.errors import PipelineCancelledError, StageTimeoutError
from ..llm.providers import ProviderConfig, ProviderGateway, build_gateway
from ..llm.retry import RetryObserver, RetryOptions, RetryPolicy
from .parsing import parse_analysis, parse_design, parse_notebook
from .prompts import PromptSet, StagePromptBuilder
from .schema import GeneratedContent
from .state import (
    DEFAULT_STAGE_TIMEOUT,
    DEFAULT_TRUNCATION,
    STAGE_STEPS,
    PipelineStage,
    PipelineState,
    ProgressCallback,
    ProgressEvent,
    StageTracker,
    TruncationTable,
    truncate_text,
)

if TYPE_CHECKING:
    from ..config import AppConfig

__all__ = ["NotebookPipeline", "generate_notebook"]

logger = logging.getLogger(__name__)

WORKFLOW_ORDER = (
    PipelineStage.PREPARING,
    PipelineStage.ANALYZING,
    PipelineStage.DESIGNING,
    PipelineStage.GENERATING,
)

_STAGE_MESSAGES = {
    PipelineStage.PREPARING: "Validating paper text and detecting the research domain...",
    PipelineStage.ANALYZING: "Analyzing paper structure and extracting key concepts...",
    PipelineStage.DESIGNING: "Designing toy architecture and simplification strategy...",
    PipelineStage.GENERATING: "Generating complete Jupyter notebook implementation...",
}


class NotebookPipeline:
    """Coordinate the four-node LangGraph workflow for one generation."""

    def __init__(
        self,
        provider_config: ProviderConfig,
        *,
        prompts: PromptSet | None = None,
        retry_options: RetryOptions | None = None,
        retry_policy: RetryPolicy | None = None,
        truncation: TruncationTable | None = None,
        stage_timeout: float = DEFAULT_STAGE_TIMEOUT,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
        gateway: ProviderGateway | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if stage_timeout <= 0:
            raise ValueError("stage_timeout must be positive")
        self.config = provider_config
        self._gateway = gateway or build_gateway(provider_config, client=client)
        self._prompts = StagePromptBuilder(prompts)
        self._retry_options = retry_options or RetryOptions()
        self._retry = retry_policy or RetryPolicy(cancel_event=cancel_event)
        self._truncation = truncation or DEFAULT_TRUNCATION
        self._stage_timeout = stage_timeout
        self._on_progress = on_progress
        self._cancel_event = cancel_event
        self._tracker = StageTracker()
        self._started = False

    @classmethod
    def from_app_config(
        cls,
        app_config: AppConfig,
        provider_config: ProviderConfig,
        *,
        on_progress: ProgressCallback | None = None,
        on_retry: RetryObserver | None = None,
        **kwargs,
    ) -> "NotebookPipeline":
        return cls(
            provider_config,
            retry_options=app_config.retry.options(on_retry=on_retry),
            truncation=app_config.pipeline.truncation,
            stage_timeout=app_config.pipeline.stage_timeout,
            on_progress=on_progress,
            **kwargs,
        )

    @property
    def stage(self) -> Optional[PipelineStage]:
        return self._tracker.stage

    @property
    def history(self) -> List[PipelineStage]:
        return list(self._tracker.history)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def run(
        self,
        paper_text: str,
        *,
        domain: PaperDomain | str | None = None,
    ) -> PipelineState:
        """Execute every stage and return the final workflow state."""

        return await self.run_until(PipelineStage.COMPLETE, paper_text, domain=domain)

    async def run_until(
        self,
        final_stage: PipelineStage | str,
        paper_text: str,
        *,
        domain: PaperDomain | str | None = None,
    ) -> PipelineState:
        """Run stages in order up to and including ``final_stage``."""

        target = PipelineStage(final_stage)
        if target is PipelineStage.ERRORED:
            raise ValueError(f"Unsupported stage '{final_stage}'.")
        if self._started:
            raise RuntimeError("NotebookPipeline instances are single-use; create a new one.")
        self._started = True

        initial_state: PipelineState = {"paper_text": paper_text}
        if domain is not None:
            initial_state["domain"] = PaperDomain.parse(domain)

        workflow = self._build_workflow(target)
        try:
            final_state = await workflow.ainvoke(
                initial_state,
                config={"configurable": {"thread_id": f"papernb-{uuid.uuid4().hex[:12]}"}},
            )
        except Exception as exc:
            current = self._tracker.stage
            if current is not None and not current.is_terminal:
                self._tracker.advance(PipelineStage.ERRORED)
            logger.error("Pipeline failed during %s: %s", current.value if current else "start", exc)
            raise

        if target is PipelineStage.COMPLETE:
            self._tracker.advance(PipelineStage.COMPLETE)
            logger.info("Pipeline complete: %s", final_state["content"].suggested_filename)
        return final_state

    # ------------------------------------------------------------------
    # LangGraph node implementations
    # ------------------------------------------------------------------
    async def prepare(self, state: PipelineState) -> PipelineState:
        self._enter(PipelineStage.PREPARING)
        paper_text = state.get("paper_text") or ""
        if not paper_text.strip():
            raise ValueError("Paper text is empty; nothing to generate a notebook from.")
        domain = state.get("domain") or detect_domain(paper_text)
        logger.info("Paper domain: %s (%s characters)", domain.value, len(paper_text))

        updated = dict(state)
        updated["domain"] = domain
        return updated  # type: ignore[return-value]

    async def analyze(self, state: PipelineState) -> PipelineState:
        self._enter(PipelineStage.ANALYZING)
        excerpt = self._excerpt(state, PipelineStage.ANALYZING)
        messages = self._prompts.analysis_messages(excerpt)
        raw = await self._call_stage(PipelineStage.ANALYZING, messages)

        updated = dict(state)
        updated["analysis"] = parse_analysis(raw)
        return updated  # type: ignore[return-value]

    async def design(self, state: PipelineState) -> PipelineState:
        self._enter(PipelineStage.DESIGNING)
        excerpt = self._excerpt(state, PipelineStage.DESIGNING)
        messages = self._prompts.design_messages(state["analysis"], excerpt, state["domain"])
        raw = await self._call_stage(PipelineStage.DESIGNING, messages)

        updated = dict(state)
        updated["design"] = parse_design(raw)
        return updated  # type: ignore[return-value]

    async def generate(self, state: PipelineState) -> PipelineState:
        self._enter(PipelineStage.GENERATING)
        excerpt = self._excerpt(state, PipelineStage.GENERATING)
        messages = self._prompts.notebook_messages(
            state["analysis"], state["design"], excerpt, state["domain"]
        )
        raw = await self._call_stage(PipelineStage.GENERATING, messages)
        content = parse_notebook(raw)
        logger.info("Recovered %s notebook cells", len(content.cells))

        updated = dict(state)
        updated["content"] = content
        return updated  # type: ignore[return-value]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _build_workflow(self, final_stage: PipelineStage):
        handlers = {
            PipelineStage.PREPARING: self.prepare,
            PipelineStage.ANALYZING: self.analyze,
            PipelineStage.DESIGNING: self.design,
            PipelineStage.GENERATING: self.generate,
        }
        graph = StateGraph(PipelineState)
        previous = START
        for stage in WORKFLOW_ORDER:
            graph.add_node(stage.value, handlers[stage])
            graph.add_edge(previous, stage.value)
            previous = stage.value
            if stage is final_stage:
                break
        graph.add_edge(previous, END)
        return graph.compile()

    def _enter(self, stage: PipelineStage) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise PipelineCancelledError("Generation was cancelled.")
        self._tracker.advance(stage)
        event = ProgressEvent.for_stage(stage, _STAGE_MESSAGES[stage])
        logger.info("Stage %s: %s", event.step_name, event.message)
        if self._on_progress is not None:
            self._on_progress(event)

    def _excerpt(self, state: PipelineState, stage: PipelineStage) -> str:
        return truncate_text(state["paper_text"], self._truncation.limit(stage, self.config.provider))

    async def _call_stage(self, stage: PipelineStage, messages: List[BaseMessage]) -> str:
        system_prompt, user_prompt = (str(message.content) for message in messages)

        async def attempt() -> str:
            return await self._gateway.call(system_prompt, user_prompt)

        task = asyncio.ensure_future(self._retry.execute(attempt, self._retry_options))
        try:
            done, _ = await asyncio.wait({task}, timeout=self._stage_timeout)
        except asyncio.CancelledError:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise
        if task not in done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise StageTimeoutError(
                f"{STAGE_STEPS[stage][1]} stage did not finish within {self._stage_timeout:.0f}s."
            )
        return task.result()


async def generate_notebook(
    paper_text: str,
    provider_config: ProviderConfig,
    *,
    domain: PaperDomain | str | None = None,
    on_progress: ProgressCallback | None = None,
    **kwargs,
) -> GeneratedContent:
    """Run the full pipeline once and return the generated notebook content."""

    pipeline = NotebookPipeline(provider_config, on_progress=on_progress, **kwargs)
    state = await pipeline.run(paper_text, domain=domain)
    return state["content"]
