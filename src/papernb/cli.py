"""Command line interface for the paper-to-notebook pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

from dotenv import load_dotenv

from .config import AppConfig
from .document import PaperDocument, load_paper
from .domain import PaperDomain
from .llm.errors import PaperNotebookError
from .llm.providers import PROVIDERS, ProviderConfig
from .notebook.ipynb import write_notebook
from .notebook.orchestrator import NotebookPipeline
from .notebook.state import PipelineStage, PipelineState, ProgressEvent

__all__ = ["main", "build_parser"]

logger = logging.getLogger(__name__)

COMMAND_STAGES = {
    "analyze": PipelineStage.ANALYZING,
    "design": PipelineStage.DESIGNING,
    "generate": PipelineStage.COMPLETE,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="papernb",
        description=(
            "Turn a research paper into a runnable toy Jupyter notebook through a "
            "three-stage analyze → design → generate pipeline."
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        allow_abbrev=False,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in [
        ("analyze", "Run the analysis stage and write analysis.json."),
        ("design", "Run analysis and design stages and write design.json."),
        ("generate", "Run the full pipeline and write the notebook and guide."),
    ]:
        sub = subparsers.add_parser(
            name,
            help=help_text,
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
            allow_abbrev=False,
        )
        _register_shared_arguments(sub)

    return parser


def _register_shared_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--input",
        required=True,
        help="Path to the paper (.pdf, .md or .txt).",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Directory where artefacts are written (defaults to PAPERNB_OUTPUT_DIR or ./output).",
    )
    parser.add_argument(
        "--provider",
        choices=PROVIDERS,
        default=None,
        help="LLM provider (defaults to PAPERNB_PROVIDER or gemini).",
    )
    parser.add_argument(
        "--model",
        default=None,
        help="Model identifier; the provider default is used when omitted.",
    )
    parser.add_argument(
        "--api-key-env",
        dest="api_key_env",
        default=None,
        help="Environment variable containing the provider API key.",
    )
    parser.add_argument(
        "--ollama-endpoint",
        dest="ollama_endpoint",
        default=None,
        help="Base URL of a local Ollama server.",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        default=None,
        help="Sampling temperature.",
    )
    parser.add_argument(
        "--max-tokens",
        dest="max_tokens",
        type=_positive_int,
        default=None,
        help="Maximum output tokens per stage.",
    )
    parser.add_argument(
        "--max-attempts",
        dest="max_attempts",
        type=_positive_int,
        default=None,
        help="Attempts per provider call before giving up.",
    )
    parser.add_argument(
        "--domain",
        choices=[domain.value for domain in PaperDomain],
        default=None,
        help="Research domain; detected from the paper text when omitted.",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )


def _positive_int(token: str) -> int:
    try:
        value = int(token)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid integer value: {token}") from exc
    if value <= 0:
        raise argparse.ArgumentTypeError("Values must be positive integers")
    return value


def _build_app_config(args: argparse.Namespace) -> AppConfig:
    config = AppConfig().with_output(args.output)
    llm = config.llm
    if args.provider:
        llm = replace(llm, provider=args.provider)
    if args.ollama_endpoint:
        llm = replace(llm, ollama_endpoint=args.ollama_endpoint)
    if args.api_key_env:
        llm = replace(llm, api_key_env=args.api_key_env)
    retry = config.retry
    if args.max_attempts is not None:
        retry = replace(retry, max_attempts=args.max_attempts)
    return replace(config, llm=llm, retry=retry)


def _build_provider_config(args: argparse.Namespace, config: AppConfig) -> ProviderConfig:
    api_key = None
    if args.api_key_env:
        api_key = config.llm.resolve_api_key()
        if not api_key:
            raise ValueError(f"Environment variable '{args.api_key_env}' for API key is not set.")
    return config.llm.provider_config(
        model=args.model,
        api_key=api_key,
        temperature=args.temperature,
        max_tokens=args.max_tokens,
    )


def _print_progress(event: ProgressEvent) -> None:
    print(event.format(), file=sys.stderr)


def _print_retry(attempt: int, error: BaseException, delay_ms: int) -> None:
    print(f"  attempt {attempt} failed: {error} (retrying in {delay_ms / 1000:.1f}s)", file=sys.stderr)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _write_json(path: Path, payload: Any) -> Path:
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return path


def _write_artefacts(state: PipelineState, output_dir: Path) -> dict[str, str]:
    artefacts: dict[str, str] = {}
    if "analysis" in state:
        path = _write_json(output_dir / "analysis.json", state["analysis"].model_dump(mode="json"))
        artefacts["analysis"] = str(path)
    if "design" in state:
        path = _write_json(output_dir / "design.json", state["design"].model_dump(mode="json"))
        artefacts["design"] = str(path)
    if "content" in state:
        content = state["content"]
        artefacts["notebook"] = str(write_notebook(content, output_dir))
        guide_path = output_dir / "guide.md"
        guide_path.write_text(content.guide.strip() + "\n", encoding="utf-8")
        artefacts["guide"] = str(guide_path)
    return artefacts


async def _run(
    command: str,
    document: PaperDocument,
    config: AppConfig,
    provider_config: ProviderConfig,
) -> PipelineState:
    pipeline = NotebookPipeline.from_app_config(
        config,
        provider_config,
        on_progress=_print_progress,
        on_retry=_print_retry,
    )
    return await pipeline.run_until(COMMAND_STAGES[command], document.text, domain=document.domain)


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    started_at = _timestamp()
    try:
        config = _build_app_config(args)
        provider_config = _build_provider_config(args, config)
        document = load_paper(args.input, domain=args.domain)
        state = asyncio.run(_run(args.command, document, config, provider_config))
        output_dir = config.ensure_output_dir()
        artefacts = _write_artefacts(state, output_dir)
    except (PaperNotebookError, FileNotFoundError, ValueError, RuntimeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        details = getattr(exc, "details", None)
        if details:
            print(f"Details: {details}", file=sys.stderr)
        return 1

    metadata = {
        "run_id": uuid.uuid4().hex[:12],
        "command": args.command,
        "input": str(document.source),
        "title": document.title,
        "domain": document.domain.value,
        "output_dir": str(output_dir),
        "provider": provider_config.provider,
        "model": provider_config.model,
        "temperature": provider_config.temperature,
        "max_tokens": provider_config.max_tokens,
        "max_attempts": config.retry.max_attempts,
        "started_at": started_at,
        "finished_at": _timestamp(),
        "artefacts": artefacts,
    }
    _write_json(output_dir / "run.json", metadata)
    for name, path in artefacts.items():
        print(f"{name}: {path}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
