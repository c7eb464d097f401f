"""Click CLI entry point: score a document, refine it, gate it and write the report."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from src.documents import load_evidence, parse_document, resolve_evidence_paths
from src.fixers import build_fixers
from src.models import Dimension, Evidence, FixerResult, RefinementAttempt
from src.observer import RefinementObserver
from src.orchestrator import FixerOrchestrator
from src.output import print_attempt_summary, print_decision, save_to_file
from src.providers.anthropic import AnthropicProvider
from src.providers.base import AIProvider
from src.providers.gemini import GeminiProvider
from src.providers.openai_provider import OpenAIProvider
from src.quality_gate import QualityTier, gate_refinement_result
from src.reconciler import EditReconciler
from src.refinement import refine_until_passing
from src.retry import RetryPolicy
from src.scoring import ConsensusScorer, ScoringError

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

# Keyed by the `sdk` field in settings.yaml
PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}

EXIT_FAILED_TIER = 2


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_all_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build all available providers. Returns dict keyed by name."""
    providers: dict[str, AIProvider] = {}
    for name in sorted(config.available_providers):
        model_cfg = config.models[name]
        provider_cls = PROVIDER_CLASSES.get(model_cfg.sdk)
        if provider_cls is None:
            logger.warning("Provider '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            providers[name] = provider_cls(model_cfg)
        except Exception as exc:
            logger.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers


def _resolve_max_attempts(flag: int | None, meta: dict, default: int) -> int:
    """CLI flag wins; frontmatter only fills in when the flag is not set.

    Raises:
        ValueError: The chosen value is not an integer >= 1.
    """
    if flag is not None:
        return flag
    raw = meta.get("max_attempts", default)
    # str() first so booleans and floats are rejected rather than coerced
    try:
        value = int(str(raw).strip())
    except ValueError:
        value = 0
    if value < 1:
        raise ValueError(f"max_attempts must be an integer >= 1, got {raw!r}")
    return value


def _pick_provider(all_providers: dict[str, AIProvider], preferred: str, role: str) -> AIProvider:
    """Preferred provider if available, otherwise the first available one."""
    if preferred in all_providers:
        return all_providers[preferred]
    fallback = next(iter(all_providers.values()))
    logger.warning("%s model '%s' unavailable, falling back to '%s'", role, preferred, fallback.name())
    return fallback


def _pick_scoring_panel(
    all_providers: dict[str, AIProvider],
    panel_names: list[str],
    fallback: AIProvider,
) -> list[AIProvider]:
    panel = [all_providers[n] for n in panel_names if n in all_providers]
    return panel or [fallback]


class _ConsoleObserver(RefinementObserver):
    """Prints per-round progress lines above the spinner."""

    def __init__(self, progress: Progress) -> None:
        self._progress = progress

    def on_fixers_selected(self, dimensions: list[Dimension]) -> None:
        self._progress.print(f"[cyan]>>[/cyan] Deploying fixers: {', '.join(d.value for d in dimensions)}")

    def on_fixer_complete(self, result: FixerResult) -> None:
        if result.failed:
            self._progress.print(f"[red]FAIL[/red] {result.fixer_type.value}: {result.error}")

    def on_round_complete(self, attempt: RefinementAttempt) -> None:
        self._progress.print(
            f"[green]OK[/green] Attempt {attempt.attempt_number}: "
            f"{attempt.score_before:.1f} -> {attempt.score_after:.1f} "
            f"({len(attempt.edits_applied)} applied, {len(attempt.edits_skipped)} skipped)"
        )


async def _run_refinement(
    document: str,
    source: str,
    config: AppConfig,
    all_providers: dict[str, AIProvider],
    evidence: list[Evidence],
    max_attempts: int,
    output_dir: Path,
    slug: str | None,
) -> QualityTier:
    """Score, refine and report one document. Returns the final tier."""
    retry_policy = RetryPolicy(
        max_attempts=config.retry.max_attempts,
        base_delay_sec=config.retry.base_delay_sec,
        max_delay_sec=config.retry.max_delay_sec,
    )
    fixer_provider = _pick_provider(all_providers, config.defaults.fixer_model, "Fixer")
    reconciler_provider = _pick_provider(all_providers, config.defaults.reconciler_model, "Reconciler")
    panel = _pick_scoring_panel(all_providers, config.defaults.scoring_panel, reconciler_provider)

    scorer = ConsensusScorer(panel, config.prompts, config.fixers, retry_policy=retry_policy)

    console.print("\n[bold cyan]Quality Refinery[/bold cyan]")
    console.print(f"Fixers: {fixer_provider.name()} | Reconciler: {reconciler_provider.name()}")
    console.print(f"Scoring panel: {', '.join(p.name() for p in panel)}")
    console.print(f"Evidence: {len(evidence)} file(s) | Max attempts: {max_attempts}\n")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        observer = _ConsoleObserver(progress)
        orchestrator = FixerOrchestrator(
            build_fixers(
                config.fixers,
                fixer_provider,
                config.prompts,
                retry_policy=retry_policy,
                max_edits=config.defaults.max_edits_per_fixer,
            ),
            timeout_sec=config.defaults.fixer_timeout_sec,
            observer=observer,
        )
        reconciler = EditReconciler(reconciler_provider, config.prompts, retry_policy=retry_policy)

        task = progress.add_task("Scoring initial document...", total=None)
        initial = await scorer.score(document)
        progress.print(f"Initial score: {initial.overall_score:.1f}/10")

        progress.update(task, description="Refining...")
        result = await refine_until_passing(
            document=document,
            initial_consensus=initial,
            scoring_fn=scorer,
            orchestrator=orchestrator,
            reconciler=reconciler,
            max_attempts=max_attempts,
            evidence=evidence,
            observer=observer,
        )

    decision = gate_refinement_result(result)
    print_attempt_summary(result.attempts)
    print_decision(result, decision)

    saved_path = save_to_file(result, decision, output_dir, source=source, slug_override=slug)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return decision.tier


@click.command()
@click.argument("document_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--evidence", "evidence_files", multiple=True,
              type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Supporting evidence file (repeatable)")
@click.option("--max-attempts", default=None, type=click.IntRange(min=1),
              help="Refinement attempt budget (default: frontmatter, then config)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(
    document_file: Path,
    evidence_files: tuple[Path, ...],
    max_attempts: int | None,
    output_path: str | None,
    verbose: bool,
) -> None:
    """Quality Refinery -- score a document and refine it until it passes.

    \b
    Examples:
      python -m src.cli brief.md
      python -m src.cli brief.md --evidence sources/report.md --max-attempts 2
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    document, meta = parse_document(document_file)
    if not document:
        console.print(f"[bold red]Error:[/bold red] {document_file} is empty.")
        sys.exit(1)

    try:
        effective_attempts = _resolve_max_attempts(max_attempts, meta, config.defaults.max_attempts)
    except ValueError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)
    effective_output = Path(output_path) if output_path else config.defaults.output_dir
    evidence = [
        load_evidence(p)
        for p in resolve_evidence_paths(document_file, meta, list(evidence_files))
    ]

    all_providers = _build_all_providers(config)
    if not all_providers:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    try:
        tier = asyncio.run(
            _run_refinement(
                document=document,
                source=str(document_file),
                config=config,
                all_providers=all_providers,
                evidence=evidence,
                max_attempts=effective_attempts,
                output_dir=effective_output,
                slug=document_file.stem,
            )
        )
    except ScoringError as exc:
        console.print(f"[bold red]Scoring failed:[/bold red] {exc}")
        sys.exit(1)

    if tier is QualityTier.FAILED:
        sys.exit(EXIT_FAILED_TIER)


if __name__ == "__main__":
    main()
