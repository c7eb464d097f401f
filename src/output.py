"""Rich console output and markdown report for refinement runs."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from src.models import RefinementAttempt, RefinementRunResult
from src.quality_gate import QualityTier, TierDecision

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_TIER_STYLES = {
    QualityTier.HIGH: "bold green",
    QualityTier.ACCEPTABLE: "bold yellow",
    QualityTier.FAILED: "bold red",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _truncate(text: str, limit: int = 80) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."


def print_attempt_summary(attempts: list[RefinementAttempt]) -> None:
    """Print one row per refinement attempt."""
    console.print(Rule("[bold cyan]Refinement Attempts[/bold cyan]"))
    if not attempts:
        console.print(Text("No refinement needed.", style="dim"))
        return

    table = Table(show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Score")
    table.add_column("Fixers")
    table.add_column("Applied", justify="right")
    table.add_column("Skipped", justify="right")
    for attempt in attempts:
        delta = attempt.score_after - attempt.score_before
        table.add_row(
            str(attempt.attempt_number),
            f"{attempt.score_before:.1f} -> {attempt.score_after:.1f} ({delta:+.1f})",
            ", ".join(d.value for d in attempt.fixers_deployed) or "none",
            str(len(attempt.edits_applied)),
            str(len(attempt.edits_skipped)),
        )
    console.print(table)


def print_decision(result: RefinementRunResult, decision: TierDecision) -> None:
    """Print the final score, tier and any warning."""
    style = _TIER_STYLES[decision.tier]
    body = Text()
    body.append(f"Final score: {result.final_score:.1f}/10\n")
    body.append(f"Tier: {decision.tier.value}\n", style=style)
    body.append(f"Publishable: {'yes' if decision.publishable else 'no'}")
    if decision.warning_badge:
        body.append(" (with warning badge)")
    body.append(f"\nRefund: {'yes' if decision.refund_required else 'no'}")
    if result.warning_reason:
        body.append(f"\n\n{result.warning_reason}", style="yellow")
    console.print(
        Panel(
            body,
            title="[bold]Quality Gate[/bold]",
            subtitle=f"{result.total_processing_time_ms / 1000:.1f}s",
            border_style=style,
        )
    )


def _attempt_lines(attempt: RefinementAttempt) -> list[str]:
    lines = [
        f"## Attempt {attempt.attempt_number}",
        "",
        f"**Score:** {attempt.score_before:.1f} -> {attempt.score_after:.1f}",
        f"**Fixers deployed:** {', '.join(d.value for d in attempt.fixers_deployed) or 'none'}",
        f"**Duration:** {attempt.processing_time_ms / 1000:.1f}s",
        "",
    ]
    if attempt.edits_applied:
        lines += ["### Edits applied", ""]
        for edit in attempt.edits_applied:
            lines.append(
                f"- [{edit.priority.value}] *{edit.section}*: "
                f"\"{_truncate(edit.original_text)}\" -> \"{_truncate(edit.suggested_text)}\" "
                f"({edit.rationale})"
            )
        lines.append("")
    if attempt.edits_skipped:
        lines += ["### Edits skipped", ""]
        for skipped in attempt.edits_skipped:
            lines.append(
                f"- *{skipped.edit.section}*: \"{_truncate(skipped.edit.original_text)}\" ({skipped.reason})"
            )
        lines.append("")
    if attempt.dimension_changes:
        lines += ["| Dimension | Before | After |", "|---|---|---|"]
        for dim, (before, after) in attempt.dimension_changes.items():
            lines.append(f"| {dim.value} | {before:.1f} | {after:.1f} |")
        lines.append("")
    return lines


def save_to_file(
    result: RefinementRunResult,
    decision: TierDecision,
    output_dir: Path,
    source: str,
    slug_override: str | None = None,
) -> Path:
    """Save the refined document and its audit trail as a markdown file.

    Args:
        result: The completed RefinementRunResult.
        decision: Quality gate decision for the result.
        output_dir: Directory to save the file in.
        source: Where the document came from (shown in the header).
        slug_override: Filename stem; derived from the document otherwise.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(result.final_document[:80]) or "document"
    filepath = output_dir / f"{timestamp}_{slug}.md"

    lines: list[str] = [
        "# Refinement Report",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Source:** {source}",
        f"**Final score:** {result.final_score:.1f}/10",
        f"**Outcome:** {'passed' if result.success else 'not passed'}",
        f"**Tier:** {decision.tier.value}",
        f"**Publishable:** {'yes' if decision.publishable else 'no'}",
        f"**Refund required:** {'yes' if decision.refund_required else 'no'}",
        f"**Attempts:** {len(result.attempts)}",
        f"**Duration:** {result.total_processing_time_ms / 1000:.1f}s",
    ]
    if result.warning_reason:
        lines.append(f"**Warning:** {result.warning_reason}")
    lines += ["", "---", ""]

    for attempt in result.attempts:
        lines += _attempt_lines(attempt)

    lines += ["## Final Document", "", result.final_document, ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Report saved to: %s", filepath)
    return filepath
