"""Load documents and supporting evidence from markdown files with optional YAML frontmatter."""

import logging
from pathlib import Path

import frontmatter

from src.models import Evidence

logger = logging.getLogger(__name__)


def parse_document(file_path: Path) -> tuple[str, dict]:
    """Parse a document file.

    Returns:
        (content, metadata). Recognised metadata keys: ``max_attempts`` (int)
        and ``evidence`` (list of paths relative to the document). If there
        is no frontmatter, metadata is {}.
    """
    post = frontmatter.load(str(file_path))
    return post.content.strip(), dict(post.metadata)


def load_evidence(file_path: Path) -> Evidence:
    """Load one evidence file. Frontmatter may carry ``title`` and ``url``."""
    post = frontmatter.load(str(file_path))
    return Evidence(
        title=str(post.metadata.get("title") or file_path.stem),
        content=post.content.strip(),
        url=post.metadata.get("url"),
    )


def resolve_evidence_paths(document_path: Path, metadata: dict, extra: list[Path]) -> list[Path]:
    """Evidence listed in frontmatter (relative to the document) plus CLI paths, deduplicated."""
    listed = metadata.get("evidence") or []
    if isinstance(listed, str):
        listed = [listed]

    paths: list[Path] = []
    for entry in [document_path.parent / str(p) for p in listed] + list(extra):
        resolved = entry.resolve()
        if resolved in paths:
            continue
        if not resolved.exists():
            logger.warning("Evidence file not found, skipping: %s", entry)
            continue
        paths.append(resolved)
    return paths
