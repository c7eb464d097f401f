"""Unit tests for src/documents.py (no API calls)."""

import textwrap
from pathlib import Path

from src.documents import load_evidence, parse_document, resolve_evidence_paths


def test_parse_document_no_frontmatter(tmp_path: Path) -> None:
    f = tmp_path / "brief.md"
    f.write_text("## Summary\nRemote work helps.\n", encoding="utf-8")
    content, metadata = parse_document(f)
    assert content == "## Summary\nRemote work helps."
    assert metadata == {}


def test_parse_document_with_frontmatter(tmp_path: Path) -> None:
    f = tmp_path / "brief.md"
    f.write_text(
        textwrap.dedent("""\
            ---
            max_attempts: 2
            evidence:
              - sources/survey.md
            ---
            ## Summary
            Remote work helps.
        """),
        encoding="utf-8",
    )
    content, metadata = parse_document(f)
    assert content.startswith("## Summary")
    assert metadata["max_attempts"] == 2
    assert metadata["evidence"] == ["sources/survey.md"]


def test_load_evidence_uses_frontmatter_title_and_url(tmp_path: Path) -> None:
    f = tmp_path / "survey.md"
    f.write_text(
        "---\ntitle: Remote Work Survey\nurl: https://example.org/survey\n---\n40% of firms...\n",
        encoding="utf-8",
    )
    evidence = load_evidence(f)
    assert evidence.title == "Remote Work Survey"
    assert evidence.url == "https://example.org/survey"
    assert evidence.content == "40% of firms..."


def test_load_evidence_falls_back_to_filename(tmp_path: Path) -> None:
    f = tmp_path / "bls-data.md"
    f.write_text("Raw numbers.", encoding="utf-8")
    evidence = load_evidence(f)
    assert evidence.title == "bls-data"
    assert evidence.url is None


def test_resolve_evidence_paths_relative_to_document(tmp_path: Path) -> None:
    (tmp_path / "sources").mkdir()
    listed = tmp_path / "sources" / "survey.md"
    listed.write_text("x", encoding="utf-8")
    extra = tmp_path / "extra.md"
    extra.write_text("y", encoding="utf-8")
    document = tmp_path / "brief.md"

    paths = resolve_evidence_paths(document, {"evidence": ["sources/survey.md"]}, [extra])

    assert paths == [listed.resolve(), extra.resolve()]


def test_resolve_evidence_paths_dedupes_and_skips_missing(tmp_path: Path, caplog) -> None:
    survey = tmp_path / "survey.md"
    survey.write_text("x", encoding="utf-8")
    document = tmp_path / "brief.md"

    paths = resolve_evidence_paths(document, {"evidence": ["survey.md", "missing.md"]}, [survey])

    assert paths == [survey.resolve()]
    assert "missing.md" in caplog.text


def test_resolve_evidence_paths_accepts_single_string(tmp_path: Path) -> None:
    survey = tmp_path / "survey.md"
    survey.write_text("x", encoding="utf-8")
    paths = resolve_evidence_paths(tmp_path / "brief.md", {"evidence": "survey.md"}, [])
    assert paths == [survey.resolve()]
