"""Tests for the markwiki CLI."""

from __future__ import annotations

import pstats
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from markwiki import __version__
from markwiki.cli import app

runner = CliRunner()


def _flat(output: str) -> str:
    """Undo rich line wrapping so long messages can be matched."""
    return " ".join(output.split())


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch):
    """Keep user and project config files out of every CLI run."""
    home = tmp_path / "home"
    home.mkdir()
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    with patch("markwiki.config.loader.Path.home", return_value=home):
        yield work


@pytest.fixture
def wiki(tmp_path: Path):
    source = tmp_path / "wiki"
    (source / "content").mkdir(parents=True)
    (source / "content" / "index.md").write_text("# Home")
    dest = tmp_path / "site"
    dest.mkdir()
    return source, dest


# ── version ──────────────────────────────────────────────────────────


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


# ── generate ─────────────────────────────────────────────────────────


class TestGenerate:
    def test_single_wiki(self, wiki):
        source, dest = wiki
        result = runner.invoke(app, ["generate", str(source), str(dest)])
        assert result.exit_code == 0, result.output
        assert (dest / "index.html").exists()

    def test_regen_and_clean(self, wiki):
        source, dest = wiki
        (dest / "stale.html").write_text("x")
        result = runner.invoke(app, ["generate", "--regen", "--clean", str(source), str(dest)])
        assert result.exit_code == 0, result.output
        assert not (dest / "stale.html").exists()

    def test_no_arguments(self):
        result = runner.invoke(app, ["generate"])
        assert result.exit_code == 1
        assert "SOURCE_DIR" in result.output

    def test_only_source(self, wiki):
        source, _ = wiki
        result = runner.invoke(app, ["generate", str(source)])
        assert result.exit_code == 1

    def test_dirs_and_wikis_together(self, wiki, tmp_path: Path):
        source, dest = wiki
        wikis = tmp_path / "wikis.csv"
        wikis.write_text(f"{source},{dest}\n")
        result = runner.invoke(app, ["generate", "--wikis", str(wikis), str(source), str(dest)])
        assert result.exit_code == 1

    def test_wikis_file(self, wiki, tmp_path: Path):
        source, dest = wiki
        other_source = tmp_path / "other"
        (other_source / "content").mkdir(parents=True)
        (other_source / "content" / "page.md").write_text("x")
        other_dest = tmp_path / "other-site"
        other_dest.mkdir()
        wikis = tmp_path / "wikis.csv"
        wikis.write_text(f"# source,dest\n{source},{dest}\n{other_source},{other_dest}\n")

        result = runner.invoke(app, ["generate", "--wikis", str(wikis)])

        assert result.exit_code == 0, result.output
        assert (dest / "index.html").exists()
        assert (other_dest / "page.html").exists()

    def test_missing_source_dir(self, tmp_path: Path):
        dest = tmp_path / "site"
        dest.mkdir()
        result = runner.invoke(app, ["generate", str(tmp_path / "nope"), str(dest)])
        assert result.exit_code == 1
        assert "not found" in _flat(result.output)

    def test_everything_failed(self, wiki, isolated_config: Path):
        source, dest = wiki
        (isolated_config / "markwiki.yaml").write_text("limits:\n  max_markdown_file_size: 1\n")
        result = runner.invoke(app, ["generate", str(source), str(dest)])
        assert result.exit_code == 1
        assert "Warning" in result.output
        assert "produced no output" in _flat(result.output)

    def test_partial_failure_succeeds(self, wiki, isolated_config: Path):
        source, dest = wiki
        (source / "content" / "logo.png").write_bytes(b"\x89PNG")
        (isolated_config / "markwiki.yaml").write_text("limits:\n  max_markdown_file_size: 1\n")
        result = runner.invoke(app, ["generate", str(source), str(dest)])
        assert result.exit_code == 0, result.output
        assert "Warning" in result.output
        assert (dest / "logo.png").exists()

    def test_fatal_error(self, wiki, isolated_config: Path):
        source, dest = wiki
        (source / "content" / "a" / "b").mkdir(parents=True)
        (isolated_config / "markwiki.yaml").write_text("limits:\n  max_recursion_depth: 1\n")
        result = runner.invoke(app, ["generate", str(source), str(dest)])
        assert result.exit_code == 1
        assert "recursion depth" in _flat(result.output)

    def test_profile_written(self, wiki, tmp_path: Path):
        source, dest = wiki
        profile = tmp_path / "run.prof"
        result = runner.invoke(
            app, ["generate", "--profile", str(profile), str(source), str(dest)]
        )
        assert result.exit_code == 0, result.output
        assert (dest / "index.html").exists()
        assert pstats.Stats(str(profile)).total_calls > 0

    def test_profile_unwritable(self, wiki, tmp_path: Path):
        source, dest = wiki
        profile = tmp_path / "missing" / "run.prof"
        result = runner.invoke(
            app, ["generate", "--profile", str(profile), str(source), str(dest)]
        )
        assert result.exit_code == 0, result.output
        assert "unable to write profile" in _flat(result.output)


# ── config ───────────────────────────────────────────────────────────


class TestConfigCommands:
    def test_init_creates_file(self, isolated_config: Path):
        result = runner.invoke(app, ["config", "init"])
        assert result.exit_code == 0
        assert (isolated_config / "markwiki.yaml").exists()

    def test_init_refuses_overwrite(self, isolated_config: Path):
        (isolated_config / "markwiki.yaml").write_text("log_level: info\n")
        result = runner.invoke(app, ["config", "init"])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_init_force(self, isolated_config: Path):
        (isolated_config / "markwiki.yaml").write_text("log_level: info\n")
        result = runner.invoke(app, ["config", "init", "--force"])
        assert result.exit_code == 0
        assert "max_regen_interval" in (isolated_config / "markwiki.yaml").read_text()

    def test_show(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "max_change_wait" in result.output

    def test_bad_config_path(self, tmp_path: Path):
        result = runner.invoke(app, ["--config", str(tmp_path / "missing.yaml"), "version"])
        assert result.exit_code == 1
        assert "not found" in _flat(result.output)
