"""Unit tests for the command-line interface."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
import structlog
from typer.testing import CliRunner

from doc_intake import __version__
from doc_intake.cli import app
from doc_intake.config import clear_settings_cache


if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path


runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_state() -> Iterator[None]:
    """Each invocation configures logging against the runner's streams."""
    yield
    structlog.reset_defaults()
    clear_settings_cache()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Config file for a local pipeline with in-memory records."""
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
intelligence:
  endpoint: https://di.test
  api_key: super-secret
storage:
  backend: local
  root: {tmp_path / "storage"}
records:
  backend: memory
""",
    )
    return path


class TestVersion:
    """Tests for the version flag."""

    def test_version(self) -> None:
        """--version prints the version and exits."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"doc-intake version {__version__}" in result.stdout

    def test_verbose_and_quiet_conflict(self, tmp_path: Path) -> None:
        """--verbose and --quiet cannot be combined."""
        result = runner.invoke(app, ["-V", "-q", "split", str(tmp_path)])
        assert result.exit_code == 1


class TestSplit:
    """Tests for the split command."""

    def test_split_writes_pages(
        self, tmp_path: Path, make_pdf: Callable[..., bytes]
    ) -> None:
        """Each page is written and its name printed."""
        source = tmp_path / "scan.pdf"
        source.write_bytes(make_pdf(2))
        output = tmp_path / "pages"

        result = runner.invoke(app, ["-q", "split", str(source), "-o", str(output)])

        assert result.exit_code == 0
        assert result.stdout.split() == ["page-1_scan.pdf", "page-2_scan.pdf"]
        assert (output / "page-2_scan.pdf").read_bytes().startswith(b"%PDF")

    def test_split_malformed(self, tmp_path: Path) -> None:
        """A file that is not a PDF exits with an error."""
        source = tmp_path / "notes.pdf"
        source.write_bytes(b"plain text")

        result = runner.invoke(app, ["-q", "split", str(source), "-o", str(tmp_path)])

        assert result.exit_code == 1
        assert not list(tmp_path.glob("page-*"))


class TestConfig:
    """Tests for the config command."""

    def test_config_redacts_secrets(self, config_file: Path) -> None:
        """Secrets are replaced in the printed configuration."""
        result = runner.invoke(app, ["-q", "config", "-c", str(config_file)])

        assert result.exit_code == 0
        summary = json.loads(result.stdout)
        assert summary["intelligence"]["api_key"] == "********"
        assert summary["intelligence"]["endpoint"] == "https://di.test"
        assert summary["records"]["dsn"] is None
        assert "super-secret" not in result.stdout

    def test_config_missing_file(self, tmp_path: Path) -> None:
        """A missing config file is a configuration error."""
        result = runner.invoke(
            app, ["-q", "config", "-c", str(tmp_path / "missing.yaml")]
        )
        assert result.exit_code == 1


class TestSubmitAndInvoke:
    """Tests for submitting uploads and invoking stages."""

    def test_submit(
        self,
        tmp_path: Path,
        config_file: Path,
        make_pdf: Callable[..., bytes],
    ) -> None:
        """The file lands in the input location."""
        source = tmp_path / "scan.pdf"
        source.write_bytes(make_pdf(1))

        result = runner.invoke(
            app, ["-q", "submit", str(source), "-c", str(config_file)]
        )

        assert result.exit_code == 0
        assert "input/scan.pdf" in result.stdout
        assert (tmp_path / "storage" / "input" / "scan.pdf").is_file()

    def test_invoke_ingest(
        self,
        tmp_path: Path,
        config_file: Path,
        make_pdf: Callable[..., bytes],
    ) -> None:
        """Invoking ingest splits an upload already in storage."""
        input_dir = tmp_path / "storage" / "input"
        input_dir.mkdir(parents=True)
        (input_dir / "scan.pdf").write_bytes(make_pdf(2))

        result = runner.invoke(
            app, ["-q", "invoke", "ingest", "scan.pdf", "-c", str(config_file)]
        )

        assert result.exit_code == 0
        outcome = json.loads(result.stdout)
        assert outcome["outcome"] == "completed"
        assert outcome["data"]["page_count"] == 2
        assert (tmp_path / "storage" / "splitted" / "page-1_scan.pdf").is_file()
        assert not (input_dir / "scan.pdf").exists()

    def test_invoke_classification_without_model(
        self, config_file: Path
    ) -> None:
        """Classification without a model id is reported, not raised."""
        result = runner.invoke(
            app,
            ["-q", "invoke", "classification", "page-1_scan.pdf", "-c", str(config_file)],
        )

        assert result.exit_code == 1
        assert "classification.model_id" in result.stderr
