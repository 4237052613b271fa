"""Tests for the command line interface."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import full_host_fields, make_record
from typer.testing import CliRunner

from reporank import __version__
from reporank.cli import app
from reporank.store.artifacts import ArtifactStore

runner = CliRunner()


@pytest.fixture
def records_file(tmp_path: Path) -> Path:
    path = tmp_path / "records.json"
    records = [
        make_record("acme/big", fields=full_host_fields(stars=30_000, forks=3_000)),
        make_record("acme/mid", fields=full_host_fields()),
    ]
    path.write_text(json.dumps([r.model_dump(mode="json") for r in records]))
    return path


@pytest.fixture
def categories_file(tmp_path: Path) -> Path:
    path = tmp_path / "categories.yaml"
    path.write_text("acme/big: rust-libraries\nacme/mid: rust-libraries\n")
    return path


class TestIngest:
    def test_ingest(self, tmp_path: Path, records_file: Path):
        data_dir = tmp_path / "data"
        result = runner.invoke(app, ["ingest", str(records_file), "--data-dir", str(data_dir)])
        assert result.exit_code == 0, result.output
        assert "Ingested 2 records" in result.output
        assert len((data_dir / "records.jsonl").read_text().splitlines()) == 2

    def test_bad_input(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text('[{"repository_id": "a/a"}]')
        result = runner.invoke(app, ["ingest", str(path), "--data-dir", str(tmp_path / "data")])
        assert result.exit_code == 1


class TestRun:
    def test_run_then_show(self, tmp_path: Path, records_file: Path, categories_file: Path):
        data_dir = tmp_path / "data"
        runner.invoke(app, ["ingest", str(records_file), "--data-dir", str(data_dir)])

        result = runner.invoke(
            app,
            ["run", "--categories", str(categories_file), "--data-dir", str(data_dir), "--as-of", "2025-06-01"],
        )
        assert result.exit_code == 0, result.output
        assert "completed" in result.output

        runs = ArtifactStore(data_dir).list_runs()
        assert len(runs) == 1
        saved = ArtifactStore(data_dir).load_run(runs[0])
        assert saved.rankings[0].ids() == ["acme/big", "acme/mid"]

        shown = runner.invoke(app, ["show", "--data-dir", str(data_dir)])
        assert shown.exit_code == 0, shown.output
        assert runs[0] in shown.output

    def test_bad_categories(self, tmp_path: Path):
        path = tmp_path / "categories.json"
        path.write_text("[1, 2]")
        result = runner.invoke(app, ["run", "--categories", str(path), "--data-dir", str(tmp_path)])
        assert result.exit_code == 1

    def test_show_without_runs(self, tmp_path: Path):
        result = runner.invoke(app, ["show", "--data-dir", str(tmp_path)])
        assert result.exit_code == 1

    def test_show_unknown_run(self, tmp_path: Path):
        result = runner.invoke(app, ["show", "nope", "--data-dir", str(tmp_path)])
        assert result.exit_code == 1


class TestValidateConfig:
    def test_valid_yaml(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("ranking: topsis\nranking_scope: per_category\n")
        result = runner.invoke(app, ["validate-config", str(path)])
        assert result.exit_code == 0, result.output
        assert "topsis" in result.output

    def test_invalid(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"weights": {"overall": {"popularity": 2.0}}}))
        result = runner.invoke(app, ["validate-config", str(path)])
        assert result.exit_code == 1

    def test_missing_file(self, tmp_path: Path):
        result = runner.invoke(app, ["validate-config", str(tmp_path / "none.yaml")])
        assert result.exit_code == 1


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output
