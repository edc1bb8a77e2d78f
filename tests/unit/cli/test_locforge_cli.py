"""Unit tests for the locforge CLI."""

from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from locforge_cli.main import app
from locforge_io.config import get_settings
from locforge_schemas.primitives import BuildStatus
from locforge_schemas.responses import ApiResponse, BuildResult

runner = CliRunner()

NOOP_CONFIG = '[[logging.sinks]]\ntype = "noop"\n'


@pytest.fixture(autouse=True)
def isolated_settings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    """Keep CLI settings away from the developer's environment."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("LOCFORGE_CONFIG_PATH", raising=False)
    monkeypatch.setenv("LOCFORGE_LOG_DIR", str(tmp_path / "logs"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def _write_json(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_version_command() -> None:
    """Version prints the package version."""
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "0.1.0" in result.stdout


def test_flatten_command_outputs_flat_map(tmp_path: Path) -> None:
    """Flatten prints the dotted path map in an API envelope."""
    source = _write_json(
        tmp_path / "en.json", {"menu": {"start": "Start", "items": ["a", "b"]}}
    )

    result = runner.invoke(app, ["flatten", str(source)])

    assert result.exit_code == 0
    response = json.loads(result.stdout)
    assert response["error"] is None
    assert response["data"] == {
        "menu.start": "Start",
        "menu.items.0": "a",
        "menu.items.1": "b",
    }


def test_flatten_command_with_hints(tmp_path: Path) -> None:
    """Numeric object keys come back with an object hint."""
    source = _write_json(tmp_path / "levels.json", {"levels": {"1": "One"}})

    result = runner.invoke(app, ["flatten", str(source), "--hints"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)["data"]
    assert data == {"flat": {"levels.1": "One"}, "hints": {"levels": "object"}}


def test_flatten_command_rejects_scalar_documents(tmp_path: Path) -> None:
    """A scalar root is a codec error."""
    source = _write_json(tmp_path / "scalar.json", "hello")

    result = runner.invoke(app, ["flatten", str(source)])

    assert result.exit_code == 1
    response = json.loads(result.stdout)
    assert response["data"] is None
    assert response["error"]["code"] == "codec_error"


def test_unflatten_command_rebuilds_document(tmp_path: Path) -> None:
    """Unflatten restores nesting and drops empty leaves."""
    source = _write_json(
        tmp_path / "flat.json",
        {"menu.start": "Start", "menu.items.0": "a", "menu.quit": ""},
    )

    result = runner.invoke(app, ["unflatten", str(source)])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["data"] == {
        "menu": {"start": "Start", "items": ["a"]}
    }


def test_unflatten_command_reads_flatten_hints_output(tmp_path: Path) -> None:
    """The hinted flatten output rebuilds numeric object keys as objects."""
    source = _write_json(tmp_path / "items.json", {"items": {"0": "a"}})
    flattened = runner.invoke(app, ["flatten", str(source), "--hints"])
    flat_file = tmp_path / "flat.json"
    flat_file.write_text(
        json.dumps(json.loads(flattened.stdout)["data"]), encoding="utf-8"
    )

    result = runner.invoke(app, ["unflatten", str(flat_file)])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["data"] == {"items": {"0": "a"}}


@pytest.mark.parametrize(
    "payload",
    [
        {"a": "x", "a.b": "y"},
        {"a": {"b": "nested"}},
        ["not", "a", "map"],
        {"flat": {"a.0": "x"}, "hints": {"a": "tuple"}},
    ],
)
def test_unflatten_command_reports_codec_errors(
    tmp_path: Path, payload: object
) -> None:
    """Conflicting shapes and non-flat input are rejected."""
    source = _write_json(tmp_path / "flat.json", payload)

    result = runner.invoke(app, ["unflatten", str(source)])

    assert result.exit_code == 1
    assert json.loads(result.stdout)["error"]["code"] == "codec_error"


def test_unflatten_command_reports_invalid_json(tmp_path: Path) -> None:
    """Unparseable files are validation errors."""
    source = tmp_path / "flat.json"
    source.write_text("{", encoding="utf-8")

    result = runner.invoke(app, ["unflatten", str(source)])

    assert result.exit_code == 1
    response = json.loads(result.stdout)
    assert response["error"]["code"] == "validation_error"
    assert "Invalid JSON" in response["error"]["message"]


def test_build_command_writes_artifacts(tmp_path: Path) -> None:
    """Build compiles each language document into an artifact on disk."""
    source_dir = tmp_path / "source"
    source_dir.mkdir()
    english = {"menu": {"start": "Start", "items": ["New", "Load"]}}
    _write_json(source_dir / "en.json", english)
    _write_json(source_dir / "fr.json", {"menu": {"start": "Commencer"}})
    config_path = tmp_path / "locforge.toml"
    config_path.write_text(NOOP_CONFIG, encoding="utf-8")
    out_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "build",
            str(source_dir),
            "--out",
            str(out_dir),
            "--tag",
            "v1",
            "--config",
            str(config_path),
        ],
    )

    assert result.exit_code == 0, result.stdout
    response = ApiResponse[BuildResult].model_validate_json(result.stdout)
    assert response.data is not None
    assert response.data.status == BuildStatus.COMPLETE
    assert response.data.tag == "v1"
    assert set(response.data.artifacts) == {"en", "fr"}
    build_dir = out_dir / "builds" / response.data.build_id
    assert response.data.output_dir == str(build_dir)
    assert json.loads((build_dir / "en.json").read_text(encoding="utf-8")) == english
    assert json.loads((build_dir / "fr.json").read_text(encoding="utf-8")) == {
        "menu": {"start": "Commencer"}
    }


def test_build_command_reports_missing_source(tmp_path: Path) -> None:
    """A missing source directory is a validation error."""
    config_path = tmp_path / "locforge.toml"
    config_path.write_text(NOOP_CONFIG, encoding="utf-8")

    result = runner.invoke(
        app,
        [
            "build",
            str(tmp_path / "missing"),
            "--out",
            str(tmp_path / "out"),
            "--tag",
            "v1",
            "--config",
            str(config_path),
        ],
    )

    assert result.exit_code == 1
    response = json.loads(result.stdout)
    assert response["error"]["code"] == "validation_error"
    assert "Source directory not found" in response["error"]["message"]


def test_build_command_reports_config_errors(tmp_path: Path) -> None:
    """Invalid config files stop the build before any work."""
    config_path = tmp_path / "locforge.toml"
    config_path.write_text("[page_sizes]\nvalues = 0\n", encoding="utf-8")

    result = runner.invoke(
        app,
        ["build", str(tmp_path), "--out", str(tmp_path / "out"), "--tag", "v1"]
        + ["--config", str(config_path)],
    )

    assert result.exit_code == 1
    assert json.loads(result.stdout)["error"]["code"] == "config_error"
