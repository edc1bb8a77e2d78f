"""CLI entry point for locforge."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from pathlib import Path
from typing import NoReturn, TypeVar

import orjson
import typer
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console

from locforge_core import VERSION, CodecError, build_engine, flatten, unflatten
from locforge_core.codec import ContainerKind, flatten_with_hints
from locforge_core.ports.storage import StorageError
from locforge_core.ports.workflow import ProgressSinkProtocol, WorkflowError
from locforge_core.telemetry import WorkflowTelemetry
from locforge_core.workflow import new_id
from locforge_io.blobs import FileSystemBlobStore
from locforge_io.config import ConfigError, get_settings, load_engine_config
from locforge_io.scheduling import InMemoryScheduler
from locforge_io.storage import (
    FileSystemLogStore,
    InMemoryProgressSink,
    build_log_sink,
)
from locforge_io.tables import InMemoryTableStore
from locforge_schemas.config import EngineConfig
from locforge_schemas.events import ProgressEvent
from locforge_schemas.primitives import (
    BuildStatus,
    JsonScalar,
    JsonValue,
    TableName,
)
from locforge_schemas.progress import WorkflowProgressUpdate
from locforge_schemas.records import (
    Language,
    Namespace,
    Project,
    TranslationKey,
    TranslationValue,
    Workspace,
)
from locforge_schemas.responses import (
    ApiResponse,
    BuildResult,
    ErrorResponse,
    MetaInfo,
)

ResponseT = TypeVar("ResponseT")

CONFIG_OPTION = typer.Option(
    None, "--config", help="Path to a locforge.toml engine config"
)
HINTS_OPTION = typer.Option(
    False, "--hints", help="Also emit container hints for numeric object keys"
)
OUT_OPTION = typer.Option(..., "--out", "-o", help="Directory receiving artifacts")
TAG_OPTION = typer.Option(..., "--tag", "-t", help="Build tag")
NAMESPACE_OPTION = typer.Option(
    "default", "--namespace", "-n", help="Namespace name recorded on the build"
)
PROGRESS_OPTION = typer.Option(
    False, "--progress", help="Print stage progress to stderr"
)

app = typer.Typer(
    help="Resumable build and deletion engine for localization data",
    no_args_is_help=True,
)


@app.callback()
def main() -> None:
    """Locforge CLI."""


@app.command()
def version() -> None:
    """Display version information."""
    rprint(f"[bold]locforge[/bold] v{VERSION}")


@app.command("flatten")
def flatten_command(
    file: Path = typer.Argument(..., help="JSON document to flatten"),
    hints: bool = HINTS_OPTION,
) -> None:
    """Flatten a nested JSON document into a path -> leaf map."""
    try:
        document = _read_json(file)
        data: dict[str, JsonValue]
        if hints:
            flat, container_hints = flatten_with_hints(document)
            data = {
                "flat": dict(flat),
                "hints": {path: str(kind) for path, kind in container_hints.items()},
            }
        else:
            data = dict(flatten(document))
        response: ApiResponse[dict[str, JsonValue]] = ApiResponse(
            data=data, error=None, meta=MetaInfo(timestamp=_now_timestamp())
        )
    except Exception as exc:
        _exit_with_error(_error_from_exception(exc))
    print(response.model_dump_json())


@app.command("unflatten")
def unflatten_command(
    file: Path = typer.Argument(
        ..., help="Flat path -> leaf map, or the output of `flatten --hints`"
    ),
) -> None:
    """Rebuild a nested JSON document from a flat path map."""
    try:
        flat, container_hints = _read_flat_input(_read_json(file))
        response: ApiResponse[dict[str, JsonValue]] = ApiResponse(
            data=unflatten(flat, container_hints=container_hints),
            error=None,
            meta=MetaInfo(timestamp=_now_timestamp()),
        )
    except Exception as exc:
        _exit_with_error(_error_from_exception(exc))
    print(response.model_dump_json())


@app.command()
def build(
    source_dir: Path = typer.Argument(
        ..., help="Directory of <language-code>.json documents"
    ),
    out: Path = OUT_OPTION,
    tag: str = TAG_OPTION,
    namespace: str = NAMESPACE_OPTION,
    config_path: Path | None = CONFIG_OPTION,
    progress: bool = PROGRESS_OPTION,
) -> None:
    """Compile per-language documents into build artifacts on disk."""
    try:
        settings = get_settings()
        config = load_engine_config(config_path or settings.config_path)
        result = asyncio.run(
            _build_async(
                source_dir=source_dir,
                out_dir=out,
                tag=tag,
                namespace_name=namespace,
                config=config,
                log_dir=settings.log_dir,
                show_progress=progress,
            )
        )
        response: ApiResponse[BuildResult] = ApiResponse(
            data=result, error=None, meta=MetaInfo(timestamp=_now_timestamp())
        )
    except Exception as exc:
        _exit_with_error(_error_from_exception(exc))
    print(response.model_dump_json())
    if result.status != BuildStatus.COMPLETE:
        raise typer.Exit(code=1)


async def _build_async(
    *,
    source_dir: Path,
    out_dir: Path,
    tag: str,
    namespace_name: str,
    config: EngineConfig,
    log_dir: Path,
    show_progress: bool,
) -> BuildResult:
    if not source_dir.is_dir():
        raise ValueError(f"Source directory not found: {source_dir}")
    progress_sink: ProgressSinkProtocol = InMemoryProgressSink()
    if show_progress:
        progress_sink = _ProgressReporter(progress_sink, Console(stderr=True))
    telemetry = WorkflowTelemetry(
        log_sink=build_log_sink(config.logging, FileSystemLogStore(str(log_dir))),
        progress_sink=progress_sink,
    )
    tables = InMemoryTableStore()
    scheduler = InMemoryScheduler(retry=config.retry, telemetry=telemetry)
    engine = build_engine(
        tables,
        FileSystemBlobStore(str(out_dir)),
        scheduler,
        config=config,
        telemetry=telemetry,
    )
    workspace_id, project_id, namespace_id = await _load_source(
        tables, source_dir, namespace_name
    )
    created = await engine.builds.create_build(
        workspace_id, project_id, namespace_id, tag
    )
    steps = await scheduler.run_until_idle()
    final = await engine.builds.get_build(created.id)
    status = BuildStatus.FAILED if final is None else BuildStatus(final.status)
    return BuildResult(
        build_id=created.id,
        tag=created.tag,
        status=status,
        artifacts=dict(final.artifacts) if final is not None else {},
        output_dir=str(out_dir / config.build.artifact_prefix / created.id),
        steps=steps,
    )


async def _load_source(
    tables: InMemoryTableStore, source_dir: Path, namespace_name: str
) -> tuple[str, str, str]:
    workspace = Workspace(id=new_id(), name="local")
    project = Project(
        id=new_id(), workspace_id=workspace.id, name=source_dir.name or "local"
    )
    namespace = Namespace(id=new_id(), project_id=project.id, name=namespace_name)
    await tables.insert(TableName.WORKSPACES, workspace)
    await tables.insert(TableName.PROJECTS, project)
    await tables.insert(TableName.NAMESPACES, namespace)

    keys: dict[str, TranslationKey] = {}
    key_count = 0
    for path in sorted(source_dir.glob("*.json")):
        language = Language(id=new_id(), project_id=project.id, language_code=path.stem)
        await tables.insert(TableName.LANGUAGES, language)
        for flat_path, leaf in flatten(_read_json(path)).items():
            key = keys.get(flat_path)
            if key is None:
                key = TranslationKey(
                    id=new_id(),
                    project_id=project.id,
                    namespace_id=namespace.id,
                    key=flat_path,
                )
                keys[flat_path] = key
                key_count += 1
            key.values[language.id] = (
                leaf if isinstance(leaf, str) else orjson.dumps(leaf).decode()
            )
            await tables.insert(
                TableName.TRANSLATION_VALUES,
                TranslationValue(
                    id=new_id(),
                    project_id=project.id,
                    namespace_id=namespace.id,
                    language_id=language.id,
                    translation_key_id=key.id,
                    path=flat_path,
                    leaf_value=leaf,
                ),
            )
    for key in keys.values():
        await tables.insert(TableName.TRANSLATION_KEYS, key)
    for table, record_id, model in (
        (TableName.WORKSPACES, workspace.id, Workspace),
        (TableName.PROJECTS, project.id, Project),
        (TableName.NAMESPACES, namespace.id, Namespace),
    ):
        await tables.patch(
            table, record_id, {"translation_key_count": key_count}, model
        )
    return workspace.id, project.id, namespace.id


class _ProgressReporter(ProgressSinkProtocol):
    def __init__(self, sink: ProgressSinkProtocol, console: Console) -> None:
        self._sink = sink
        self._console = console

    async def emit_progress(self, update: WorkflowProgressUpdate) -> None:
        await self._sink.emit_progress(update)
        if update.event == ProgressEvent.STAGE_STARTED and update.stage is not None:
            self._console.print(f"Building {update.stage}")
        if update.event == ProgressEvent.STAGE_COMPLETED and update.stage is not None:
            percent = update.percent_complete
            suffix = f" ({percent:.0f}%)" if percent is not None else ""
            self._console.print(f"{update.stage} complete{suffix}")
        if update.event == ProgressEvent.WORKFLOW_FAILED:
            self._console.print(f"[red]Build failed:[/red] {update.message}")


def _read_json(path: Path) -> JsonValue:
    try:
        return orjson.loads(path.read_bytes())
    except OSError as exc:
        raise ValueError(f"Cannot read {path}: {exc}") from exc
    except orjson.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc


def _read_flat_input(
    payload: JsonValue,
) -> tuple[dict[str, JsonScalar], dict[str, ContainerKind]]:
    """Split unflatten input into the flat map and its container hints.

    Accepts either a bare flat map or the `{"flat": ..., "hints": ...}`
    envelope printed by `flatten --hints`.

    Raises:
        CodecError: If the input is neither shape or names an unknown kind.
    """
    raw_hints: JsonValue = {}
    if isinstance(payload, dict) and set(payload) == {"flat", "hints"}:
        payload, raw_hints = payload["flat"], payload["hints"]
    if not isinstance(payload, dict) or any(
        isinstance(value, (dict, list)) for value in payload.values()
    ):
        raise CodecError("Input must be an object of scalar leaves")
    if not isinstance(raw_hints, dict):
        raise CodecError("Hints must map paths to container kinds")
    flat: dict[str, JsonScalar] = {
        key: value
        for key, value in payload.items()
        if not isinstance(value, (dict, list))
    }
    try:
        hints = {path: ContainerKind(kind) for path, kind in raw_hints.items()}
    except ValueError as exc:
        raise CodecError(f"Unknown container kind: {exc}") from exc
    return flat, hints


def _now_timestamp() -> str:
    timestamp = datetime.now(UTC).isoformat()
    return timestamp.replace("+00:00", "Z")


def _error_response(error: ErrorResponse) -> ApiResponse[ResponseT]:
    return ApiResponse(
        data=None,
        error=error,
        meta=MetaInfo(timestamp=_now_timestamp()),
    )


def _exit_with_error(error: ErrorResponse) -> NoReturn:
    response: ApiResponse[None] = _error_response(error)
    print(response.model_dump_json())
    raise typer.Exit(code=1)


def _error_from_exception(exc: Exception) -> ErrorResponse:
    if isinstance(exc, WorkflowError | StorageError):
        return exc.info.to_error_response()
    if isinstance(exc, CodecError):
        return ErrorResponse(code="codec_error", message=str(exc), details=None)
    if isinstance(exc, ValidationError):
        message = "Validation failed"
        errors = exc.errors()
        if errors:
            first = errors[0]
            loc = first.get("loc", [])
            label = ".".join(str(part) for part in loc) if loc else ""
            detail = first.get("msg", "")
            if label and detail:
                message = f"Validation failed: {label} - {detail}"
            elif detail:
                message = f"Validation failed: {detail}"
        return ErrorResponse(code="validation_error", message=message, details=None)
    if isinstance(exc, ConfigError):
        return ErrorResponse(code="config_error", message=str(exc), details=None)
    if isinstance(exc, ValueError):
        return ErrorResponse(code="validation_error", message=str(exc), details=None)
    return ErrorResponse(code="runtime_error", message=str(exc), details=None)


if __name__ == "__main__":
    app()
