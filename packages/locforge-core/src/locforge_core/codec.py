"""Flatten/unflatten codec between nested JSON documents and flat path maps.

`flatten` walks a document depth-first and emits one entry per scalar leaf,
keyed by its dotted path (array positions become numeric segments).
`unflatten` rebuilds the document, deciding per container whether to create
an array or an object by looking at the segment that follows it. That guess
is local to each path; callers that need certainty pass explicit
`container_hints` (see `flatten_with_hints`).
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from enum import StrEnum

from locforge_schemas.primitives import JsonScalar, JsonValue

PATH_SEPARATOR = "."
MAX_ARRAY_INDEX = 100_000

_SEGMENT_PATTERN = re.compile(r"\[([0-9]+)\]|([^.\[\]]+)")
_PATH_PATTERN = re.compile(r"^(?:\[[0-9]+\]|[^.\[\]]+)(?:\.[^.\[\]]+|\[[0-9]+\])*$")
_INDEX_PATTERN = re.compile(r"^[0-9]+$")

type Container = dict[str, JsonValue] | list[JsonValue]


class ContainerKind(StrEnum):
    """Explicit container type for a path."""

    OBJECT = "object"
    ARRAY = "array"


class CodecError(ValueError):
    """Raised when a flat map cannot be turned back into a document."""

    def __init__(self, message: str, path: str | None = None) -> None:
        """Initialize the codec error.

        Args:
            message: Human-readable error message.
            path: Offending flat path, if known.
        """
        super().__init__(message)
        self.path = path


def flatten(doc: JsonValue) -> dict[str, JsonScalar]:
    """Flatten a nested document into a path -> scalar leaf map.

    Object keys extend the path with a `.key` segment and array elements with
    their numeric index. Empty-string keys are skipped; empty containers
    produce no entries.

    Args:
        doc: Document whose root is an object or an array.

    Returns:
        dict[str, JsonScalar]: Flat map in depth-first order.

    Raises:
        CodecError: If the document root is a scalar.
    """
    flat: dict[str, JsonScalar] = {}
    _require_container(doc)
    _flatten_into(doc, [], flat, None)
    return flat


def flatten_with_hints(
    doc: JsonValue,
) -> tuple[dict[str, JsonScalar], dict[str, ContainerKind]]:
    """Flatten a document and record the container hints it needs.

    A hint is emitted only where `unflatten`'s numeric-segment guess would be
    wrong: objects whose keys look like array indices.

    Args:
        doc: Document whose root is an object or an array.

    Returns:
        tuple: The flat map and the container hints keyed by dotted path.

    Raises:
        CodecError: If the document root is a scalar.
    """
    flat: dict[str, JsonScalar] = {}
    hints: dict[str, ContainerKind] = {}
    _require_container(doc)
    _flatten_into(doc, [], flat, hints)
    return flat, hints


def parse_path(path: str) -> list[str] | None:
    """Split a flat path into ordered segments.

    Both `a.0.b` and `a[0].b` yield `["a", "0", "b"]`.

    Args:
        path: Flat path.

    Returns:
        list[str] | None: Segments, or None when the path has an empty
        segment and must be skipped.

    Raises:
        CodecError: If the path is otherwise malformed.
    """
    if "" in path.split(PATH_SEPARATOR):
        return None
    if not _PATH_PATTERN.fullmatch(path):
        raise CodecError(f"Malformed path {path!r}", path)
    return [
        index if index else key for index, key in _SEGMENT_PATTERN.findall(path)
    ]


def unflatten(
    flat: Mapping[str, JsonScalar],
    *,
    container_hints: Mapping[str, ContainerKind] | None = None,
) -> dict[str, JsonValue]:
    """Rebuild a nested document from a flat path map.

    Leaves whose value is the empty string are dropped (the containers on the
    way to them are still created). Gaps left in arrays are filled with None.

    Args:
        flat: Path -> scalar leaf map.
        container_hints: Optional explicit container kinds by dotted path,
            overriding the numeric-segment guess.

    Returns:
        dict[str, JsonValue]: Reconstructed document.

    Raises:
        CodecError: If a path is malformed or paths disagree on the shape of
            a shared prefix.
    """
    hints = container_hints or {}
    result: dict[str, JsonValue] = {}
    for path, value in flat.items():
        segments = parse_path(path)
        if segments is None:
            continue
        _assign(result, segments, value, hints, path)
    return result


def _require_container(doc: JsonValue) -> None:
    if not isinstance(doc, (dict, list)):
        raise CodecError("Document root must be an object or an array")


def _flatten_into(
    node: Container,
    path: list[str],
    flat: dict[str, JsonScalar],
    hints: dict[str, ContainerKind] | None,
) -> None:
    if isinstance(node, list):
        children = [(str(index), item) for index, item in enumerate(node)]
    else:
        children = [(key, value) for key, value in node.items() if key != ""]
        if (
            hints is not None
            and path
            and any(_INDEX_PATTERN.match(key) for key, _ in children)
        ):
            hints[PATH_SEPARATOR.join(path)] = ContainerKind.OBJECT
    for segment, value in children:
        child_path = [*path, segment]
        if isinstance(value, (dict, list)):
            _flatten_into(value, child_path, flat, hints)
        else:
            flat[PATH_SEPARATOR.join(child_path)] = value


def _assign(
    root: dict[str, JsonValue],
    segments: list[str],
    value: JsonScalar,
    hints: Mapping[str, ContainerKind],
    path: str,
) -> None:
    node: Container = root
    for position, segment in enumerate(segments[:-1]):
        prefix = PATH_SEPARATOR.join(segments[: position + 1])
        kind = hints.get(prefix)
        if kind is None:
            next_segment = segments[position + 1]
            kind = (
                ContainerKind.ARRAY
                if _INDEX_PATTERN.match(next_segment)
                else ContainerKind.OBJECT
            )
        child = _get_child(node, segment, path)
        if child is None:
            child = [] if kind == ContainerKind.ARRAY else {}
            _set_child(node, segment, child, path)
        elif not isinstance(child, (dict, list)):
            raise CodecError(
                f"Path {path!r} descends into scalar value at {prefix!r}", path
            )
        node = child

    if isinstance(value, str) and value == "":
        return
    existing = _get_child(node, segments[-1], path)
    if isinstance(existing, (dict, list)):
        raise CodecError(f"Path {path!r} collides with a nested container", path)
    _set_child(node, segments[-1], value, path)


def _array_index(segment: str, path: str) -> int:
    if not _INDEX_PATTERN.match(segment):
        raise CodecError(
            f"Path {path!r} uses key {segment!r} inside an array", path
        )
    index = int(segment)
    if index > MAX_ARRAY_INDEX:
        raise CodecError(f"Array index {index} in {path!r} is too large", path)
    return index


def _get_child(node: Container, segment: str, path: str) -> JsonValue:
    if isinstance(node, dict):
        return node.get(segment)
    index = _array_index(segment, path)
    if index < len(node):
        return node[index]
    return None


def _set_child(node: Container, segment: str, value: JsonValue, path: str) -> None:
    if isinstance(node, dict):
        node[segment] = value
        return
    index = _array_index(segment, path)
    if index >= len(node):
        node.extend([None] * (index + 1 - len(node)))
    node[index] = value
