"""Manifest and layer blob extraction from docker save archives."""

import json
import logging
import re
from typing import Any, Iterable

from ..exceptions import (
    CorruptManifestError,
    InconsistentManifestError,
    MissingManifestError,
)
from .models import ArchiveEntry, EntryKind, Manifest
from .reader import read_entry

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"

# Legacy saves keep layers as <id>/layer.tar, OCI-layout saves under blobs/
LAYER_PATTERN = re.compile(r"^.+\.tar$|^blobs/.+")


def is_layer_blob(entry: ArchiveEntry) -> bool:
    """Check if an outer archive entry is a candidate layer blob."""
    return entry.kind is EntryKind.FILE and bool(LAYER_PATTERN.match(entry.name))


def _get_layers(record: dict[str, Any]) -> list[str]:
    """Find the layer list of a manifest record, ignoring key case."""
    for key, value in record.items():
        if key.lower() == "layers":
            if not isinstance(value, list):
                raise CorruptManifestError("Manifest layers must be a list")
            if not all(isinstance(layer, str) for layer in value):
                raise CorruptManifestError("Manifest layer ids must be strings")
            return value
    return []


def _get_repo_tags(record: dict[str, Any]) -> list[str]:
    repo_tags = record.get("RepoTags") or []
    if not isinstance(repo_tags, list):
        return []
    return [tag for tag in repo_tags if isinstance(tag, str)]


def parse_manifest(data: bytes) -> Manifest:
    """Parse manifest.json content.

    docker save writes a list of records; a single record is accepted too.
    Layers of all records are concatenated in order.

    Args:
        data: Raw manifest.json bytes

    Returns:
        Parsed Manifest

    Raises:
        CorruptManifestError: If the content is not a valid manifest
    """
    try:
        manifest_data = json.loads(data.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise CorruptManifestError(f"Cannot decode {MANIFEST_NAME}: {e}") from e
    except json.JSONDecodeError as e:
        raise CorruptManifestError(f"Invalid JSON in {MANIFEST_NAME}: {e}") from e

    if isinstance(manifest_data, dict):
        manifest_data = [manifest_data]
    if not isinstance(manifest_data, list):
        raise CorruptManifestError(f"{MANIFEST_NAME} must be an array or an object")

    layers: list[str] = []
    repo_tags: list[str] = []
    for record in manifest_data:
        if not isinstance(record, dict):
            raise CorruptManifestError("Invalid manifest entry structure")
        layers.extend(_get_layers(record))
        repo_tags.extend(_get_repo_tags(record))

    return Manifest(layers=tuple(layers), repo_tags=tuple(repo_tags))


def extract(
    entries: Iterable[ArchiveEntry], require_manifest: bool = True
) -> tuple[list[str], dict[str, bytes]]:
    """Collect the manifest layer order and layer blobs from an image archive.

    Args:
        entries: Entries of the outer docker save archive
        require_manifest: Fail when no manifest.json is found; otherwise an
            archive without one yields an empty layer list

    Returns:
        Tuple of (ordered layer ids, layer id to tar bytes)

    Raises:
        MissingManifestError: If no manifest.json is found and one is required
        CorruptManifestError: If manifest.json cannot be parsed
        CorruptArchiveError: If the archive cannot be read
    """
    manifest: Manifest | None = None
    blobs: dict[str, bytes] = {}

    for entry in entries:
        if entry.name == MANIFEST_NAME:
            if manifest is not None:
                logger.warning("Multiple %s entries found, using the last one", MANIFEST_NAME)
            manifest = parse_manifest(read_entry(entry))
            logger.debug("Found manifest with %d layers", len(manifest.layers))
        elif is_layer_blob(entry):
            blobs[entry.name] = read_entry(entry)

    if manifest is None:
        if require_manifest:
            raise MissingManifestError(f"{MANIFEST_NAME} not found in image archive")
        logger.warning("%s not found in image archive, nothing to apply", MANIFEST_NAME)
        return [], blobs

    return list(manifest.layers), blobs


def resolve_layers(
    layer_ids: list[str], blobs: dict[str, bytes]
) -> list[tuple[str, bytes]]:
    """Pair each manifest layer id with its blob, keeping manifest order.

    Raises:
        InconsistentManifestError: If a layer id has no blob
    """
    resolved = []
    for layer_id in layer_ids:
        if layer_id not in blobs:
            raise InconsistentManifestError(layer_id)
        resolved.append((layer_id, blobs[layer_id]))
    return resolved
