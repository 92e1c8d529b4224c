"""Tar archive reading and layer application."""

from .layer import LayerApplier, apply_layer
from .manifest import extract, parse_manifest, resolve_layers
from .models import ArchiveEntry, EntryKind, LayerStats, Manifest, SplatResult
from .reader import iter_entries, read_entry

__all__ = [
    "ArchiveEntry",
    "EntryKind",
    "LayerApplier",
    "LayerStats",
    "Manifest",
    "SplatResult",
    "apply_layer",
    "extract",
    "iter_entries",
    "parse_manifest",
    "read_entry",
    "resolve_layers",
]
