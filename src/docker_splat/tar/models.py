"""Data models for tar file handling."""

from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO


class EntryKind(Enum):
    """Kind of a tar archive entry."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    HARDLINK = "hardlink"
    OTHER = "other"


@dataclass
class ArchiveEntry:
    """One tar record.

    ``reader`` is only valid until the next entry is requested from the
    archive reader; it is None for entries without a body.
    """

    name: str
    kind: EntryKind
    size: int
    mode: int
    linkname: str = ""
    reader: BinaryIO | None = None

    @property
    def basename(self) -> str:
        return self.name.rstrip("/").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class Manifest:
    """Layer list parsed from manifest.json, bottom layer first."""

    layers: tuple[str, ...]
    repo_tags: tuple[str, ...] = ()


@dataclass
class LayerStats:
    """Counters collected while applying one layer."""

    files: int = 0
    directories: int = 0
    links: int = 0
    whiteouts: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.files + self.directories + self.links + self.whiteouts + self.skipped


@dataclass
class SplatResult:
    """Outcome of materializing one image."""

    reference: str
    destination: str
    layers: list[str] = field(default_factory=list)
    stats: list[LayerStats] = field(default_factory=list)
