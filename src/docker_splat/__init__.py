"""docker-splat - Materialize container image filesystems onto disk."""

__version__ = "0.1.0"

from .core.types import SplatConfig
from .exceptions import (
    CorruptArchiveError,
    CorruptManifestError,
    FileSystemError,
    ImageNotFoundError,
    ImagePullError,
    ImageSourceError,
    ImageUnavailableError,
    InconsistentManifestError,
    MissingManifestError,
    SplatError,
    UnsafePathError,
    UsageError,
)
from .source import ArchiveImageSource, DockerImageSource, ImageSource
from .splat import Splatter, SplatState, splat_image
from .tar.models import LayerStats, SplatResult

__all__ = [
    "SplatConfig",
    "Splatter",
    "SplatState",
    "splat_image",
    "ImageSource",
    "DockerImageSource",
    "ArchiveImageSource",
    "LayerStats",
    "SplatResult",
    "SplatError",
    "UsageError",
    "ImageSourceError",
    "ImageNotFoundError",
    "ImagePullError",
    "ImageUnavailableError",
    "CorruptArchiveError",
    "UnsafePathError",
    "CorruptManifestError",
    "MissingManifestError",
    "InconsistentManifestError",
    "FileSystemError",
]
