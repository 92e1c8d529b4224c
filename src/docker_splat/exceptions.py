"""Custom exceptions for docker-splat."""


class SplatError(Exception):
    """Base exception for all splat-related errors."""

    pass


class UsageError(SplatError):
    """Raised when the command line is invoked with the wrong arguments."""

    pass


class ImageSourceError(SplatError):
    """Raised when an image source fails to provide an image archive."""

    pass


class ImageNotFoundError(ImageSourceError):
    """Raised when the image is not available locally."""

    pass


class ImagePullError(ImageSourceError):
    """Raised when pulling the image from its registry fails."""

    pass


class ImageUnavailableError(SplatError):
    """Raised when the image could neither be found nor pulled."""

    def __init__(self, reference: str, message: str | None = None) -> None:
        self.reference = reference
        super().__init__(message or f"Image {reference} is unavailable")


class CorruptArchiveError(SplatError):
    """Raised when a tar stream cannot be read."""

    pass


class UnsafePathError(CorruptArchiveError):
    """Raised when an archive entry would be written outside the destination."""

    pass


class CorruptManifestError(SplatError):
    """Raised when manifest.json cannot be parsed into a layer list."""

    pass


class MissingManifestError(CorruptManifestError):
    """Raised when the image archive has no manifest.json."""

    pass


class InconsistentManifestError(SplatError):
    """Raised when the manifest references a layer missing from the archive."""

    def __init__(self, layer_id: str) -> None:
        self.layer_id = layer_id
        super().__init__(f"Manifest references layer {layer_id!r} not found in archive")


class FileSystemError(SplatError):
    """Raised when the destination tree cannot be modified."""

    pass
