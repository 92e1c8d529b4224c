"""Apply a layer tar archive onto a destination directory."""

import io
import logging
import os
import posixpath
import shutil
import tarfile
import zlib
from pathlib import Path
from typing import BinaryIO

from ..exceptions import CorruptArchiveError, FileSystemError, UnsafePathError
from .models import ArchiveEntry, EntryKind, LayerStats
from .reader import iter_entries

logger = logging.getLogger(__name__)

WHITEOUT_PREFIX = ".wh."
OPAQUE_WHITEOUT = ".wh..wh..opq"
DIRECTORY_MODE = 0o755


def normalize_entry_name(name: str) -> str | None:
    """Normalize an archive entry name to a path relative to the layer root.

    Returns:
        Normalized relative path, or None for the archive root itself

    Raises:
        UnsafePathError: If the name escapes the layer root
    """
    normalized = posixpath.normpath(name.lstrip("/"))
    if normalized in ("", "."):
        return None
    if normalized == ".." or normalized.startswith("../"):
        raise UnsafePathError(f"Refusing to extract path outside destination: {name}")
    return normalized


def _remove_path(path: str) -> None:
    """Remove a file, a symlink or a whole directory tree."""
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.unlink(path)


class LayerApplier:
    """Applies the entries of one layer to a destination root."""

    def __init__(self, destination: str | Path) -> None:
        """Initialize layer applier.

        Args:
            destination: Root of the destination tree, must exist
        """
        self.destination = os.path.abspath(destination)
        self._real_destination = os.path.realpath(self.destination)
        self.stats = LayerStats()
        # paths written by this layer and their ancestors, kept by opaque whiteouts
        self._written: set[str] = set()
        self._written_parents: set[str] = set()

    def apply(self, source: bytes | BinaryIO) -> LayerStats:
        """Apply every entry of a layer archive, in archive order.

        Args:
            source: Layer tar bytes or a binary file object

        Returns:
            Counters for the applied entries

        Raises:
            CorruptArchiveError: If the layer archive cannot be read
            FileSystemError: If the destination cannot be modified
        """
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)

        for entry in iter_entries(source):
            relpath = normalize_entry_name(entry.name)
            if relpath is None:
                continue
            self.apply_entry(entry, relpath)
        return self.stats

    def apply_entry(self, entry: ArchiveEntry, relpath: str) -> None:
        """Apply a single entry at its normalized relative path."""
        basename = posixpath.basename(relpath)
        parent = posixpath.dirname(relpath)

        if entry.kind is EntryKind.FILE and basename == OPAQUE_WHITEOUT:
            self._apply_opaque_whiteout(parent)
        elif entry.kind is EntryKind.FILE and basename.startswith(WHITEOUT_PREFIX):
            name = basename[len(WHITEOUT_PREFIX):]
            if not name:
                logger.warning("skipping whiteout without a name %s", entry.name)
                self.stats.skipped += 1
                return
            self._apply_whiteout(posixpath.join(parent, name))
        elif entry.kind is EntryKind.DIRECTORY:
            self._apply_directory(relpath)
        elif entry.kind is EntryKind.FILE:
            self._apply_file(entry, relpath)
        elif entry.kind is EntryKind.SYMLINK:
            self._apply_symlink(entry, relpath)
        elif entry.kind is EntryKind.HARDLINK:
            self._apply_hardlink(entry, relpath)
        else:
            logger.debug("skipping unsupported entry %s", entry.name)
            self.stats.skipped += 1

    def _target(self, relpath: str) -> str:
        """Resolve a relative path against the destination root.

        The parent directory must not resolve outside the destination, so
        symlinks laid down by earlier entries cannot redirect writes.
        """
        target = os.path.join(self.destination, *relpath.split("/"))
        parent = os.path.realpath(os.path.dirname(target))
        if os.path.commonpath([parent, self._real_destination]) != self._real_destination:
            raise UnsafePathError(f"Refusing to write {relpath} through a symlink outside destination")
        return target

    def _make_parents(self, target: str) -> None:
        try:
            os.makedirs(os.path.dirname(target), mode=DIRECTORY_MODE, exist_ok=True)
        except OSError as e:
            raise FileSystemError(f"Cannot create parent directories of {target}: {e}") from e

    def _clear(self, target: str) -> None:
        """Remove whatever occupies target so a new entry can take its place."""
        if not os.path.lexists(target):
            return
        try:
            _remove_path(target)
        except OSError as e:
            raise FileSystemError(f"Cannot replace {target}: {e}") from e

    def _apply_whiteout(self, relpath: str) -> None:
        target = self._target(relpath)
        logger.debug("whiteout detected, removing %s", target)
        self.stats.whiteouts += 1
        if not os.path.lexists(target):
            logger.warning("could not find file %s", target)
            return
        try:
            _remove_path(target)
        except OSError as e:
            raise FileSystemError(f"Cannot remove {target}: {e}") from e

    def _apply_opaque_whiteout(self, relpath: str) -> None:
        directory = self._target(relpath) if relpath else self.destination
        logger.debug("opaque whiteout detected, clearing %s", directory)
        self.stats.whiteouts += 1
        if not os.path.isdir(directory):
            return
        try:
            self._clear_lower(relpath, directory)
        except OSError as e:
            raise FileSystemError(f"Cannot clear {directory}: {e}") from e

    def _clear_lower(self, relpath: str, directory: str) -> None:
        """Remove everything under directory that this layer did not write."""
        for name in os.listdir(directory):
            child_relpath = posixpath.join(relpath, name)
            child = os.path.join(directory, name)
            if os.path.isdir(child) and not os.path.islink(child) and (
                child_relpath in self._written or child_relpath in self._written_parents
            ):
                self._clear_lower(child_relpath, child)
            elif child_relpath not in self._written:
                _remove_path(child)

    def _record(self, relpath: str) -> None:
        self._written.add(relpath)
        parent = posixpath.dirname(relpath)
        while parent and parent not in self._written_parents:
            self._written_parents.add(parent)
            parent = posixpath.dirname(parent)

    def _apply_directory(self, relpath: str) -> None:
        target = self._target(relpath)
        self._record(relpath)
        self.stats.directories += 1
        if os.path.isdir(target):
            return
        self._clear(target)
        logger.debug("creating directory %s", target)
        try:
            os.makedirs(target, mode=DIRECTORY_MODE, exist_ok=True)
        except OSError as e:
            raise FileSystemError(f"Cannot create directory {target}: {e}") from e

    def _apply_file(self, entry: ArchiveEntry, relpath: str) -> None:
        target = self._target(relpath)
        self._make_parents(target)
        self._clear(target)
        logger.debug("creating file %s", target)
        try:
            fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, entry.mode & 0o777)
            with os.fdopen(fd, "wb") as f:
                os.fchmod(f.fileno(), entry.mode & 0o777)
                if entry.reader is not None:
                    shutil.copyfileobj(entry.reader, f)
        except (tarfile.TarError, zlib.error, EOFError) as e:
            raise CorruptArchiveError(f"Cannot read {entry.name}: {e}") from e
        except OSError as e:
            raise FileSystemError(f"Cannot write {target}: {e}") from e
        self._record(relpath)
        self.stats.files += 1

    def _apply_symlink(self, entry: ArchiveEntry, relpath: str) -> None:
        target = self._target(relpath)
        self._make_parents(target)
        self._clear(target)
        logger.debug("creating symlink %s -> %s", target, entry.linkname)
        try:
            os.symlink(entry.linkname, target)
        except OSError as e:
            raise FileSystemError(f"Cannot create symlink {target}: {e}") from e
        self._record(relpath)
        self.stats.links += 1

    def _apply_hardlink(self, entry: ArchiveEntry, relpath: str) -> None:
        link_relpath = normalize_entry_name(entry.linkname)
        if link_relpath is None:
            self.stats.skipped += 1
            return
        source = self._target(link_relpath)
        target = self._target(relpath)
        if not os.path.lexists(source):
            logger.warning("could not find hardlink source %s for %s", source, target)
            self.stats.skipped += 1
            return
        self._make_parents(target)
        self._clear(target)
        logger.debug("creating hardlink %s -> %s", target, source)
        try:
            os.link(source, target, follow_symlinks=False)
        except OSError as e:
            raise FileSystemError(f"Cannot create hardlink {target}: {e}") from e
        self._record(relpath)
        self.stats.links += 1


def apply_layer(source: bytes | BinaryIO, destination: str | Path) -> LayerStats:
    """Apply one layer tar archive onto a destination directory.

    Args:
        source: Layer tar bytes or binary file object (may be compressed)
        destination: Root of the destination tree

    Returns:
        Counters for the applied entries

    Raises:
        CorruptArchiveError: If the layer archive cannot be read
        FileSystemError: If the destination cannot be modified
    """
    return LayerApplier(destination).apply(source)
