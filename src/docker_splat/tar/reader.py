"""Streaming tar archive reader."""

import tarfile
import zlib
from typing import BinaryIO, Iterator

from ..exceptions import CorruptArchiveError
from .models import ArchiveEntry, EntryKind


def _entry_kind(member: tarfile.TarInfo) -> EntryKind:
    """Map a tar member to its entry kind."""
    if member.isreg():
        return EntryKind.FILE
    if member.isdir():
        return EntryKind.DIRECTORY
    if member.issym():
        return EntryKind.SYMLINK
    if member.islnk():
        return EntryKind.HARDLINK
    return EntryKind.OTHER


class _PeekedStream:
    """Replays an already read first block ahead of the rest of a stream."""

    def __init__(self, head: bytes, fileobj: BinaryIO) -> None:
        self._head = head
        self._fileobj = fileobj

    def read(self, size: int = -1) -> bytes:
        if not self._head:
            return self._fileobj.read(size)
        if size is None or size < 0:
            data, self._head = self._head + self._fileobj.read(), b""
        else:
            data, self._head = self._head[:size], self._head[size:]
        return data


def iter_entries(fileobj: BinaryIO) -> Iterator[ArchiveEntry]:
    """Iterate over the entries of a tar stream.

    The stream is read forward only (gzip, bzip2 and xz compression are
    detected transparently). Each entry's reader must be consumed before the
    next entry is requested. An empty stream yields no entries.

    Args:
        fileobj: Binary file object positioned at the start of the archive

    Yields:
        ArchiveEntry for every record, in archive order

    Raises:
        CorruptArchiveError: If a header or body cannot be read
    """
    head = fileobj.read(tarfile.BLOCKSIZE)
    if not head:
        return

    try:
        with tarfile.open(fileobj=_PeekedStream(head, fileobj), mode="r|*") as tar:
            for member in tar:
                kind = _entry_kind(member)
                reader = tar.extractfile(member) if kind is EntryKind.FILE else None
                yield ArchiveEntry(
                    name=member.name,
                    kind=kind,
                    size=member.size,
                    mode=member.mode,
                    linkname=member.linkname,
                    reader=reader,
                )
    except (tarfile.TarError, zlib.error, EOFError) as e:
        raise CorruptArchiveError(f"Cannot read tar archive: {e}") from e


def read_entry(entry: ArchiveEntry) -> bytes:
    """Copy the body of the current entry out of the archive.

    Raises:
        CorruptArchiveError: If the body is truncated
    """
    if entry.reader is None:
        return b""
    try:
        return entry.reader.read()
    except (tarfile.TarError, zlib.error, EOFError) as e:
        raise CorruptArchiveError(f"Cannot read {entry.name}: {e}") from e
