"""Test helpers for building synthetic image archives."""

import io
import json
import tarfile


def file_entry(name: str, content: bytes = b"", mode: int = 0o644):
    """Regular file member."""
    info = tarfile.TarInfo(name)
    info.size = len(content)
    info.mode = mode
    return info, content


def dir_entry(name: str, mode: int = 0o755):
    """Directory member."""
    info = tarfile.TarInfo(name)
    info.type = tarfile.DIRTYPE
    info.mode = mode
    return info, None


def symlink_entry(name: str, target: str):
    """Symbolic link member."""
    info = tarfile.TarInfo(name)
    info.type = tarfile.SYMTYPE
    info.linkname = target
    return info, None


def hardlink_entry(name: str, target: str):
    """Hard link member."""
    info = tarfile.TarInfo(name)
    info.type = tarfile.LNKTYPE
    info.linkname = target
    return info, None


def fifo_entry(name: str):
    """FIFO member."""
    info = tarfile.TarInfo(name)
    info.type = tarfile.FIFOTYPE
    return info, None


def whiteout_entry(directory: str, name: str):
    """Whiteout marker deleting directory/name."""
    path = f"{directory}/.wh.{name}" if directory else f".wh.{name}"
    return file_entry(path)


def make_tar(*members, mode: str = "w") -> bytes:
    """Build a tar archive from (TarInfo, content) members."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode=mode) as tar:
        for info, content in members:
            tar.addfile(info, fileobj=io.BytesIO(content) if content is not None else None)
    return buf.getvalue()


def make_image(layers, manifest=None, extra=()) -> bytes:
    """Build a docker save archive.

    Args:
        layers: Mapping of layer path to layer tar bytes, in stacking order
        manifest: manifest.json content, raw bytes written as-is, False to omit
            it (defaults to a docker save manifest of the layers)
        extra: Additional (TarInfo, content) members
    """
    if manifest is None:
        manifest = [
            {
                "Config": "config.json",
                "RepoTags": ["test/image:latest"],
                "Layers": list(layers),
            }
        ]

    members = []
    for path, data in layers.items():
        members.append(file_entry(path, data))
    members.extend(extra)
    if manifest is not False:
        content = manifest if isinstance(manifest, bytes) else json.dumps(manifest).encode("utf-8")
        members.append(file_entry("manifest.json", content))
    return make_tar(*members)


def write_image(tmp_path, layers, manifest=None, extra=()) -> str:
    """Write a docker save archive under tmp_path and return its path."""
    path = tmp_path / "image.tar"
    path.write_bytes(make_image(layers, manifest=manifest, extra=extra))
    return str(path)
