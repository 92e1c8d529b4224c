"""Tests for the splat orchestrator."""

import pytest

import docker_splat.splat as splat_module
from docker_splat.core.types import SplatConfig
from docker_splat.exceptions import (
    CorruptArchiveError,
    FileSystemError,
    ImageSourceError,
    ImageUnavailableError,
    InconsistentManifestError,
    MissingManifestError,
)
from docker_splat.source import ArchiveImageSource
from docker_splat.splat import Splatter, SplatState, splat_image
from docker_splat.tar.models import LayerStats
from tests.helpers import dir_entry, file_entry, make_image, make_tar, whiteout_entry


def two_layer_image():
    lower = make_tar(dir_entry("a"), file_entry("a/b.txt", b"b"), file_entry("a/c.txt", b"c"))
    upper = make_tar(whiteout_entry("a", "b.txt"), file_entry("a/d.txt", b"d"))
    return make_image({"lower/layer.tar": lower, "upper/layer.tar": upper})


@pytest.mark.asyncio
async def test_run_applies_layers_in_order(fake_source, destination):
    """Whiteouts in later layers delete files from earlier layers."""
    source = fake_source({"test/image:latest": two_layer_image()})
    splatter = Splatter(SplatConfig(image_source=source))

    result = await splatter.run("test/image:latest", destination)

    assert result.layers == ["lower/layer.tar", "upper/layer.tar"]
    assert len(result.stats) == 2
    assert splatter.state is SplatState.DONE
    assert sorted(p.name for p in (destination / "a").iterdir()) == ["c.txt", "d.txt"]


@pytest.mark.asyncio
async def test_apply_invoked_once_per_layer_in_manifest_order(fake_source, destination, monkeypatch):
    """The layer applier runs exactly once per manifest layer, in manifest order."""
    layers = {f"{name}/layer.tar": name.encode() for name in ("one", "two", "three")}
    manifest = [{"Layers": ["three/layer.tar", "one/layer.tar", "two/layer.tar"]}]
    source = fake_source({"img": make_image(layers, manifest=manifest)})

    applied = []

    def record(tar_bytes, dest):
        applied.append(tar_bytes)
        return LayerStats()

    monkeypatch.setattr(splat_module, "apply_layer", record)

    await Splatter(SplatConfig(image_source=source)).run("img", destination)

    assert applied == [b"three", b"one", b"two"]


@pytest.mark.asyncio
async def test_missing_image_is_pulled_then_retried(fake_source, destination):
    """A NotFound image triggers one pull and a second obtain."""
    source = fake_source(pullable={"alpine:3.19": two_layer_image()})

    await Splatter(SplatConfig(image_source=source)).run("alpine:3.19", destination)

    assert source.calls == [
        ("obtain", "alpine:3.19"),
        ("pull", "alpine:3.19"),
        ("obtain", "alpine:3.19"),
    ]


@pytest.mark.asyncio
async def test_pull_failure_is_image_unavailable(fake_source, destination):
    """When the pull fails the run stops with ImageUnavailableError."""
    source = fake_source()
    splatter = Splatter(SplatConfig(image_source=source))

    with pytest.raises(ImageUnavailableError) as exc_info:
        await splatter.run("ghost:latest", destination)

    assert exc_info.value.reference == "ghost:latest"
    assert splatter.state is SplatState.FAILED
    assert list(destination.iterdir()) == []


@pytest.mark.asyncio
async def test_source_error_is_not_retried(fake_source, destination):
    """Errors other than NotFound are not followed by a pull."""
    source = fake_source()

    async def broken(reference):
        source.calls.append(("obtain", reference))
        raise ImageSourceError("daemon unreachable")

    source.obtain = broken

    with pytest.raises(ImageUnavailableError):
        await Splatter(SplatConfig(image_source=source)).run("img", destination)

    assert source.calls == [("obtain", "img")]


@pytest.mark.asyncio
async def test_inconsistent_manifest_touches_nothing(fake_source, destination):
    """A manifest layer without a blob fails before any layer is applied."""
    layers = {"ok/layer.tar": make_tar(file_entry("ok.txt", b"ok"))}
    manifest = [{"Layers": ["ok/layer.tar", "missing/layer.tar"]}]
    source = fake_source({"img": make_image(layers, manifest=manifest)})
    splatter = Splatter(SplatConfig(image_source=source))

    with pytest.raises(InconsistentManifestError) as exc_info:
        await splatter.run("img", destination)

    assert exc_info.value.layer_id == "missing/layer.tar"
    assert splatter.state is SplatState.FAILED
    assert list(destination.iterdir()) == []


@pytest.mark.asyncio
async def test_missing_manifest(fake_source, destination):
    """An image archive without manifest.json is an error by default."""
    source = fake_source({"img": make_image({"layer.tar": make_tar()}, manifest=False)})

    with pytest.raises(MissingManifestError):
        await Splatter(SplatConfig(image_source=source)).run("img", destination)


@pytest.mark.asyncio
async def test_missing_manifest_permissive(fake_source, destination):
    """With require_manifest disabled nothing is applied and the run succeeds."""
    source = fake_source({"img": make_image({"layer.tar": make_tar()}, manifest=False)})
    config = SplatConfig(image_source=source, require_manifest=False)

    result = await Splatter(config).run("img", destination)

    assert result.layers == []
    assert list(destination.iterdir()) == []


@pytest.mark.asyncio
async def test_failure_mid_layer_keeps_partial_tree(fake_source, destination):
    """Layers after a failing layer are not applied, earlier writes remain."""
    first = make_tar(file_entry("first.txt", b"1"))
    broken = make_tar(file_entry("first.txt/child", b"x"))
    third = make_tar(file_entry("third.txt", b"3"))
    image = make_image({"1.tar": first, "2.tar": broken, "3.tar": third})
    splatter = Splatter(SplatConfig(image_source=fake_source({"img": image})))

    with pytest.raises(FileSystemError):
        await splatter.run("img", destination)

    assert (destination / "first.txt").read_bytes() == b"1"
    assert not (destination / "third.txt").exists()
    assert splatter.state is SplatState.FAILED


@pytest.mark.asyncio
async def test_corrupt_layer(fake_source, destination):
    """A layer blob that is not a tar archive aborts the run."""
    image = make_image({"bad.tar": b"definitely not a tar archive" * 40})

    with pytest.raises(CorruptArchiveError):
        await Splatter(SplatConfig(image_source=fake_source({"img": image}))).run("img", destination)


@pytest.mark.asyncio
async def test_destination_is_created(fake_source, tmp_path):
    """A missing destination directory is created."""
    destination = tmp_path / "new" / "rootfs"
    source = fake_source({"img": two_layer_image()})

    await Splatter(SplatConfig(image_source=source)).run("img", destination)

    assert (destination / "a" / "c.txt").read_bytes() == b"c"


@pytest.mark.asyncio
async def test_reapplying_image_converges(fake_source, destination):
    """Applying the same image twice gives the same tree."""
    source = fake_source({"img": two_layer_image()})

    await Splatter(SplatConfig(image_source=source)).run("img", destination)
    first = sorted(p.relative_to(destination).as_posix() for p in destination.rglob("*"))
    await Splatter(SplatConfig(image_source=source)).run("img", destination)
    second = sorted(p.relative_to(destination).as_posix() for p in destination.rglob("*"))

    assert first == second == ["a", "a/c.txt", "a/d.txt"]


@pytest.mark.asyncio
async def test_splat_image_with_archive_source(tmp_path, destination):
    """splat_image works end to end with a docker save archive on disk."""
    archive = tmp_path / "image.tar"
    archive.write_bytes(two_layer_image())
    config = SplatConfig(image_source=ArchiveImageSource())

    result = await splat_image(str(archive), destination, config=config)

    assert result.destination == str(destination)
    assert (destination / "a" / "d.txt").read_bytes() == b"d"


@pytest.mark.asyncio
async def test_missing_archive_is_unavailable(tmp_path, destination):
    """A missing archive cannot be pulled and is reported as unavailable."""
    config = SplatConfig(image_source=ArchiveImageSource())

    with pytest.raises(ImageUnavailableError):
        await splat_image(str(tmp_path / "missing.tar"), destination, config=config)

