"""Test configuration and fixtures."""

import io

import pytest

from docker_splat.exceptions import ImageNotFoundError, ImagePullError
from docker_splat.source import ImageSource


class FakeImageSource(ImageSource):
    """In-memory image source recording obtain and pull calls."""

    def __init__(self, images=None, pullable=None):
        self.images = dict(images or {})
        self.pullable = dict(pullable or {})
        self.calls: list[tuple[str, str]] = []

    async def obtain(self, reference):
        self.calls.append(("obtain", reference))
        if reference not in self.images:
            raise ImageNotFoundError(f"Image {reference} not found")
        return io.BytesIO(self.images[reference])

    async def pull(self, reference):
        self.calls.append(("pull", reference))
        if reference not in self.pullable:
            raise ImagePullError(f"Failed to pull {reference}")
        self.images[reference] = self.pullable[reference]


@pytest.fixture
def fake_source():
    """Factory for fake image sources."""
    return FakeImageSource


@pytest.fixture
def destination(tmp_path):
    """Empty destination directory."""
    path = tmp_path / "rootfs"
    path.mkdir()
    return path
