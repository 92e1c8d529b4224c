"""Image sources providing docker save archives."""

import abc
import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import BinaryIO

import aiofiles
import aiohttp

from .core.session import create_session, docker_base_url
from .core.types import SplatConfig
from .exceptions import ImageNotFoundError, ImagePullError, ImageSourceError
from .utils.reference import parse_reference

logger = logging.getLogger(__name__)

# Daemon messages for a missing image on versions that answer 500 instead of 404
NOT_FOUND_MARKERS = ("no such image", "reference does not exist")


class ImageSource(abc.ABC):
    """Provides the docker save archive of an image reference."""

    @abc.abstractmethod
    async def obtain(self, reference: str) -> BinaryIO:
        """Open the save archive of a locally available image.

        Args:
            reference: Image reference (e.g., "alpine:3.19")

        Returns:
            Binary stream positioned at the start of the archive; the caller closes it

        Raises:
            ImageNotFoundError: If the image is not available locally
            ImageSourceError: If the archive cannot be obtained
        """

    @abc.abstractmethod
    async def pull(self, reference: str) -> None:
        """Fetch the image from its registry.

        Raises:
            ImagePullError: If the image cannot be pulled
        """


class ArchiveImageSource(ImageSource):
    """Treats image references as paths to docker save archives."""

    async def obtain(self, reference: str) -> BinaryIO:
        path = Path(reference)
        if not path.is_file():
            raise ImageNotFoundError(f"Image archive not found: {reference}")
        try:
            return open(path, "rb")
        except OSError as e:
            raise ImageSourceError(f"Cannot open image archive {reference}: {e}") from e

    async def pull(self, reference: str) -> None:
        raise ImagePullError(f"Cannot pull {reference}: archive images are local only")


class DockerImageSource(ImageSource):
    """Docker Engine API image source for local or remote daemons."""

    def __init__(self, config: SplatConfig | None = None) -> None:
        """Initialize Docker image source.

        Args:
            config: Splat configuration with the daemon address and timeouts
        """
        self.config = config or SplatConfig()
        self._api_version = self.config.api_version

    def _base_url(self) -> str:
        try:
            return docker_base_url(self.config.docker_host)
        except ValueError as e:
            raise ImageSourceError(str(e)) from e

    async def _negotiate_api_version(self, session: aiohttp.ClientSession) -> str:
        """Ask the daemon for its API version."""
        async with session.get(f"{self._base_url()}/version") as resp:
            if resp.status != 200:
                raise ImageSourceError(
                    f"Cannot negotiate API version with {self.config.docker_host}: HTTP {resp.status}"
                )
            data = await resp.json(content_type=None)

        api_version = data.get("ApiVersion") if isinstance(data, dict) else None
        if not api_version:
            raise ImageSourceError("Docker daemon did not report an API version")
        logger.debug("Negotiated Docker API version %s", api_version)
        return api_version

    async def _api_url(self, session: aiohttp.ClientSession, path: str) -> str:
        if self._api_version is None:
            self._api_version = await self._negotiate_api_version(session)
        return f"{self._base_url()}/v{self._api_version}{path}"

    async def obtain(self, reference: str) -> BinaryIO:
        try:
            fd, spool_path = tempfile.mkstemp(
                prefix="splat-", suffix=".tar", dir=self.config.spool_dir
            )
            os.close(fd)
        except OSError as e:
            raise ImageSourceError(f"Cannot create spool file for {reference}: {e}") from e

        try:
            async with await create_session(self.config) as session:
                url = await self._api_url(session, f"/images/{reference}/get")
                async with session.get(url) as resp:
                    if resp.status != 200:
                        message = (await resp.text()).strip()
                        if resp.status == 404 or any(
                            marker in message.lower() for marker in NOT_FOUND_MARKERS
                        ):
                            raise ImageNotFoundError(f"Image {reference} not found: {message}")
                        raise ImageSourceError(
                            f"Failed to save image {reference}: HTTP {resp.status} {message}"
                        )

                    async with aiofiles.open(spool_path, "wb") as f:
                        async for chunk in resp.content.iter_chunked(self.config.chunk_size):
                            await f.write(chunk)

            # the open handle keeps the unlinked spool file readable
            return open(spool_path, "rb")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ImageSourceError(
                f"Cannot reach Docker daemon at {self.config.docker_host}: {e}"
            ) from e
        finally:
            os.unlink(spool_path)

    async def pull(self, reference: str) -> None:
        repository, tag = parse_reference(reference)
        logger.debug("Pulling %s (%s)", repository, tag)

        try:
            async with await create_session(self.config) as session:
                url = await self._api_url(session, "/images/create")
                params = {"fromImage": repository, "tag": tag}
                async with session.post(url, params=params) as resp:
                    if resp.status != 200:
                        message = (await resp.text()).strip()
                        raise ImagePullError(
                            f"Failed to pull {reference}: HTTP {resp.status} {message}"
                        )

                    # progress is a stream of JSON records; failures arrive as {"error": ...}
                    async for line in resp.content:
                        line = line.strip()
                        if not line:
                            continue
                        try:
                            status = json.loads(line)
                        except json.JSONDecodeError:
                            continue
                        if not isinstance(status, dict):
                            continue
                        if status.get("error"):
                            raise ImagePullError(f"Failed to pull {reference}: {status['error']}")
                        logger.debug("%s", status.get("status", ""))
        except ImagePullError:
            raise
        except ImageSourceError as e:
            raise ImagePullError(f"Failed to pull {reference}: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ImagePullError(f"Failed to pull {reference}: {e}") from e
