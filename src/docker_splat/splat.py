"""Materialize container image filesystems onto disk."""

import asyncio
import logging
import os
from enum import Enum
from pathlib import Path
from typing import BinaryIO

from .core.types import SplatConfig
from .exceptions import (
    FileSystemError,
    ImageNotFoundError,
    ImageSourceError,
    ImageUnavailableError,
)
from .source import DockerImageSource, ImageSource
from .tar.layer import apply_layer
from .tar.manifest import extract, resolve_layers
from .tar.models import SplatResult
from .tar.reader import iter_entries

logger = logging.getLogger(__name__)


class SplatState(Enum):
    """Progress of a splat run."""

    IDLE = "idle"
    IMAGE_OBTAINED = "image_obtained"
    MANIFEST_PARSED = "manifest_parsed"
    APPLYING_LAYER = "applying_layer"
    DONE = "done"
    FAILED = "failed"


def read_image_archive(
    archive: BinaryIO, require_manifest: bool = True
) -> list[tuple[str, bytes]]:
    """Read an image save archive into its ordered layer blobs (sync helper).

    Raises:
        MissingManifestError: If manifest.json is missing and required
        CorruptManifestError: If manifest.json cannot be parsed
        CorruptArchiveError: If the archive cannot be read
        InconsistentManifestError: If a manifest layer has no blob
    """
    layer_ids, blobs = extract(iter_entries(archive), require_manifest=require_manifest)
    return resolve_layers(layer_ids, blobs)


class Splatter:
    """Applies the layers of an image onto a destination directory."""

    def __init__(self, config: SplatConfig | None = None) -> None:
        """Initialize splatter.

        Args:
            config: Splat configuration; its image_source overrides the Docker daemon
        """
        self.config = config or SplatConfig()
        self.source: ImageSource = self.config.image_source or DockerImageSource(self.config)
        self.state = SplatState.IDLE

    async def obtain(self, reference: str) -> BinaryIO:
        """Obtain the image archive, pulling the image once if it is missing.

        Raises:
            ImageUnavailableError: If the image cannot be obtained
        """
        try:
            return await self.source.obtain(reference)
        except ImageNotFoundError:
            logger.info("Image not found, attempting to pull it...")
        except ImageSourceError as e:
            raise ImageUnavailableError(reference, f"Image {reference} is unavailable: {e}") from e

        try:
            await self.source.pull(reference)
            return await self.source.obtain(reference)
        except ImageSourceError as e:
            raise ImageUnavailableError(reference, f"Image {reference} is unavailable: {e}") from e

    async def run(self, reference: str, destination: str | Path) -> SplatResult:
        """Materialize the image filesystem in destination.

        Layers are applied one at a time in manifest order. A failure leaves
        whatever was already written in place.

        Args:
            reference: Image reference
            destination: Destination directory, created if missing

        Returns:
            SplatResult with the applied layers and their stats

        Raises:
            SplatError: On the first fatal error
        """
        loop = asyncio.get_event_loop()
        destination = os.fspath(destination)
        result = SplatResult(reference=reference, destination=destination)

        try:
            logger.debug("Loading image %s", reference)
            archive = await self.obtain(reference)
            self.state = SplatState.IMAGE_OBTAINED

            with archive:
                layers = await loop.run_in_executor(
                    None, read_image_archive, archive, self.config.require_manifest
                )
            self.state = SplatState.MANIFEST_PARSED

            try:
                os.makedirs(destination, exist_ok=True)
            except OSError as e:
                raise FileSystemError(f"Cannot create destination {destination}: {e}") from e

            for layer_id, tar_bytes in layers:
                self.state = SplatState.APPLYING_LAYER
                logger.debug("Unpacking '%s' size: %d", layer_id, len(tar_bytes))
                stats = await loop.run_in_executor(None, apply_layer, tar_bytes, destination)
                logger.debug(
                    "Applied '%s': %d files, %d directories, %d links, %d whiteouts, %d skipped",
                    layer_id,
                    stats.files,
                    stats.directories,
                    stats.links,
                    stats.whiteouts,
                    stats.skipped,
                )
                result.layers.append(layer_id)
                result.stats.append(stats)
        except Exception:
            self.state = SplatState.FAILED
            raise

        self.state = SplatState.DONE
        logger.info("Unpacked %d layers of %s into %s", len(result.layers), reference, destination)
        return result


async def splat_image(
    reference: str, destination: str | Path, config: SplatConfig | None = None
) -> SplatResult:
    """이미지의 파일시스템을 대상 디렉토리에 풀어놓습니다.

    Args:
        reference: 이미지 참조 (예: "alpine:3.19", "localhost:5000/myapp:latest")
        destination: 대상 디렉토리 경로 (없으면 생성됨)
        config: 설정 (기본값: 환경 변수 기반 SplatConfig)

    Returns:
        SplatResult: 적용된 레이어 목록과 레이어별 통계

    Raises:
        SplatError: 이미지 획득, 아카이브 읽기 또는 파일시스템 작업 실패 시

    Examples:
        # 로컬 Docker 데몬의 이미지 풀기
        result = await splat_image("alpine:3.19", "./rootfs")
        print(f"적용된 레이어: {len(result.layers)}개")
    """
    return await Splatter(config or SplatConfig.from_env()).run(reference, destination)
