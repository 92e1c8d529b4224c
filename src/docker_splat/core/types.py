"""Configuration types."""

import logging
import os
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from ..source import ImageSource

DEFAULT_DOCKER_HOST = "unix:///var/run/docker.sock"


@dataclass(frozen=True)
class SplatConfig:
    """Configuration for a splat run.

    Attributes:
        docker_host: Docker daemon address (unix:// or tcp:// URL)
        api_version: Docker Engine API version, negotiated when None
        timeout: Total timeout for a single daemon request, in seconds
        verbosity: Logging level used by the command line
        require_manifest: Fail on image archives without manifest.json
        spool_dir: Directory for the downloaded image archive (system default when None)
        chunk_size: Read size used when streaming from the daemon
        image_source: Image source override (Docker daemon when None)
    """

    docker_host: str = DEFAULT_DOCKER_HOST
    api_version: str | None = None
    timeout: int = 300
    verbosity: int = logging.INFO
    require_manifest: bool = True
    spool_dir: str | None = None
    chunk_size: int = 1024 * 1024
    image_source: "ImageSource | None" = None

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: Any
    ) -> "SplatConfig":
        """Build configuration from DOCKER_HOST, DOCKER_API_VERSION and SPLAT_TIMEOUT.

        Keyword overrides that are not None take precedence over the environment.
        """
        env = os.environ if environ is None else environ
        config = cls()

        values: dict[str, Any] = {}
        if env.get("DOCKER_HOST"):
            values["docker_host"] = env["DOCKER_HOST"]
        if env.get("DOCKER_API_VERSION"):
            values["api_version"] = env["DOCKER_API_VERSION"]
        if env.get("SPLAT_TIMEOUT"):
            try:
                values["timeout"] = int(env["SPLAT_TIMEOUT"])
            except ValueError as e:
                raise ValueError(f"Invalid SPLAT_TIMEOUT: {env['SPLAT_TIMEOUT']}") from e

        values.update({key: value for key, value in overrides.items() if value is not None})
        return replace(config, **values)
