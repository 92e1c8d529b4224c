"""aiohttp session creation for the Docker daemon."""

from urllib.parse import urlparse

import aiohttp

from .types import SplatConfig


def docker_base_url(docker_host: str) -> str:
    """Get the HTTP base URL for a Docker host address.

    Unix sockets are reached through a connector, so their base URL is a
    placeholder host.

    Raises:
        ValueError: If the address scheme is not supported
    """
    parsed = urlparse(docker_host)
    if parsed.scheme == "unix":
        return "http://localhost"
    if parsed.scheme in ("tcp", "http"):
        return f"http://{parsed.netloc}"
    if parsed.scheme == "https":
        return f"https://{parsed.netloc}"
    raise ValueError(f"Unsupported Docker host: {docker_host}")


def create_connector(docker_host: str) -> aiohttp.BaseConnector | None:
    """Create a connector for unix socket hosts, None for TCP hosts."""
    parsed = urlparse(docker_host)
    if parsed.scheme == "unix":
        return aiohttp.UnixConnector(path=parsed.path)
    return None


async def create_session(config: SplatConfig | None = None) -> aiohttp.ClientSession:
    """Create a client session for the configured Docker daemon.

    Args:
        config: Splat configuration (defaults when None)

    Returns:
        New aiohttp.ClientSession; the caller closes it
    """
    config = config or SplatConfig()
    return aiohttp.ClientSession(
        connector=create_connector(config.docker_host),
        timeout=aiohttp.ClientTimeout(total=config.timeout),
    )
