"""Core configuration and session helpers."""

from .session import create_session, docker_base_url
from .types import SplatConfig

__all__ = ["SplatConfig", "create_session", "docker_base_url"]
