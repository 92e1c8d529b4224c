"""Utility functions for docker-splat."""

from .reference import parse_reference

__all__ = ["parse_reference"]
