"""Configuration loading utilities for depthrelief."""

from .schema import (
    ViewerConfig,
    load_config,
)

__all__ = ["ViewerConfig", "load_config"]
