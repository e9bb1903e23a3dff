"""Configuration module for dbbench."""

from .binaries import BinaryConfig, BinaryConfigStore, DetectionResult
from .settings import Settings, get_settings

__all__ = ["BinaryConfig", "BinaryConfigStore", "DetectionResult", "Settings", "get_settings"]
