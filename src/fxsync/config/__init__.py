"""Configuration module for fx-sync."""

from fxsync.config.logging import configure_logging
from fxsync.config.settings import Settings, load_settings

__all__ = ["Settings", "configure_logging", "load_settings"]
