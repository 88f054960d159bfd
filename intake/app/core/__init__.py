"""Core utilities for the intake gateway."""

from intake.app.core.config import Settings, settings
from intake.app.core.logging import get_logger, setup_logging

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
]
