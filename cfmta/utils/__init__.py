"""
Utility functions for cfmta.
"""

from .logger import setup_logging, setup_logging_from_settings
from .validators import validate_archive_file, file_sha256

__all__ = [
    "setup_logging",
    "setup_logging_from_settings",
    "validate_archive_file",
    "file_sha256",
]
