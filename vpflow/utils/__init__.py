"""
Utility modules for the volume search.

This package contains helpers for file management and logging setup.
"""

from .file_management import FileManager
from .logging_config import setup_logging

__all__ = [
    "FileManager",
    "setup_logging",
]
