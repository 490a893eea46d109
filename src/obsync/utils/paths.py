"""Path utilities for obsync, compatible with PyInstaller."""

import sys
from pathlib import Path


def get_resources_dir() -> Path:
    """Get the resources directory path.

    This function returns the correct path for both:
    - Development environment: src/obsync/resources
    - PyInstaller packaged environment: <MEIPASS>/obsync/resources

    Returns:
        Path to the resources directory
    """
    if getattr(sys, "frozen", False):
        # PyInstaller packaged environment
        base_path = Path(sys._MEIPASS)  # type: ignore[attr-defined]
        return base_path / "obsync" / "resources"
    # This file is at src/obsync/utils/paths.py
    return Path(__file__).parent.parent / "resources"
