"""Core, side-effect free helpers for obsync."""

from obsync.core.versions import VersionOrder, classify_version_change, compare_versions, is_newer

__all__ = ["VersionOrder", "classify_version_change", "compare_versions", "is_newer"]
