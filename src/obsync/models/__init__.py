"""Data models for obsync."""

from obsync.models.config import AppConfig
from obsync.models.repository import (
    DeleteOutcome,
    DeleteResult,
    DownloadResult,
    Repository,
    RepositoryKey,
    UpdateCheck,
    UpdateStatus,
    VersionChange,
)

__all__ = [
    "AppConfig",
    "DeleteOutcome",
    "DeleteResult",
    "DownloadResult",
    "Repository",
    "RepositoryKey",
    "UpdateCheck",
    "UpdateStatus",
    "VersionChange",
]
