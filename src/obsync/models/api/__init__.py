"""API models package."""

from obsync.models.api.repository import ErrorDetail, RepositoryStatus

__all__ = ["ErrorDetail", "RepositoryStatus"]
