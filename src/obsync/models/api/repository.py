"""API models for repository operations."""

from pydantic import BaseModel


class RepositoryStatus(BaseModel):
    """Repository download status."""

    key: str
    is_downloaded: bool
    version: str | None = None
    last_updated: str | None = None
    cache_path: str | None = None


class ErrorDetail(BaseModel):
    """Error body returned for application errors."""

    code: str
    message: str
    retriable: bool = False
    params: dict[str, str] = {}
