"""Repository related models."""

from datetime import datetime, timezone
from enum import Enum

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from obsync.exceptions import ValidationError

_FORBIDDEN_CHARS = ("/", "\\", "\x00")


class RepositoryKey(BaseModel):
    """Identity of a repository: the exact ``(owner, language, id)`` triple.

    Each part becomes one directory level under the content root, so path
    separators, NUL and the ``.``/``..`` segments are rejected.
    """

    model_config = ConfigDict(frozen=True)

    owner: str
    language: str
    id: str

    @field_validator("owner", "language", "id")
    @classmethod
    def check_segment(cls, v: str) -> str:
        if not v or v in (".", "..") or any(c in v for c in _FORBIDDEN_CHARS):
            raise ValueError(f"invalid key segment {v!r}")
        return v

    @classmethod
    def parse(cls, value: "str | RepositoryKey") -> "RepositoryKey":
        """Parse an ``owner/language/id`` string.

        Raises:
            ValidationError: If the value does not have exactly three valid parts
        """
        if isinstance(value, RepositoryKey):
            return value
        parts = value.split("/")
        if len(parts) != 3 or not all(part.strip() for part in parts):
            raise ValidationError("repository.invalid_key", key=value)
        owner, language, repo_id = (part.strip() for part in parts)
        try:
            return cls(owner=owner, language=language, id=repo_id)
        except pydantic.ValidationError as e:
            raise ValidationError("repository.invalid_key", key=value) from e

    def __str__(self) -> str:
        return f"{self.owner}/{self.language}/{self.id}"


class Repository(BaseModel):
    """A versioned, downloadable content collection."""

    id: str
    owner: str
    language: str
    display_name: str
    description: str | None = None
    version: str = "1.0.0"
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    thumbnail: str | None = None
    local_thumbnail: str | None = None
    # Derived from the index on every read, never trusted from storage
    is_downloaded: bool = False

    @property
    def key(self) -> RepositoryKey:
        return RepositoryKey(owner=self.owner, language=self.language, id=self.id)


class VersionChange(str, Enum):
    """How a freshly fetched version relates to the locally stored one."""

    NEW = "new"
    SAME = "same"
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"


class DownloadResult(BaseModel):
    """Outcome of a successful download."""

    repository: Repository
    change: VersionChange
    previous_version: str | None = None


class DeleteOutcome(str, Enum):
    DELETED = "deleted"
    NOT_PRESENT = "not_present"


class DeleteResult(BaseModel):
    """Outcome of a successful delete; ``not_present`` marks an idempotent no-op."""

    key: str
    outcome: DeleteOutcome


class UpdateStatus(str, Enum):
    AVAILABLE = "available"
    UP_TO_DATE = "up_to_date"
    NOT_DOWNLOADED = "not_downloaded"
    UNKNOWN = "unknown"


class UpdateCheck(BaseModel):
    """Result of comparing the stored version against the catalog."""

    key: str
    status: UpdateStatus
    local_version: str | None = None
    remote_version: str | None = None
