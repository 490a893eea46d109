"""Configuration data models for obsync."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class ServerConfig(BaseModel):
    """Server configuration."""

    port: int = 8000
    host: str = "127.0.0.1"


class PathsConfig(BaseModel):
    """Paths configuration.

    Content lives under ``data_dir / app_dir / owner / language / id`` and
    thumbnails under ``data_dir / app_dir / thumbnails_dir``.
    """

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".obsync")
    app_dir: str = "obs-app"
    thumbnails_dir: str = "thumbnails"
    logs_dir: Path | None = None

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_data_dir(cls, v: str | Path) -> Path:
        """Expand user path for data_dir."""
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    @field_validator("logs_dir", mode="before")
    @classmethod
    def expand_optional_path(cls, v: str | Path | None) -> Path | None:
        """Expand user path for optional paths."""
        if v is None:
            return None
        if isinstance(v, str):
            return Path(v).expanduser()
        return v

    def model_post_init(self, __context: object) -> None:
        """Set default subdirectories if not specified."""
        if self.logs_dir is None:
            self.logs_dir = self.data_dir / "logs"

    @property
    def content_root(self) -> Path:
        return self.data_dir / self.app_dir

    @property
    def thumbnails_root(self) -> Path:
        return self.content_root / self.thumbnails_dir


class CatalogConfig(BaseModel):
    """Remote catalog configuration."""

    base_url: str = "https://git.door43.org/api/v1"
    subject: str = "Open Bible Stories"
    stage: str = "prod"
    default_branch: str = "master"

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class NetworkConfig(BaseModel):
    """Network behaviour for catalog and archive requests."""

    timeout: float = Field(default=5.0, gt=0)  # Seconds per request
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, ge=0)  # Seconds between attempts


class StorageConfig(BaseModel):
    """Key/value storage configuration."""

    storage_key: str = "@obs_downloaded_repos"
    file_name: str = "storage.json"


class AdvancedConfig(BaseModel):
    """Advanced configuration."""

    log_level: Literal["WARNING", "INFO", "DEBUG"] = "INFO"


class AppConfig(BaseModel):
    """Application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    advanced: AdvancedConfig = Field(default_factory=AdvancedConfig)
