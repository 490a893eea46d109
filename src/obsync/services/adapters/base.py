"""Platform-independent adapter interfaces.

The repository manager only talks to storage, the filesystem and the network
through these interfaces, so each platform (local disk, in-memory, tests)
provides its own implementation.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import BaseModel


class FileInfo(BaseModel):
    """Existence information for a path."""

    exists: bool
    is_directory: bool = False


class StorageAdapter(ABC):
    """Persisted string key/value store.

    Writes to a key are atomic and last-write-wins; there is no ordering
    guarantee across distinct keys.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove ``key``; removing an absent key is a no-op."""


class FileSystemAdapter(ABC):
    """Byte-level storage for repository content and thumbnails."""

    @property
    @abstractmethod
    def document_directory(self) -> str:
        """Root under which the application keeps its files."""

    @abstractmethod
    async def info(self, path: str) -> FileInfo:
        """Return whether ``path`` exists and whether it is a directory."""

    @abstractmethod
    async def make_directory(self, path: str, intermediates: bool = False) -> None:
        """Create a directory, with parents when ``intermediates`` is set."""

    @abstractmethod
    async def delete(self, path: str, idempotent: bool = False) -> None:
        """Delete a file or a whole directory subtree.

        Raises:
            IoError: If the path is missing and ``idempotent`` is False
        """

    @abstractmethod
    async def write_string(self, path: str, content: str) -> None:
        """Write text to ``path``, creating parent directories."""

    @abstractmethod
    async def read_string(self, path: str) -> str:
        """Read text from ``path``."""

    @abstractmethod
    async def move(self, src: str, dst: str) -> None:
        """Move a file or directory; ``dst`` must not exist."""

    @abstractmethod
    async def download_to_file(self, remote_url: str, local_path: str) -> int:
        """Stream ``remote_url`` into ``local_path`` and return the bytes written.

        Raises:
            HttpError: On a non-success status; no file is left behind
        """

    @abstractmethod
    async def extract_zip(self, archive_path: str, target_dir: str, strip_root: bool = True) -> int:
        """Extract a zip archive and return the number of files written.

        When ``strip_root`` is set and every entry shares one top-level folder
        (as archives produced by git forges do), that folder is dropped.
        """


class NetworkAdapter(ABC):
    """Online-state probe and HTTP fetch wrapper."""

    @abstractmethod
    async def is_online(self) -> bool:
        """Return True when the remote catalog is reachable."""

    @abstractmethod
    async def fetch(
        self,
        url: str,
        method: str = "GET",
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Perform a request and return a successful response.

        Raises:
            OfflineError: When offline; no request is attempted
            HttpError: When the response status is not 2xx
            NetworkError: When the request fails in transport
        """
