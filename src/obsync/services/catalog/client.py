"""Client for the remote content catalog."""

from typing import Any
from urllib.parse import quote

import pydantic

from obsync.exceptions import ParseError
from obsync.logger import get_logger
from obsync.models.config import CatalogConfig, NetworkConfig
from obsync.models.repository import Repository, RepositoryKey
from obsync.services.adapters.base import NetworkAdapter
from obsync.utils.retry import retry_async

logger = get_logger(__name__)


class CatalogClient:
    """Queries the catalog search and entry endpoints.

    An empty search result is a normal outcome (a lookup miss); network and
    HTTP failures propagate as the adapter's errors, malformed payloads as
    ParseError. A malformed entry inside a valid payload is logged and skipped.
    """

    def __init__(self, network: NetworkAdapter, catalog: CatalogConfig, retry: NetworkConfig) -> None:
        self.network = network
        self.catalog = catalog
        self.retry = retry

    @property
    def base_url(self) -> str:
        return self.catalog.base_url

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> Any:  # noqa: ANN401
        async def attempt() -> Any:  # noqa: ANN401
            response = await self.network.fetch(url, params=params)
            try:
                return response.json()
            except ValueError as e:
                raise ParseError("catalog.invalid_payload", url=url, reason="body is not JSON") from e

        return await retry_async(
            attempt,
            attempts=self.retry.retry_attempts,
            delay=self.retry.retry_delay,
            description=url,
        )

    async def search(self, owner: str | None = None, language: str | None = None) -> list[Repository]:
        """
        Search the catalog for repositories of the configured subject.

        Args:
            owner: Restrict to one owner
            language: Restrict to one language code

        Returns:
            Matching repositories, possibly empty
        """
        url = f"{self.base_url}/catalog/search"
        params = {"subject": self.catalog.subject, "stage": self.catalog.stage}
        if owner:
            params["owner"] = owner
        if language:
            params["lang"] = language

        payload = await self._get_json(url, params)
        if not isinstance(payload, dict):
            raise ParseError("catalog.invalid_payload", url=url, reason="expected an object")

        entries = payload.get("data") or []
        if not isinstance(entries, list):
            raise ParseError("catalog.invalid_payload", url=url, reason="'data' is not a list")

        repositories = []
        for entry in entries:
            try:
                repositories.append(self._to_repository(entry, url, owner, language))
            except ParseError as e:
                logger.warning("Skipping malformed catalog entry", url=url, error=str(e))
        return repositories

    async def lookup(self, key: RepositoryKey) -> Repository | None:
        """
        Find exactly one repository by its key.

        Matching is exact on the repository name; owner and language must match
        ignoring case. The returned record carries the requested key.

        Returns:
            The repository, or None when the catalog has no such entry
        """
        for repo in await self.search(owner=key.owner, language=key.language):
            if (
                repo.id == key.id
                and repo.owner.lower() == key.owner.lower()
                and repo.language.lower() == key.language.lower()
            ):
                return repo.model_copy(update={"owner": key.owner, "language": key.language})

        logger.debug("Catalog lookup miss", key=str(key))
        return None

    async def resolve_archive_url(self, owner: str, repo_id: str, branch: str) -> str:
        """Return the zipball URL of ``owner/repo_id`` at ``branch``."""
        url = f"{self.base_url}/catalog/entry/{quote(owner)}/{quote(repo_id)}/{quote(branch)}"
        payload = await self._get_json(url)

        zipball_url = payload.get("zipball_url") if isinstance(payload, dict) else None
        if not isinstance(zipball_url, str) or not zipball_url:
            raise ParseError("catalog.missing_archive_url", owner=owner, repo=repo_id, branch=branch)
        return zipball_url

    def _to_repository(
        self, entry: object, url: str, owner: str | None, language: str | None
    ) -> Repository:
        """Map one raw search entry into a Repository."""
        if not isinstance(entry, dict) or not entry.get("name"):
            raise ParseError("catalog.invalid_payload", url=url, reason="entry without a name")

        repo_info = entry.get("repo") if isinstance(entry.get("repo"), dict) else {}
        release = entry.get("release") if isinstance(entry.get("release"), dict) else {}

        fields: dict[str, Any] = {
            "id": entry["name"],
            "owner": entry.get("owner") or owner or "",
            "language": entry.get("language") or language or "",
            "display_name": entry.get("title") or entry["name"],
            "description": repo_info.get("description") or None,
            "version": release.get("tag_name") or "1.0.0",
            "thumbnail": repo_info.get("avatar_url") or None,
        }
        if release.get("published_at"):
            fields["last_updated"] = release["published_at"]

        try:
            # Catalog names become directory names
            RepositoryKey(owner=fields["owner"], language=fields["language"], id=fields["id"])
            return Repository(**fields)
        except pydantic.ValidationError as e:
            raise ParseError("catalog.invalid_payload", url=url, reason=str(e)) from e
