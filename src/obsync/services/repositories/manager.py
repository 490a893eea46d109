"""
Repository manager - download index, offline cache and catalog reconciliation.

The manager is the sole owner of the download index and the content tree. An
index entry and the files it points at are committed together: content is
staged next to its final location, swapped in, and only then recorded.
"""

import asyncio
import json
import os
from pathlib import Path

import pydantic

from obsync.core.versions import classify_version_change, is_newer
from obsync.exceptions import AppBaseError, NotFoundError, OfflineError, ValidationError
from obsync.logger import get_logger
from obsync.models.repository import (
    DeleteOutcome,
    DeleteResult,
    DownloadResult,
    Repository,
    RepositoryKey,
    UpdateCheck,
    UpdateStatus,
)
from obsync.utils.retry import retry_async
from obsync.utils.singleflight import SingleFlight

from .context import RepositoryContext

logger = get_logger(__name__)

KeyLike = str | RepositoryKey


class RepositoryManager:
    """Download, delete, enumerate and update-check story repositories."""

    METADATA_FILE = "metadata.json"
    UNKNOWN_VERSION = "0.0.0"

    def __init__(self, context: RepositoryContext) -> None:
        self.context = context
        self.config = context.config
        self.storage = context.storage
        self.fs = context.filesystem
        self.network = context.network
        self.catalog = context.catalog

        # Ordered set of "owner/language/id" keys
        self._index: dict[str, None] = {}
        self._ready = False
        self._init_task: asyncio.Future[None] | None = None
        self._index_lock = asyncio.Lock()
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._downloads: SingleFlight[DownloadResult] = SingleFlight()

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load the persisted download index. Safe to call repeatedly."""
        if self._init_task is None or (self._init_task.done() and not self._ready):
            self._init_task = asyncio.ensure_future(self._load_index())
        await asyncio.shield(self._init_task)

    async def _load_index(self) -> None:
        raw = await self.storage.get(self.storage_key)
        keys: list[str] = []
        if raw:
            try:
                data = json.loads(raw)
                if not isinstance(data, list):
                    raise ValueError("index is not a list")
            except ValueError as e:
                logger.warning(f"Ignoring unreadable download index: {e}")
                data = []

            for item in data:
                try:
                    keys.append(str(RepositoryKey.parse(str(item))))
                except ValidationError:
                    logger.warning("Dropping malformed index entry", entry=item)

        self._index = dict.fromkeys(keys)
        self._ready = True
        logger.info(f"Loaded {len(self._index)} downloaded repositories")

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    @property
    def storage_key(self) -> str:
        return self.config.storage.storage_key

    def _metadata_key(self, key: RepositoryKey | str) -> str:
        return f"{self.storage_key}:{key}"

    def _content_root(self) -> Path:
        return Path(self.fs.document_directory) / self.config.paths.app_dir

    def get_repository_path(self, key: KeyLike) -> str:
        """Content directory of a repository.

        Raises:
            ValidationError: If the path would leave the content root
        """
        key = RepositoryKey.parse(key)
        root = self._content_root()
        path = root / key.owner / key.language / key.id
        if not Path(os.path.normpath(path)).is_relative_to(os.path.normpath(root)):
            raise ValidationError("repository.invalid_key", key=str(key))
        return str(path)

    def get_thumbnail_path(self, key: KeyLike) -> str:
        """Cached thumbnail image of a repository."""
        key = RepositoryKey.parse(key)
        return str(
            self._content_root() / self.config.paths.thumbnails_dir / f"{key.owner}_{key.language}_{key.id}.jpg"
        )

    def _key_lock(self, key: str) -> asyncio.Lock:
        return self._key_locks.setdefault(key, asyncio.Lock())

    async def _exists(self, path: str) -> bool:
        return (await self.fs.info(path)).exists

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def is_repository_downloaded(self, key: KeyLike) -> bool:
        """True when the key is indexed and its content is present."""
        key = RepositoryKey.parse(key)
        await self.initialize()
        if str(key) not in self._index:
            return False
        return await self._exists(self.get_repository_path(key))

    async def get_repository(self, key: KeyLike) -> Repository | None:
        """
        Get a repository, preferring fresh catalog data.

        Online, the catalog record is returned with the local download status.
        Offline, on a catalog miss or a catalog failure, the cached local record
        is returned instead, or None when there is none.
        """
        key = RepositoryKey.parse(key)
        await self.initialize()
        downloaded = await self.is_repository_downloaded(key)

        if await self.network.is_online():
            try:
                remote = await self.catalog.lookup(key)
            except AppBaseError as e:
                logger.warning("Catalog lookup failed, falling back to local record", key=str(key), error=str(e))
                remote = None

            if remote is not None:
                local = await self._read_local_record(key) if downloaded else None
                return await self._with_local_state(remote, downloaded, local)
        else:
            logger.info("Offline, using local record", key=str(key))

        local = await self._read_local_record(key)
        if local is None:
            return None
        return await self._with_local_state(local, downloaded, local)

    async def get_local_repository(self, key: KeyLike) -> Repository:
        """
        Get the stored record of a downloaded repository.

        Raises:
            NotFoundError: If the repository is not downloaded
        """
        key = RepositoryKey.parse(key)
        if not await self.is_repository_downloaded(key):
            raise NotFoundError("repository.not_downloaded", key=str(key))
        record = await self._read_local_record(key) or self._minimal_record(key)
        return await self._with_local_state(record, True, record)

    async def search_repositories(self, language: str | None = None) -> list[Repository]:
        """
        Search the catalog, optionally filtered by language.

        Offline or when the catalog fails, downloaded repositories matching the
        language are returned instead.
        """
        await self.initialize()

        if not await self.network.is_online():
            logger.info("Offline, searching downloaded repositories", language=language)
            return await self._downloaded_in_language(language)

        try:
            results = await self.catalog.search(language=language)
        except AppBaseError as e:
            logger.warning("Catalog search failed, searching downloaded repositories", error=str(e))
            return await self._downloaded_in_language(language)

        repositories = []
        for repo in results:
            downloaded = await self.is_repository_downloaded(repo.key)
            repositories.append(await self._with_local_state(repo, downloaded, None))
        return repositories

    async def _downloaded_in_language(self, language: str | None) -> list[Repository]:
        repos = await self.get_downloaded_repositories()
        if language:
            return [repo for repo in repos if repo.language == language]
        return repos

    async def _with_local_state(
        self, repo: Repository, downloaded: bool, local: Repository | None
    ) -> Repository:
        """Copy ``repo`` with download status and cached thumbnail resolved."""
        local_thumbnail = None
        if downloaded:
            candidate = (local.local_thumbnail if local else None) or self.get_thumbnail_path(repo.key)
            if await self._exists(candidate):
                local_thumbnail = candidate
        return repo.model_copy(update={"is_downloaded": downloaded, "local_thumbnail": local_thumbnail})

    async def _read_local_record(self, key: RepositoryKey) -> Repository | None:
        """Stored metadata, falling back to the metadata.json written with the content."""
        try:
            raw = await self.storage.get(self._metadata_key(key))
            if raw:
                return Repository.model_validate_json(raw)
        except (AppBaseError, pydantic.ValidationError) as e:
            logger.warning("Unreadable stored metadata", key=str(key), error=str(e))

        metadata_path = str(Path(self.get_repository_path(key)) / self.METADATA_FILE)
        if not await self._exists(metadata_path):
            return None
        try:
            record = Repository.model_validate_json(await self.fs.read_string(metadata_path))
        except (AppBaseError, pydantic.ValidationError) as e:
            logger.warning("Unreadable metadata file", path=metadata_path, error=str(e))
            return None

        if (record.owner, record.language, record.id) != (key.owner, key.language, key.id):
            logger.warning(
                "Metadata file does not match its location",
                path=metadata_path,
                found=f"{record.owner}/{record.language}/{record.id}",
            )
            return None
        return record

    def _minimal_record(self, key: RepositoryKey) -> Repository:
        return Repository(
            id=key.id,
            owner=key.owner,
            language=key.language,
            display_name=key.id,
            version=self.UNKNOWN_VERSION,
            is_downloaded=True,
        )

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    async def download_repository(self, key: KeyLike, branch: str | None = None) -> DownloadResult:
        """
        Download a repository and record it in the index.

        Concurrent calls for the same key share one download and observe the
        same result or error.

        Args:
            key: Repository key or "owner/language/id"
            branch: Catalog branch to fetch, defaults to the configured branch

        Returns:
            The stored repository and how its version changed

        Raises:
            OfflineError: If the device is offline
            NotFoundError: If the catalog does not list the repository
            HttpError, NetworkError, IoError, ParseError: On failure; prior state is kept
        """
        key = RepositoryKey.parse(key)
        await self.initialize()
        branch = branch or self.config.catalog.default_branch
        return await self._downloads.do(str(key), lambda: self._download(key, branch))

    async def _download(self, key: RepositoryKey, branch: str) -> DownloadResult:
        key_str = str(key)
        if not await self.network.is_online():
            raise OfflineError(key=key_str)

        repo = await self.catalog.lookup(key)
        if repo is None:
            raise NotFoundError("repository.not_found", key=key_str)

        archive_url = await self.catalog.resolve_archive_url(key.owner, key.id, branch)
        logger.info("Downloading repository", key=key_str, version=repo.version, url=archive_url)

        content_path = self.get_repository_path(key)
        staging = f"{content_path}.partial"
        archive_path = f"{staging}.zip"
        staged_thumbnail = f"{self.get_thumbnail_path(key)}.partial"

        try:
            await self.fs.delete(staging, idempotent=True)
            await self.fs.make_directory(staging, intermediates=True)

            await retry_async(
                lambda: self.fs.download_to_file(archive_url, archive_path),
                attempts=self.config.network.retry_attempts,
                delay=self.config.network.retry_delay,
                description=archive_url,
            )
            file_count = await self.fs.extract_zip(archive_path, staging)

            has_thumbnail = await self._stage_thumbnail(repo, staged_thumbnail)
            record = repo.model_copy(
                update={
                    "is_downloaded": True,
                    "local_thumbnail": self.get_thumbnail_path(key) if has_thumbnail else None,
                }
            )
            await self.fs.write_string(str(Path(staging) / self.METADATA_FILE), record.model_dump_json(indent=2))

            previous = await self._commit(key, staging, record)
            if has_thumbnail:
                await self._promote_thumbnail(key, staged_thumbnail)
        finally:
            await self._discard(archive_path)
            await self._discard(staging)
            await self._discard(staged_thumbnail)

        previous_version = previous.version if previous else None
        change = classify_version_change(previous_version, record.version)
        logger.info(
            "Repository downloaded",
            key=key_str,
            version=record.version,
            previous_version=previous_version,
            change=change.value,
            files=file_count,
        )
        return DownloadResult(repository=record, change=change, previous_version=previous_version)

    async def _commit(self, key: RepositoryKey, staging: str, record: Repository) -> Repository | None:
        """Swap staged content into place and record it; roll back on failure.

        Returns:
            The record that was stored before this download, if any
        """
        key_str = str(key)
        content_path = self.get_repository_path(key)
        backup = f"{content_path}.previous"
        metadata_key = self._metadata_key(key)

        async with self._key_lock(key_str):
            previous_raw = await self.storage.get(metadata_key)
            previous = await self._read_local_record(key) if key_str in self._index else None

            await self.fs.delete(backup, idempotent=True)
            had_content = await self._exists(content_path)
            if had_content:
                await self.fs.move(content_path, backup)

            swapped = False
            try:
                await self.fs.move(staging, content_path)
                swapped = True
                async with self._index_lock:
                    await self.storage.set(metadata_key, record.model_dump_json())
                    index = dict(self._index)
                    index[key_str] = None
                    await self.storage.set(self.storage_key, json.dumps(list(index)))
                    self._index = index
            except AppBaseError as e:
                logger.error("Commit failed, restoring previous state", key=key_str, error=str(e))
                await self._rollback(content_path, backup, swapped, had_content, metadata_key, previous_raw)
                raise

            await self._discard(backup)
            return previous

    async def _rollback(
        self,
        content_path: str,
        backup: str,
        swapped: bool,
        had_content: bool,
        metadata_key: str,
        previous_raw: str | None,
    ) -> None:
        try:
            if swapped:
                await self.fs.delete(content_path, idempotent=True)
            if had_content:
                await self.fs.move(backup, content_path)
            if previous_raw is None:
                await self.storage.remove(metadata_key)
            else:
                await self.storage.set(metadata_key, previous_raw)
        except AppBaseError as e:
            logger.error("Rollback incomplete", path=content_path, error=str(e))

    async def _stage_thumbnail(self, repo: Repository, staged_path: str) -> bool:
        """Fetch the thumbnail next to its final path. Failures are not fatal."""
        if not repo.thumbnail:
            return False
        try:
            await self.fs.make_directory(str(Path(staged_path).parent), intermediates=True)
            await self.fs.download_to_file(repo.thumbnail, staged_path)
            return True
        except AppBaseError as e:
            logger.warning("Thumbnail download failed", key=str(repo.key), url=repo.thumbnail, error=str(e))
            return False

    async def _promote_thumbnail(self, key: RepositoryKey, staged_path: str) -> None:
        thumbnail_path = self.get_thumbnail_path(key)
        try:
            await self.fs.delete(thumbnail_path, idempotent=True)
            await self.fs.move(staged_path, thumbnail_path)
        except AppBaseError as e:
            logger.warning("Could not store thumbnail", key=str(key), error=str(e))

    async def _discard(self, path: str) -> None:
        """Remove a temporary path, logging instead of masking the caller's outcome."""
        try:
            await self.fs.delete(path, idempotent=True)
        except AppBaseError as e:
            logger.warning("Could not remove temporary path", path=path, error=str(e))

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_repository(self, key: KeyLike) -> DeleteResult:
        """
        Remove a repository's content, thumbnail, metadata and index entry.

        Deleting a repository that is not present succeeds with outcome
        ``not_present``. A download of the same key that is in flight is
        allowed to finish first.

        Raises:
            IoError: If storage or files could not be removed
        """
        key = RepositoryKey.parse(key)
        key_str = str(key)
        await self.initialize()

        in_flight = self._downloads.in_flight(key_str)
        if in_flight is not None:
            logger.info("Waiting for in-flight download before delete", key=key_str)
            try:
                await asyncio.shield(in_flight)
            except AppBaseError as e:
                # Reported to the download's own callers
                logger.debug("In-flight download failed", key=key_str, error=str(e))

        content_path = self.get_repository_path(key)
        thumbnail_path = self.get_thumbnail_path(key)

        async with self._key_lock(key_str):
            indexed = key_str in self._index
            has_metadata = await self.storage.get(self._metadata_key(key)) is not None
            has_content = await self._exists(content_path)
            has_thumbnail = await self._exists(thumbnail_path)

            if indexed:
                async with self._index_lock:
                    index = {k: None for k in self._index if k != key_str}
                    await self.storage.set(self.storage_key, json.dumps(list(index)))
                    self._index = index
            if has_metadata:
                await self.storage.remove(self._metadata_key(key))

            await self.fs.delete(content_path, idempotent=True)
            await self.fs.delete(thumbnail_path, idempotent=True)
            await self.fs.delete(f"{content_path}.previous", idempotent=True)

        if indexed or has_metadata or has_content or has_thumbnail:
            logger.info("Repository deleted", key=key_str)
            return DeleteResult(key=key_str, outcome=DeleteOutcome.DELETED)

        logger.debug("Nothing to delete", key=key_str)
        return DeleteResult(key=key_str, outcome=DeleteOutcome.NOT_PRESENT)

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    async def get_downloaded_repositories(self) -> list[Repository]:
        """
        List downloaded repositories, dropping index entries whose content is gone.
        """
        await self.initialize()

        repositories: list[Repository] = []
        missing: list[str] = []
        for key_str in list(self._index):
            key = RepositoryKey.parse(key_str)
            if not await self._exists(self.get_repository_path(key)):
                missing.append(key_str)
                continue
            record = await self._read_local_record(key) or self._minimal_record(key)
            repositories.append(await self._with_local_state(record, True, record))

        if missing:
            await self._drop_orphans(missing)
        return repositories

    async def _drop_orphans(self, candidates: list[str]) -> None:
        async with self._index_lock:
            # Re-check under the lock. Keys being downloaded or committed are left
            # alone; their content may be moved aside only until the swap finishes.
            orphans = []
            for key_str in candidates:
                if self._downloads.in_flight(key_str) is not None or self._key_lock(key_str).locked():
                    continue
                if key_str in self._index and not await self._exists(self.get_repository_path(key_str)):
                    orphans.append(key_str)
            if not orphans:
                return

            logger.warning("Dropping index entries without content", keys=orphans)
            index = {k: None for k in self._index if k not in orphans}
            await self.storage.set(self.storage_key, json.dumps(list(index)))
            self._index = index
            for key_str in orphans:
                await self.storage.remove(self._metadata_key(key_str))

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    async def check_for_updates(self, key: KeyLike) -> UpdateCheck:
        """
        Compare the stored version of a downloaded repository against the catalog.

        Connectivity problems yield status ``unknown`` rather than an error.
        """
        key = RepositoryKey.parse(key)
        key_str = str(key)
        if not await self.is_repository_downloaded(key):
            return UpdateCheck(key=key_str, status=UpdateStatus.NOT_DOWNLOADED)

        local = await self._read_local_record(key)
        local_version = local.version if local else None

        if not await self.network.is_online():
            return UpdateCheck(key=key_str, status=UpdateStatus.UNKNOWN, local_version=local_version)

        try:
            remote = await self.catalog.lookup(key)
        except AppBaseError as e:
            logger.warning("Update check failed", key=key_str, error=str(e))
            return UpdateCheck(key=key_str, status=UpdateStatus.UNKNOWN, local_version=local_version)

        if remote is None:
            return UpdateCheck(key=key_str, status=UpdateStatus.UNKNOWN, local_version=local_version)

        available = is_newer(remote.version, local_version or self.UNKNOWN_VERSION)
        return UpdateCheck(
            key=key_str,
            status=UpdateStatus.AVAILABLE if available else UpdateStatus.UP_TO_DATE,
            local_version=local_version,
            remote_version=remote.version,
        )

    async def has_repository_updates(self, key: KeyLike) -> bool:
        """True exactly when the catalog version is newer than the stored one."""
        check = await self.check_for_updates(key)
        return check.status is UpdateStatus.AVAILABLE
