"""Repository management API endpoints."""

from fastapi import APIRouter, Depends, Query, Request

from obsync.exceptions import NotFoundError
from obsync.logger import get_logger
from obsync.models.api.repository import RepositoryStatus
from obsync.models.repository import DeleteResult, DownloadResult, Repository, RepositoryKey, UpdateCheck
from obsync.services.repositories import RepositoryManager

logger = get_logger(__name__)
router = APIRouter(prefix="/api/repositories", tags=["repositories"])


def get_manager(request: Request) -> RepositoryManager:
    """Return the manager owned by the running application."""
    return request.app.state.repository_manager


def path_key(owner: str, language: str, repo_id: str) -> RepositoryKey:
    return RepositoryKey.parse(f"{owner}/{language}/{repo_id}")


@router.get("", response_model=list[Repository])
async def search_repositories(
    language: str | None = Query(default=None),
    manager: RepositoryManager = Depends(get_manager),
) -> list[Repository]:
    """
    Search the catalog, or downloaded repositories when offline.
    """
    return await manager.search_repositories(language)


@router.get("/downloaded", response_model=list[Repository])
async def get_downloaded_repositories(manager: RepositoryManager = Depends(get_manager)) -> list[Repository]:
    """List downloaded repositories after dropping entries whose content is missing."""
    return await manager.get_downloaded_repositories()


@router.get("/{owner}/{language}/{repo_id}", response_model=Repository)
async def get_repository(
    owner: str, language: str, repo_id: str, manager: RepositoryManager = Depends(get_manager)
) -> Repository:
    """
    Get one repository.

    Raises:
        NotFoundError: If neither the catalog nor the local cache knows it
    """
    key = path_key(owner, language, repo_id)
    repo = await manager.get_repository(key)
    if repo is None:
        raise NotFoundError("repository.not_found", key=str(key))
    return repo


@router.get("/{owner}/{language}/{repo_id}/status", response_model=RepositoryStatus)
async def get_repository_status(
    owner: str, language: str, repo_id: str, manager: RepositoryManager = Depends(get_manager)
) -> RepositoryStatus:
    """Get the local download status of a repository."""
    key = path_key(owner, language, repo_id)
    if not await manager.is_repository_downloaded(key):
        return RepositoryStatus(key=str(key), is_downloaded=False)

    repo = await manager.get_local_repository(key)
    return RepositoryStatus(
        key=str(key),
        is_downloaded=True,
        version=repo.version,
        last_updated=repo.last_updated.isoformat(),
        cache_path=manager.get_repository_path(key),
    )


@router.post("/{owner}/{language}/{repo_id}/download", response_model=DownloadResult)
async def download_repository(
    owner: str,
    language: str,
    repo_id: str,
    branch: str | None = Query(default=None),
    manager: RepositoryManager = Depends(get_manager),
) -> DownloadResult:
    """Download (or re-download) a repository for offline use."""
    return await manager.download_repository(path_key(owner, language, repo_id), branch=branch)


@router.delete("/{owner}/{language}/{repo_id}", response_model=DeleteResult)
async def delete_repository(
    owner: str, language: str, repo_id: str, manager: RepositoryManager = Depends(get_manager)
) -> DeleteResult:
    """Delete a downloaded repository; deleting an absent one reports ``not_present``."""
    return await manager.delete_repository(path_key(owner, language, repo_id))


@router.get("/{owner}/{language}/{repo_id}/updates", response_model=UpdateCheck)
async def check_repository_updates(
    owner: str, language: str, repo_id: str, manager: RepositoryManager = Depends(get_manager)
) -> UpdateCheck:
    """Compare the downloaded version against the catalog."""
    return await manager.check_for_updates(path_key(owner, language, repo_id))
