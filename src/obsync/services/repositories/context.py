"""Explicit wiring of the adapters used by the repository manager."""

from dataclasses import dataclass

import httpx

from obsync.models.config import AppConfig
from obsync.services.adapters import (
    FileSystemAdapter,
    HttpNetwork,
    JsonFileStorage,
    LocalFileSystem,
    NetworkAdapter,
    StorageAdapter,
)
from obsync.services.catalog import CatalogClient


@dataclass
class RepositoryContext:
    """Concrete adapter instances, built once at startup and passed to the manager."""

    config: AppConfig
    storage: StorageAdapter
    filesystem: FileSystemAdapter
    network: NetworkAdapter
    catalog: CatalogClient

    async def aclose(self) -> None:
        if isinstance(self.network, HttpNetwork):
            await self.network.aclose()


def build_context(config: AppConfig, transport: httpx.AsyncBaseTransport | None = None) -> RepositoryContext:
    """
    Build the production context: JSON file storage, local disk, httpx network.

    Args:
        config: Application configuration
        transport: Optional httpx transport shared by network and downloads

    Returns:
        Ready-to-use context
    """
    network = HttpNetwork(config.catalog.base_url, timeout=config.network.timeout, transport=transport)
    return RepositoryContext(
        config=config,
        storage=JsonFileStorage(config.paths.data_dir / config.storage.file_name),
        filesystem=LocalFileSystem(config.paths.data_dir, timeout=config.network.timeout, transport=transport),
        network=network,
        catalog=CatalogClient(network, config.catalog, config.network),
    )
