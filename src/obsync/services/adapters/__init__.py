"""Storage, filesystem and network adapters."""

from .base import FileInfo, FileSystemAdapter, NetworkAdapter, StorageAdapter
from .filesystem import LocalFileSystem
from .network import HttpNetwork
from .storage import JsonFileStorage, MemoryStorage

__all__ = [
    "FileInfo",
    "FileSystemAdapter",
    "HttpNetwork",
    "JsonFileStorage",
    "LocalFileSystem",
    "MemoryStorage",
    "NetworkAdapter",
    "StorageAdapter",
]
