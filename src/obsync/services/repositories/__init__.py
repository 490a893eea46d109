"""Repository synchronization services."""

from .context import RepositoryContext, build_context
from .manager import RepositoryManager

__all__ = ["RepositoryContext", "RepositoryManager", "build_context"]
