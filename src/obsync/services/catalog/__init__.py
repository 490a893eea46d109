"""Remote catalog services."""

from .client import CatalogClient

__all__ = ["CatalogClient"]
