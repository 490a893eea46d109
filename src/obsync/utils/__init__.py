"""Utilities for obsync."""

from obsync.utils.paths import get_resources_dir
from obsync.utils.retry import retry_async
from obsync.utils.singleflight import SingleFlight

__all__ = ["SingleFlight", "get_resources_dir", "retry_async"]
