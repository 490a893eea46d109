"""Internationalization service for obsync."""

import json
from pathlib import Path
from typing import Any, cast

from obsync.logger import get_logger

logger = get_logger(__name__)


class I18nService:
    """
    Loads and provides localized strings from i18n.json.

    Messages are nested by dot-path and hold one string per language:
    {
        "repository": {
            "not_found": { "en": "Repository {key} not found", "zh": "..." }
        }
    }
    """

    def __init__(self, i18n_file: Path) -> None:
        """
        Initialize I18n service.

        Args:
            i18n_file: Path to i18n.json file
        """
        self.i18n_file = i18n_file
        self._data: dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        """Load i18n data from file."""
        try:
            if self.i18n_file.exists():
                with open(self.i18n_file, encoding="utf-8") as f:
                    self._data = json.load(f)
                logger.debug(f"Loaded i18n data from {self.i18n_file}")
            else:
                logger.warning(f"I18n file not found: {self.i18n_file}")
                self._data = {}
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load i18n file: {e}")
            self._data = {}

    def get_block(self, path: str) -> dict[str, Any]:
        """Return the mapping stored at a dot-path, or an empty dict."""
        node: Any = self._data
        for part in path.split("."):
            if not isinstance(node, dict) or part not in node:
                return {}
            node = node[part]
        return node if isinstance(node, dict) else {}

    def translate(self, path: str, lang: str = "en", default: str | None = None, **params: object) -> str:
        """
        Translate a dot-path message key.

        Args:
            path: Dot-path of the message (e.g., "repository.not_found")
            lang: Language code, falls back to English
            default: Returned when the key is unknown (defaults to the path itself)
            **params: Values substituted into the message with str.format

        Returns:
            Localized and formatted message
        """
        block = self.get_block(path)
        template = block.get(lang) or block.get("en")
        if not template:
            return default if default is not None else path

        try:
            return cast(str, template).format(**params)
        except (KeyError, IndexError, ValueError):
            # Missing parameter; return the raw template rather than failing
            return cast(str, template)

    def reload(self) -> None:
        """Reload i18n data from file."""
        self._load()
