"""Centralized exception hierarchy for obsync.

Supports i18n keys for user-facing messages and English for internal logging.
"""


class AppBaseError(Exception):
    """Base exception for all application-specific errors."""

    def __init__(
        self,
        i18n_key: str,
        status_code: int = 500,
        retriable: bool = False,
        **params: object,
    ) -> None:
        """
        Initialize the error.

        Args:
            i18n_key: Dot-path in i18n.json (e.g., 'repository.not_found')
            status_code: Recommended HTTP status code
            retriable: Whether the operation can be retried
            **params: Parameters for string formatting in translations
        """
        super().__init__(i18n_key)
        self.i18n_key = i18n_key
        self.status_code = status_code
        self.retriable = retriable
        self.params = params

    def __str__(self) -> str:
        """Returns the English version of the error message for logging."""
        try:
            # Lazy import to avoid circular dependencies
            from obsync.services.i18n import get_i18n_service

            i18n = get_i18n_service()

            translated = i18n.translate(self.i18n_key, lang="en", **self.params)
            return str(translated) if translated else self.i18n_key
        except Exception:
            # Fallback if i18n service is not available or fails
            params_str = ", ".join(f"{k}={v}" for k, v in self.params.items())
            return f"[{self.i18n_key}] {params_str} (retriable: {self.retriable})"


class NotFoundError(AppBaseError):
    """Raised when a repository is absent from the catalog or the local index."""

    def __init__(self, i18n_key: str, **params: object) -> None:
        super().__init__(i18n_key, status_code=404, **params)


class ValidationError(AppBaseError):
    """Raised when input validation fails."""

    def __init__(self, i18n_key: str, **params: object) -> None:
        super().__init__(i18n_key, status_code=400, **params)


class NetworkError(AppBaseError):
    """Raised when a request could not be completed (timeout, connection reset, etc.)."""

    def __init__(self, i18n_key: str, status_code: int = 503, retriable: bool = True, **params: object) -> None:
        super().__init__(i18n_key, status_code=status_code, retriable=retriable, **params)


class OfflineError(NetworkError):
    """Raised when connectivity is required but the device is offline."""

    def __init__(self, i18n_key: str = "network.offline", **params: object) -> None:
        super().__init__(i18n_key, status_code=503, retriable=False, **params)


class HttpError(NetworkError):
    """Raised when a remote endpoint answers with a non-success status."""

    RETRIABLE_STATUSES = frozenset({408, 429})

    def __init__(self, status: int, url: str, i18n_key: str = "network.http_error", **params: object) -> None:
        retriable = status >= 500 or status in self.RETRIABLE_STATUSES
        super().__init__(i18n_key, status_code=502, retriable=retriable, status=status, url=url, **params)
        self.status = status
        self.url = url


class IoError(AppBaseError):
    """Raised when a filesystem or storage read/write/delete fails."""

    def __init__(self, i18n_key: str, **params: object) -> None:
        super().__init__(i18n_key, status_code=500, **params)


class ParseError(AppBaseError):
    """Raised when a catalog payload or a downloaded archive is malformed."""

    def __init__(self, i18n_key: str, **params: object) -> None:
        super().__init__(i18n_key, status_code=502, **params)
