"""Custom exception hierarchy for the RCA dashboard.

All application exceptions inherit from :class:`RcaDashboardError`, which
carries an optional ``provider_name`` so error handlers can identify which
backend call (e.g. "ingestion", "search") caused the failure.

    RcaDashboardError  (base -- catch-all for any dashboard error)
    +-- TransportError      (network failure, timeout, 5xx, unparseable body)
    +-- ValidationError     (backend rejected a malformed request)
    +-- NotFoundError       (backend no longer recognises the resource)
    +-- ConfigurationError  (startup / missing config)

Start-time failures propagate to whoever called ``start_job``; poll-time
failures only terminate that job's poll scheduler.
"""


class RcaDashboardError(Exception):
    """Base exception for all RCA dashboard errors.

    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[ingestion] Connection refused``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


class TransportError(RcaDashboardError):
    """Raised when a backend call cannot be completed.

    Covers connection errors, timeouts, 5xx responses, and response bodies
    that do not match the expected contract.
    """

    def __init__(
        self,
        message: str = "Backend request failed",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


class ValidationError(RcaDashboardError):
    """Raised when the backend rejects a request as malformed (400 / 422)."""

    def __init__(
        self,
        message: str = "Request rejected by backend",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NotFoundError(RcaDashboardError):
    """Raised when the backend answers 404 for a job or page id."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(RcaDashboardError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
