"""Error taxonomy shared by the Linkhop services.

Request-path errors (``NotFound``, ``InvalidInput``, ``GenerationExhausted``,
``StoreUnavailable``) are translated into HTTP responses by the API routes.
Analytics-path errors (``BrokerUnavailable``, ``ValidationFailed``,
``PersistFailed``) are handled inside the publisher and the consumer and
never reach an end user.
"""


class LinkhopError(Exception):
    """Base exception for all application-specific errors."""

    error_code = "app:linkhop_error"


class NotFound(LinkhopError):
    """Raised when a short code is unknown."""

    error_code = "link:not_found"


class InvalidInput(LinkhopError):
    """Raised when a create request carries a malformed long URL."""

    error_code = "link:invalid_input"


class GenerationExhausted(LinkhopError):
    """Raised when every generated code collided with an existing one."""

    error_code = "link:generation_exhausted"


class BackendUnavailable(LinkhopError):
    """Base exception for transient backend outages."""

    error_code = "infra:backend_unavailable"


class StoreUnavailable(BackendUnavailable):
    """Raised when the database fails or exceeds its timeout."""

    error_code = "infra:store_unavailable"


class CacheUnavailable(BackendUnavailable):
    """Raised when Redis cache calls fail or exceed their timeout."""

    error_code = "infra:cache_unavailable"


class BrokerUnavailable(BackendUnavailable):
    """Raised when the click stream cannot be reached."""

    error_code = "infra:broker_unavailable"


class ValidationFailed(LinkhopError):
    """Raised when a click message cannot be parsed into a ClickEvent."""

    error_code = "event:validation_failed"


class PersistFailed(LinkhopError):
    """Raised when a click record could not be written durably."""

    error_code = "event:persist_failed"
