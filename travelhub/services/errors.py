"""
Service layer exceptions.

Transient errors (rate limits, 5xx, timeouts, network failures) are retried by
the backoff retrier; everything else fails immediately.
"""


class ServiceError(Exception):
    """Base exception for service layer errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        service_id: str | None = None,
        status_code: int | None = None,
    ):
        self.message = message
        self.service_id = service_id
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationError(ServiceError):
    """Bad input parameters."""

    status_code = 400


class CachePersistenceError(ServiceError):
    """Persisted cache read or write failed."""

    pass


class UpstreamError(ServiceError):
    """Upstream API returned something unusable."""

    status_code = 502

    def __init__(
        self,
        message: str,
        service_id: str | None = None,
        upstream_status: int | None = None,
    ):
        self.upstream_status = upstream_status
        super().__init__(message, service_id=service_id)


class UpstreamTransientError(UpstreamError):
    """Upstream failure that is expected to succeed on retry."""

    status_code = 503


class RateLimitError(UpstreamTransientError):
    """Rate limit exceeded."""

    def __init__(self, service_id: str, retry_after: float | None = None):
        self.retry_after = retry_after
        msg = f"Rate limit exceeded for service '{service_id}'"
        if retry_after:
            msg += f", retry after {retry_after}s"
        super().__init__(msg, service_id=service_id, upstream_status=429)


class RequestTimeoutError(UpstreamTransientError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class RetryExhaustedError(UpstreamTransientError):
    """Transient failure persisted through every retry."""

    def __init__(self, last_error: Exception, retries: int):
        self.last_error = last_error
        self.retries = retries
        super().__init__(
            f"{last_error} (gave up after {retries} retries)",
            service_id=getattr(last_error, "service_id", None),
            upstream_status=getattr(last_error, "upstream_status", None),
        )


class UpstreamPermanentError(UpstreamError):
    """Upstream rejected the request; retrying will not help."""

    def __init__(
        self,
        message: str,
        service_id: str | None = None,
        upstream_status: int | None = None,
    ):
        super().__init__(message, service_id=service_id, upstream_status=upstream_status)
        if upstream_status is not None and 400 <= upstream_status < 500:
            self.status_code = upstream_status


class NotFoundError(UpstreamPermanentError):
    """Upstream resource not found."""

    def __init__(self, message: str, service_id: str | None = None):
        super().__init__(message, service_id=service_id, upstream_status=404)


class AuthenticationError(UpstreamPermanentError):
    """Authentication with the upstream API failed."""

    def __init__(
        self,
        message: str,
        service_id: str | None = None,
        upstream_status: int | None = None,
    ):
        super().__init__(message, service_id=service_id, upstream_status=upstream_status)
        # Our credentials, not the caller's request
        self.status_code = 502
