"""Error hierarchy for upstream portal failures.

Split the same way as a scraping retry classification: transient failures
(may succeed on retry) vs permanent failures (will not). Tenacity retry
decorators key off TransientError.

Example usage with tenacity:
    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(2))
    def acquire(self) -> SessionContext:
        ...
"""


class TimetableError(Exception):
    """Base exception for all timetable client errors."""

    pass


class TransientError(TimetableError):
    """Temporary failure that may succeed on retry.

    Examples: connection refused, timeouts, 5xx from the portal page.
    """

    pass


class UpstreamUnreachableError(TransientError):
    """The portal could not be reached to acquire a session or call an endpoint.

    Callers treat this as "upstream unreachable" and degrade to an empty
    result rather than surfacing the underlying error text.
    """

    pass


class UpstreamStatusError(TransientError):
    """An endpoint answered with a non-2xx status."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"{url} returned HTTP {status_code}")
        self.url = url
        self.status_code = status_code


class PermanentError(TimetableError):
    """Failure that won't succeed on retry."""

    pass


class ShapeMismatchError(PermanentError):
    """Response parsed as JSON but no known record array could be located."""

    pass


class MalformedResponseError(PermanentError):
    """Response body was not valid JSON."""

    pass


class MissingParameterError(PermanentError):
    """Caller omitted a required parameter (degree, year, batch).

    Surfaced to the caller as a 400-equivalent result, never retried and never
    sent upstream.
    """

    def __init__(self, parameter: str) -> None:
        super().__init__(f"Missing {parameter}")
        self.parameter = parameter


class PushRegistrationError(PermanentError):
    """Push subscription server rejected or failed the request."""

    pass
