"""Error taxonomy for the DDHI data layer.

Every failure that crosses a public boundary of the package is one of the
exceptions below. Transport errors from httpx are translated into
`FetchError` by the resource client and never leak further.

    - **FetchError**: a request returned a non-success status or the
      transport failed outright (status ``0``).
    - **BatchPartialFailure**: one or more ids in a concurrent fan-out failed.
    - **UnresolvableDate**: a date value had no usable components.
    - **IdLimitExceeded**: a knowledge-service lookup asked for more ids
      than a single call accepts.
"""

from typing import Mapping, Sequence


class DDHIError(Exception):
    """Base class for all errors raised by the ddhi package."""


class FetchError(DDHIError):
    """A resource could not be retrieved.

    Attributes:
        status: HTTP status code reported by the server, or 0 when the
            request never produced a response (connection error, timeout).
        message: Human readable description of the failure.
        url: The URL that was requested, when known.
    """

    def __init__(self, status: int, message: str, url: str | None = None):
        self.status = status
        self.message = message
        self.url = url
        super().__init__(f"An error has occurred ({status}): {message}")


class BatchPartialFailure(DDHIError):
    """One or more ids in a concurrent batch failed.

    The documents that did succeed are already in the store; callers decide
    whether to present them or abort. ``succeeded`` may be empty when every
    id in the batch failed.

    Attributes:
        failures: Mapping of id to the exception raised for it.
        succeeded: Ids whose contribution completed.
    """

    def __init__(self, failures: Mapping[str, BaseException], succeeded: Sequence[str] = ()):
        self.failures = dict(failures)
        self.succeeded = tuple(succeeded)
        failed = ", ".join(sorted(self.failures))
        super().__init__(f"{len(self.failures)} of {len(self.failures) + len(self.succeeded)} ids failed: {failed}")


class UnresolvableDate(DDHIError, ValueError):
    """A date string could not be parsed and had no usable substring fallback."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(f"Unresolvable date value: {raw!r}")


class IdLimitExceeded(DDHIError, ValueError):
    """A batch lookup requested more identifiers than one call accepts."""

    def __init__(self, requested: int, limit: int):
        self.requested = requested
        self.limit = limit
        super().__init__(f"Requested {requested} identifiers; at most {limit} are accepted per call")
