"""Exception hierarchy for modcache.

Everything raised on purpose inherits from :class:`ModcacheError`::

    ModcacheError
    +-- FetchError              remote call failed
    |   +-- RateLimitedError    429, retryable
    |   +-- TransientError      5xx / transport failure, retryable
    |   +-- AuthFailedError     401 / 403, fatal
    |   +-- RemoteNotFoundError 404 from the Nexus
    +-- StoreError              local database failed
    |   +-- ConflictError       uniqueness or foreign-key violation
    |   +-- StoreIOError        I/O or locking failure
    +-- NotFoundError           requested row is not in the cache

``FetchError.retryable`` and ``FetchError.fatal`` drive the retry loop in
:mod:`modcache.nexus.fetcher` and the abort policy of the population walker.
"""


class ModcacheError(Exception):
    """Base exception for all modcache errors."""


class FetchError(ModcacheError):
    """A request to the Nexus did not produce a usable response."""

    retryable: bool = False
    fatal: bool = False

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(FetchError):
    retryable = True

    def __init__(
        self,
        hourly_remaining: int | None = None,
        daily_remaining: int | None = None,
        reset: str = "",
    ) -> None:
        self.hourly_remaining = hourly_remaining
        self.daily_remaining = daily_remaining
        self.reset = reset
        super().__init__(
            f"Rate limited (hourly={hourly_remaining}, daily={daily_remaining})",
            status_code=429,
        )


class TransientError(FetchError):
    retryable = True


class AuthFailedError(FetchError):
    """The API key was rejected. Retrying will not help."""

    fatal = True


class RemoteNotFoundError(FetchError):
    pass


class StoreError(ModcacheError):
    pass


class ConflictError(StoreError):
    """A write violated a uniqueness or referential constraint."""


class StoreIOError(StoreError):
    pass


class NotFoundError(ModcacheError):
    """The requested entity is not present in the local cache."""
