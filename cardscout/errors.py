"""Exception types shared across the pipelines."""


class SetupError(RuntimeError):
    """Raised when a cycle cannot start (persistence unreachable)."""
    pass


class IdentityError(RuntimeError):
    """Raised when the identity provider cannot be reached."""
    pass


class ConnectorError(RuntimeError):
    """Base class for provider/marketplace fetch failures."""
    pass


class BlockedError(ConnectorError):
    """Raised when the provider refuses access (401/403)."""
    pass


class PermanentSourceError(ConnectorError):
    """Raised when the provider endpoint does not exist (404)."""
    pass


class TransientFetchError(ConnectorError):
    """Raised when a fetch fails after retries (5xx, timeouts, bad JSON)."""
    pass


class RateLimitedError(ConnectorError):
    """Raised when rate limited (429)."""

    def __init__(self, retry_after: int | None = None):
        super().__init__("Rate limited")
        self.retry_after = retry_after


class StoreError(RuntimeError):
    """Raised when a single persistence operation fails."""
    pass
