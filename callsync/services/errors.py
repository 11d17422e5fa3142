class SyncError(Exception):
    """Base class for errors raised by the sync core."""


class ConfigurationMissing(SyncError):
    """Provider credentials are absent; the provider is treated as empty."""


class TransientProviderError(SyncError):
    """Network failure, timeout or non-2xx answer from a provider."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class PermanentRecordError(SyncError):
    """A single provider item is malformed and cannot be normalized."""


class DuplicateError(SyncError):
    """The (source, external_id) pair is already stored."""

    def __init__(self, source: str, external_id: str):
        super().__init__(f"{source}:{external_id} already stored")
        self.source = source
        self.external_id = external_id


class ConcurrentSyncSkipped(SyncError):
    """A trigger arrived while the provider sync was already running."""
