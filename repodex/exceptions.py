"""Error types raised by repodex."""


class RepodexError(Exception):
    """Base class for all repodex errors."""

    pass


class FileReadError(RepodexError):
    """Raised when a file cannot be read or has vanished."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        message = f"Cannot read {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class EmbeddingProviderError(RepodexError):
    """Raised when the embedding provider fails or returns an unusable vector."""

    pass


class StoreError(RepodexError):
    """Raised when a schema or transaction operation on the store fails."""

    pass


class IndexClosedError(StoreError):
    """Raised when an operation is attempted on a closed index."""

    pass


class WatcherError(RepodexError):
    """Raised when a filesystem subscription cannot be established."""

    pass
