"""Domain errors for collection replication."""


class ReplicationError(Exception):
    """Base class for replication errors."""


class TransientReadError(ReplicationError):
    """
    Raised when a single cursor read fails during a bootstrap transfer.

    The bootstrap loop logs it and moves on to the next iteration.

    Attributes:
        collection: Collection being transferred
        cause: Underlying driver error
    """

    def __init__(self, collection: str, cause: BaseException) -> None:
        self.collection = collection
        self.cause = cause
        super().__init__(f"Cursor read failed for collection '{collection}': {cause}")


class FeedError(ReplicationError):
    """
    Base class for change feed failures.

    Attributes:
        collection: Collection whose change feed failed
        cause: Underlying driver error (optional)
    """

    def __init__(self, collection: str, message: str, cause: BaseException | None = None) -> None:
        self.collection = collection
        self.cause = cause
        super().__init__(message)


class FeedTokenInvalid(FeedError):
    """
    Raised when the stored resume token can no longer be resolved.

    Attributes:
        collection: Collection whose change feed failed
        code: Server error code (40585 or 40615)
    """

    def __init__(self, collection: str, code: int, cause: BaseException | None = None) -> None:
        self.code = code
        super().__init__(
            collection,
            f"Resume token for collection '{collection}' is no longer valid (code {code}). "
            "The change feed will restart from the live position.",
            cause,
        )


class FeedInvalidated(FeedError):
    """Raised when the watched collection was dropped or renamed."""

    def __init__(self, collection: str) -> None:
        super().__init__(
            collection,
            f"Change feed for collection '{collection}' was invalidated. "
            "Indexed documents will be purged and the collection re-dumped.",
        )


class FeedOtherError(FeedError):
    """Raised for any other change feed failure; the resume token is kept."""

    def __init__(self, collection: str, cause: BaseException) -> None:
        super().__init__(collection, f"Change feed error for collection '{collection}': {cause}", cause)


class PersistenceWriteError(ReplicationError):
    """
    Raised when a checkpoint or resume token cannot be written.

    Attributes:
        target: File path or collection name that was being written
        reason: Detailed reason for failure
    """

    def __init__(self, target: str, reason: str) -> None:
        self.target = target
        self.reason = reason
        super().__init__(f"Failed to persist checkpoint to {target}: {reason}")


class BootstrapDuringResetError(ReplicationError):
    """
    Raised when the bootstrap transfer fails while resetting a change feed.

    The reset logs it and reattaches the feed anyway.

    Attributes:
        collection: Collection being reset
        cause: Underlying error
    """

    def __init__(self, collection: str, cause: BaseException) -> None:
        self.collection = collection
        self.cause = cause
        super().__init__(f"Error dumping collection '{collection}' during reset: {cause}")


class ConfigurationError(ReplicationError):
    """
    Raised when the replication configuration is missing or invalid.

    Attributes:
        hint: Actionable hint for resolution
    """

    def __init__(self, message: str, hint: str | None = None) -> None:
        self.hint = hint
        msg = message
        if hint:
            msg += f". {hint}"
        super().__init__(msg)
