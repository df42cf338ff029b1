"""Record store failures."""


class StoreError(Exception):
    """Base class for record store failures."""


class LockAcquisitionError(StoreError):
    """The advisory lock could not be acquired within the configured retries."""


class StoreCorruptedError(StoreError):
    """The persisted document exists but cannot be read or parsed."""


class StoreUnavailableError(StoreError):
    """The persisted document could not be written."""


class DuplicateRecordError(ValueError):
    """A record with the same unique key already exists."""
