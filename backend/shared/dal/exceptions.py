"""Errors raised by document store implementations."""


class TransientStoreError(Exception):
    """A store read or write failed.

    Nothing was written. Callers treat this as retryable: the next scheduler
    tick re-reads the persisted document and reassesses from there.
    """


class ConcurrentUpdateError(TransientStoreError):
    """A guarded update found a precondition path holding an unexpected value.

    Attributes:
        path: Full store path of the first failed precondition.
        expected: Value the writer based its decision on.
        actual: Value currently stored at the path.

    """

    def __init__(self, *, path: str, expected: object, actual: object) -> None:
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(f"precondition failed at {path}: expected {expected!r}, found {actual!r}")
