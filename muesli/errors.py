"""Error types for muesli with structured exit codes."""

from __future__ import annotations


class MuesliError(RuntimeError):
    """Base class for failures surfaced to the CLI."""

    exit_code = 1


class AuthError(MuesliError):
    exit_code = 2


class NetworkError(MuesliError):
    exit_code = 3


class ApiError(MuesliError):
    """Raised when the remote API answers with a non-success status."""

    exit_code = 4

    def __init__(self, endpoint: str, status: int, message: str) -> None:
        self.endpoint = endpoint
        self.status = status
        self.message = message
        super().__init__(f"API error {status} on {endpoint}: {message}")


class ParseError(MuesliError):
    exit_code = 5


class FilesystemError(MuesliError):
    exit_code = 6


class SummarizationError(MuesliError):
    exit_code = 7


class IndexingError(MuesliError):
    exit_code = 8


class EmbeddingError(MuesliError):
    exit_code = 9


class VectorStoreError(MuesliError):
    exit_code = 10


class DimensionMismatchError(VectorStoreError, ValueError):
    """Raised when a vector does not match the store dimension."""

    def __init__(self, expected: int, actual: int, *, what: str = "Vector") -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{what} dimension mismatch: expected {expected}, got {actual}"
        )
