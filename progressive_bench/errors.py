"""Error taxonomy for the benchmark core."""

from __future__ import annotations

from http import HTTPStatus


class BenchError(Exception):
    """Base class for all progressive-bench errors."""


class ConfigError(BenchError):
    """The bench config could not be read or is malformed."""


class ServeError(BenchError):
    """A per-request failure in the paced content server."""

    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    body: bytes = b"Error"


class Forbidden(ServeError):
    status = HTTPStatus.FORBIDDEN
    body = b"Forbidden"


class NotFound(ServeError):
    status = HTTPStatus.NOT_FOUND
    body = b"Not found"


class InternalError(ServeError):
    status = HTTPStatus.INTERNAL_SERVER_ERROR
    body = b"Error"


class DimensionMismatch(BenchError):
    """Two frames compared for similarity have different sizes.

    This points at a capture-region bug upstream and is never recovered from.
    """

    def __init__(self, size_a: tuple[int, int], size_b: tuple[int, int]) -> None:
        super().__init__(f"Dimension mismatch: {size_a[0]}x{size_a[1]} vs {size_b[0]}x{size_b[1]}")
        self.size_a = size_a
        self.size_b = size_b


class TrialFailure(BenchError):
    """One run of one test case in one engine failed."""

    def __init__(self, engine: str, test_id: str, run: int, cause: BaseException) -> None:
        message = str(cause) or cause.__class__.__name__
        super().__init__(message)
        self.engine = engine
        self.test_id = test_id
        self.run = run
        self.cause = cause
