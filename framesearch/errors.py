"""Error kinds raised by the frame pipeline.

Every error carries a stable ``kind`` and the ``status_code`` a boundary
layer should answer with, so callers can map failures without string
matching.
"""


class FrameSearchError(Exception):
    kind = "internal"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "status": "error",
            "statusCode": self.status_code,
            "kind": self.kind,
            "message": self.message,
        }


class ValidationError(FrameSearchError, ValueError):
    kind = "validation"
    status_code = 400


class DimensionMismatchError(ValidationError):
    kind = "dimension_mismatch"


class NotFoundError(FrameSearchError):
    kind = "not_found"
    status_code = 404


class ExtractionError(FrameSearchError):
    """The decoder process failed; no frames were produced."""

    kind = "extraction"


class EmptyResultError(FrameSearchError):
    """The decoder succeeded but wrote no frame images."""

    kind = "empty_result"
    status_code = 422


class DecodeError(FrameSearchError):
    """A single frame image could not be read or resized."""

    kind = "decode"


class DegenerateVectorError(FrameSearchError):
    kind = "degenerate_vector"


class StoreError(FrameSearchError):
    kind = "store"
    status_code = 503


class QueryError(StoreError):
    kind = "query"
    status_code = 502


class OperationTimeoutError(FrameSearchError, TimeoutError):
    kind = "timeout"
    status_code = 504


class StoreTimeoutError(StoreError, OperationTimeoutError):
    kind = "store_timeout"
    status_code = 504
