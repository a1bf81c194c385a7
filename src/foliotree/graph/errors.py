"""Error taxonomy for content tree operations.

Guard and ordering checks report refusals as ``Result`` values carrying a
``TreeError``; only store failures are raised, as ``StoreError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(Enum):
    """Broad category of a failure, used to pick the HTTP status."""

    VALIDATION = "validation"
    CONSTRAINT = "constraint"
    NOT_FOUND = "not_found"
    STORE = "store"


class ErrorCode(str, Enum):
    """Stable machine-readable error codes."""

    TITLE_REQUIRED = "TITLE_REQUIRED"
    REF_REQUIRED = "REF_REQUIRED"
    NODE_TYPE_INVALID = "NODE_TYPE_INVALID"
    ORDER_INDEX_INVALID = "ORDER_INDEX_INVALID"
    PUBLISHED_INVALID = "PUBLISHED_INVALID"
    SLUG_INVALID = "SLUG_INVALID"
    DIRECTION_INVALID = "DIRECTION_INVALID"
    NO_FIELDS_TO_UPDATE = "NO_FIELDS_TO_UPDATE"
    INVALID_JSON_BODY = "INVALID_JSON_BODY"
    PARENT_NOT_FOUND = "PARENT_NOT_FOUND"
    PARENT_MUST_BE_FOLDER = "PARENT_MUST_BE_FOLDER"
    PARENT_CANNOT_BE_SELF = "PARENT_CANNOT_BE_SELF"
    PARENT_CANNOT_BE_DESCENDANT = "PARENT_CANNOT_BE_DESCENDANT"
    HAS_CHILDREN = "HAS_CHILDREN"
    NOT_FOUND = "NOT_FOUND"
    STORE_ERROR = "DB_ERROR"

    @property
    def kind(self) -> ErrorKind:
        return _KINDS[self]


_KINDS: dict[ErrorCode, ErrorKind] = {
    ErrorCode.TITLE_REQUIRED: ErrorKind.VALIDATION,
    ErrorCode.REF_REQUIRED: ErrorKind.VALIDATION,
    ErrorCode.NODE_TYPE_INVALID: ErrorKind.VALIDATION,
    ErrorCode.ORDER_INDEX_INVALID: ErrorKind.VALIDATION,
    ErrorCode.PUBLISHED_INVALID: ErrorKind.VALIDATION,
    ErrorCode.SLUG_INVALID: ErrorKind.VALIDATION,
    ErrorCode.DIRECTION_INVALID: ErrorKind.VALIDATION,
    ErrorCode.NO_FIELDS_TO_UPDATE: ErrorKind.VALIDATION,
    ErrorCode.INVALID_JSON_BODY: ErrorKind.VALIDATION,
    ErrorCode.PARENT_NOT_FOUND: ErrorKind.CONSTRAINT,
    ErrorCode.PARENT_MUST_BE_FOLDER: ErrorKind.CONSTRAINT,
    ErrorCode.PARENT_CANNOT_BE_SELF: ErrorKind.CONSTRAINT,
    ErrorCode.PARENT_CANNOT_BE_DESCENDANT: ErrorKind.CONSTRAINT,
    ErrorCode.HAS_CHILDREN: ErrorKind.CONSTRAINT,
    ErrorCode.NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorCode.STORE_ERROR: ErrorKind.STORE,
}


@dataclass(frozen=True)
class TreeError:
    """A refused operation.

    Attributes:
        code: Stable error code.
        message: Human-readable explanation, safe to show to callers.
        node_id: The node the refusal concerns, if any.
    """

    code: ErrorCode
    message: str
    node_id: str | None = None

    @property
    def kind(self) -> ErrorKind:
        return self.code.kind

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"error": self.code.value, "message": self.message}
        if self.node_id is not None:
            result["node_id"] = self.node_id
        return result

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Value-or-error outcome of a guarded operation.

    Exactly one of ``value`` / ``error`` is meaningful: ``ok`` is True
    when ``error`` is None. ``value`` may legitimately be None for
    checks that produce nothing on success.
    """

    value: T | None = None
    error: TreeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(
        cls, code: ErrorCode, message: str, node_id: str | None = None
    ) -> Result[T]:
        return cls(error=TreeError(code=code, message=message, node_id=node_id))

    def unwrap(self) -> T:
        """Return the value, raising if this is a failure.

        Raises:
            ValueError: If the result carries an error.
        """
        if self.error is not None:
            raise ValueError(str(self.error))
        return self.value  # type: ignore[return-value]


class StoreError(Exception):
    """The external node store failed (network error, bad response).

    The message may contain internal details and must not be shown to
    untrusted callers; the transport reports ``DB_ERROR`` instead.
    """

    code = ErrorCode.STORE_ERROR

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
