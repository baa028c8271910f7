"""Error taxonomy and degradation reporting.

Public entry points never raise (except ``NotFound``); they degrade to a
documented fallback value. The error kind is not discarded: it travels
in an ``Outcome`` and is handed to a ``DegradationSink``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Protocol, TypeVar

T = TypeVar("T")

degraded_logger = logging.getLogger("insight.degraded")


class ErrorKind(str, Enum):
    INSUFFICIENT_DATA = "insufficient_data"
    NOT_FOUND = "not_found"
    STORAGE_UNAVAILABLE = "storage_unavailable"
    INTERNAL = "internal"


class InsightError(Exception):
    """Base class for analytics failures."""

    kind: ErrorKind = ErrorKind.INTERNAL


class InsufficientData(InsightError):
    """Too few movements to run an analysis."""

    kind = ErrorKind.INSUFFICIENT_DATA

    def __init__(self, message: str, available: int = 0, required: int = 0):
        self.available = available
        self.required = required
        super().__init__(message)


class NotFound(InsightError):
    """Unknown product id. Always surfaced to the caller."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, product_id: int):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class StorageUnavailable(InsightError):
    """The data gateway failed to deliver records."""

    kind = ErrorKind.STORAGE_UNAVAILABLE


def error_kind(exc: BaseException) -> ErrorKind:
    if isinstance(exc, InsightError):
        return exc.kind
    return ErrorKind.INTERNAL


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """A usable value plus the error kind that forced a fallback, if any."""

    value: T
    error_kind: ErrorKind | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.error_kind is None


class DegradationSink(Protocol):
    def __call__(self, operation: str, kind: ErrorKind, detail: str) -> None: ...


class LoggingSink:
    """Default sink: one warning per degraded call."""

    def __call__(self, operation: str, kind: ErrorKind, detail: str) -> None:
        degraded_logger.warning(
            "%s degraded to fallback (%s): %s", operation, kind.value, detail
        )
