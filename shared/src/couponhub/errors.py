"""Error taxonomy for coupon operations.

Every failure the engine, the store or the importer reports is a
``CouponError``. ``kind`` is the coarse category callers branch on (and the
API maps to a status code); ``reason`` is the specific rule that fired, so
e.g. an exhausted coupon and an out-of-window coupon are both ``EXPIRED``
but remain distinguishable.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Coarse failure category."""

    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    ALREADY_USED = "ALREADY_USED"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    DUPLICATE = "DUPLICATE"
    VALIDATION = "VALIDATION"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"


class Reason(str, Enum):
    """Specific rule behind a failure."""

    NOT_FOUND = "NOT_FOUND"
    COUPON_NOT_FOUND = "COUPON_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    EXPIRED = "EXPIRED"
    EXHAUSTED = "EXHAUSTED"
    REPORT_ALREADY_USED = "REPORT_ALREADY_USED"
    PER_USER_LIMIT = "PER_USER_LIMIT"
    DUPLICATE_CODE = "DUPLICATE_CODE"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_FIELD = "INVALID_FIELD"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"


class CouponError(Exception):
    kind: ErrorKind = ErrorKind.UPSTREAM_FAILURE
    default_reason: Reason = Reason.UPSTREAM_FAILURE

    def __init__(self, message: str, *, reason: Reason | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason

    def as_dict(self) -> dict[str, str]:
        return {
            "detail": self.message,
            "error": self.kind.value,
            "reason": self.reason.value,
        }


class NotFoundError(CouponError):
    kind = ErrorKind.NOT_FOUND
    default_reason = Reason.NOT_FOUND


class ExpiredError(CouponError):
    kind = ErrorKind.EXPIRED
    default_reason = Reason.EXPIRED


class AlreadyUsedError(CouponError):
    kind = ErrorKind.ALREADY_USED
    default_reason = Reason.REPORT_ALREADY_USED


class LimitExceededError(CouponError):
    kind = ErrorKind.LIMIT_EXCEEDED
    default_reason = Reason.PER_USER_LIMIT


class DuplicateCodeError(CouponError):
    kind = ErrorKind.DUPLICATE
    default_reason = Reason.DUPLICATE_CODE


class CouponValidationError(CouponError):
    kind = ErrorKind.VALIDATION
    default_reason = Reason.INVALID_FIELD


class UpstreamFailure(CouponError):
    """The datastore call failed; ``message`` carries the driver's text."""

    kind = ErrorKind.UPSTREAM_FAILURE
    default_reason = Reason.UPSTREAM_FAILURE
