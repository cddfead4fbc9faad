"""CSV bulk import of coupons."""

from __future__ import annotations

import csv
import logging
import uuid
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from couponhub.errors import CouponError, CouponValidationError, ErrorKind, Reason
from couponhub.models import Coupon
from couponhub.schemas.coupon import CouponDraft
from couponhub.services.coupon_codes import as_utc
from couponhub.services.coupon_store import CouponStore

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("code", "offer_name", "discount_type", "discount_value")


def _normalize_header(name: str) -> str:
    return name.strip().lower().replace(" ", "_")


def read_coupon_csv(path: Path) -> list[tuple[int, dict[str, str]]]:
    """Parse a coupon sheet into ``(line_number, row)`` pairs.

    Headers are matched case-insensitively; a header missing any required
    column rejects the whole file.
    """
    try:
        with path.open(newline="", encoding="utf-8-sig") as fh:
            reader = csv.DictReader(fh)
            if not reader.fieldnames:
                raise CouponValidationError("CSV file has no header row")
            reader.fieldnames = [_normalize_header(name) for name in reader.fieldnames]
            missing = [col for col in REQUIRED_COLUMNS if col not in reader.fieldnames]
            if missing:
                raise CouponValidationError(
                    f"CSV header is missing columns: {', '.join(missing)}",
                    reason=Reason.MISSING_FIELD,
                )
            rows: list[tuple[int, dict[str, str]]] = []
            for raw in reader:
                row = {
                    key: (value or "").strip()
                    for key, value in raw.items()
                    if key is not None
                }
                if not any(row.values()):
                    continue
                rows.append((reader.line_num, row))
            return rows
    except UnicodeDecodeError as exc:
        raise CouponValidationError("CSV file must be UTF-8 encoded") from exc
    except csv.Error as exc:
        raise CouponValidationError(f"Malformed CSV: {exc}") from exc


def _row_error(line: int, code: str | None, kind: ErrorKind, reason: Reason, detail: str) -> dict:
    return {
        "row": line,
        "code": code or None,
        "error": kind.value,
        "reason": reason.value,
        "detail": detail,
    }


def _describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "row"
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts)


async def import_coupons(
    store: CouponStore,
    rows: Iterable[tuple[int, dict[str, str]]],
    *,
    now: datetime,
    admin_id: uuid.UUID | None = None,
) -> dict:
    """Create every non-conflicting row and report the outcome of each.

    A code is taken when a live coupon with the same code (case-insensitive)
    has not yet ended; codes created earlier in the same batch count too.
    Rows are independent: a failing row never undoes an earlier insert.
    """
    active_codes: set[str] = set()
    for coupon in await store.list_coupons(include_deleted=False):
        end = as_utc(coupon.end_date)
        if end is None or end >= now:
            active_codes.add(coupon.code.upper())

    total = 0
    created_codes: list[str] = []
    errors: list[dict] = []

    for line, row in rows:
        total += 1
        code = row.get("code", "").strip()

        missing = [col for col in REQUIRED_COLUMNS if not row.get(col, "").strip()]
        if missing:
            errors.append(
                _row_error(
                    line,
                    code,
                    ErrorKind.VALIDATION,
                    Reason.MISSING_FIELD,
                    f"Missing required fields: {', '.join(missing)}",
                )
            )
            continue

        if code.upper() in active_codes:
            errors.append(
                _row_error(
                    line,
                    code,
                    ErrorKind.DUPLICATE,
                    Reason.DUPLICATE_CODE,
                    f"An active coupon with code {code} already exists",
                )
            )
            continue

        try:
            draft = CouponDraft.model_validate(row)
        except ValidationError as exc:
            errors.append(
                _row_error(
                    line,
                    code,
                    ErrorKind.VALIDATION,
                    Reason.INVALID_FIELD,
                    _describe_validation_error(exc),
                )
            )
            continue

        coupon = Coupon(
            **draft.model_dump(),
            is_deleted=False,
            created_by_admin_id=admin_id,
            created_at=now,
            updated_at=now,
        )
        try:
            await store.add_coupon(coupon)
        except CouponError as exc:
            errors.append(_row_error(line, code, exc.kind, exc.reason, exc.message))
            continue

        active_codes.add(draft.code.upper())
        created_codes.append(draft.code)

    summary = {
        "total": total,
        "created": len(created_codes),
        "skipped": len(errors),
        "created_codes": created_codes,
        "errors": errors,
    }
    logger.info(
        "Coupon import finished: %d rows, %d created, %d skipped",
        total,
        summary["created"],
        summary["skipped"],
    )
    return summary
