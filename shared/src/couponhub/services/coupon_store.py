"""Data access for coupons, users and the usage log.

``CouponStore`` is the narrow collaborator the engine and the importer talk
to. It wraps one ``AsyncSession`` (one request, one transaction) and turns
any SQLAlchemy failure into ``UpstreamFailure`` so callers never see driver
exceptions.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from couponhub.errors import UpstreamFailure
from couponhub.models import AuditLog, Coupon, CouponUsage, User

logger = logging.getLogger(__name__)


class RedemptionKeyConflict(UpstreamFailure):
    """Another request already logged a redemption under the same key."""


def _driver_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


@contextmanager
def _upstream(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Datastore call failed: %s", operation)
        raise UpstreamFailure(f"{operation} failed: {_driver_message(exc)}") from exc


class CouponStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # Coupons

    async def get_coupon(self, coupon_id: uuid.UUID) -> Coupon | None:
        """Fetch by id, soft-deleted rows included."""
        with _upstream("load coupon"):
            return await self.session.get(Coupon, coupon_id)

    async def find_coupons_by_code(self, code: str) -> list[Coupon]:
        """Non-deleted coupons carrying exactly this code."""
        with _upstream("look up coupon code"):
            result = await self.session.execute(
                select(Coupon).where(Coupon.code == code, Coupon.is_deleted.is_(False))
            )
            return list(result.scalars().all())

    async def list_coupons(
        self,
        *,
        include_deleted: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Coupon]:
        """Newest first; `id` breaks created_at ties so pages do not overlap."""
        query = select(Coupon)
        if not include_deleted:
            query = query.where(Coupon.is_deleted.is_(False))
        query = query.order_by(Coupon.created_at.desc(), Coupon.id.desc())
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        with _upstream("list coupons"):
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def add_coupon(self, coupon: Coupon) -> Coupon:
        """Insert inside a savepoint so a failed row leaves earlier inserts intact."""
        with _upstream("insert coupon"):
            async with self.session.begin_nested():
                self.session.add(coupon)
                await self.session.flush()
        return coupon

    async def save_coupon(self, coupon: Coupon) -> Coupon:
        with _upstream("update coupon"):
            await self.session.flush()
        return coupon

    async def delete_coupon(self, coupon: Coupon) -> None:
        with _upstream("delete coupon"):
            await self.session.delete(coupon)
            await self.session.flush()

    # Users

    async def find_user(self, email: str, *, for_update: bool = False) -> User | None:
        """Case-insensitive lookup; ``for_update`` locks the row until commit."""
        query = select(User).where(func.lower(User.email) == email.strip().lower())
        if for_update:
            query = query.with_for_update()
        with _upstream("look up user"):
            result = await self.session.execute(query)
            return result.scalars().first()

    async def mark_report_used(self, user: User) -> None:
        with _upstream("update user"):
            user.is_coupon_report_free = False
            await self.session.flush()

    # Usage log

    async def count_coupon_usages(self, coupon_id: uuid.UUID) -> int:
        with _upstream("count coupon usage"):
            result = await self.session.execute(
                select(func.count(CouponUsage.id)).where(CouponUsage.coupon_id == coupon_id)
            )
            return int(result.scalar() or 0)

    async def count_user_code_usages(self, email: str, code: str) -> int:
        with _upstream("count user coupon usage"):
            result = await self.session.execute(
                select(func.count(CouponUsage.id)).where(
                    CouponUsage.user_email == email.strip().lower(),
                    CouponUsage.coupon_code == code,
                )
            )
            return int(result.scalar() or 0)

    async def find_usage_by_key(self, redemption_key: str) -> CouponUsage | None:
        with _upstream("look up redemption"):
            result = await self.session.execute(
                select(CouponUsage).where(CouponUsage.redemption_key == redemption_key)
            )
            return result.scalars().first()

    async def add_usage(self, usage: CouponUsage) -> CouponUsage:
        try:
            async with self.session.begin_nested():
                self.session.add(usage)
                await self.session.flush()
        except IntegrityError as exc:
            if usage.redemption_key:
                raise RedemptionKeyConflict(
                    f"Redemption {usage.redemption_key} was already recorded"
                ) from exc
            logger.exception("Datastore call failed: insert coupon usage")
            raise UpstreamFailure(
                f"insert coupon usage failed: {_driver_message(exc)}"
            ) from exc
        except SQLAlchemyError as exc:
            logger.exception("Datastore call failed: insert coupon usage")
            raise UpstreamFailure(
                f"insert coupon usage failed: {_driver_message(exc)}"
            ) from exc
        return usage

    async def list_coupon_usages(
        self, coupon_id: uuid.UUID, *, limit: int = 500
    ) -> list[CouponUsage]:
        with _upstream("list coupon usage"):
            result = await self.session.execute(
                select(CouponUsage)
                .where(CouponUsage.coupon_id == coupon_id)
                .order_by(CouponUsage.seq.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def list_user_usages(self, email: str) -> list[CouponUsage]:
        """The user's ledger in insertion order, oldest redemption first."""
        with _upstream("list user coupon usage"):
            result = await self.session.execute(
                select(CouponUsage)
                .where(CouponUsage.user_email == email.strip().lower())
                .order_by(CouponUsage.seq.asc())
            )
            return list(result.scalars().all())

    # Audit

    async def record_audit(
        self,
        *,
        admin_id: uuid.UUID | None,
        action: str,
        target_id: str | None,
        detail: dict | None = None,
    ) -> None:
        with _upstream("write audit log"):
            self.session.add(
                AuditLog(
                    admin_id=admin_id,
                    action=action,
                    target_type="coupon",
                    target_id=target_id,
                    detail=detail,
                )
            )
            await self.session.flush()
