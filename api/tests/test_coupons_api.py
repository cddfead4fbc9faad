"""Tests for client-facing coupon validation and redemption endpoints."""

import uuid
from datetime import timedelta
from decimal import Decimal


def _apply_body(**overrides):
    body = {
        "code": "SAVE10",
        "email": "shopper@example.com",
        "discount_applied": "4.99",
        "transaction_status": "completed",
    }
    body.update(overrides)
    return body


class TestValidateEndpoint:
    async def test_valid(self, client, make_coupon, make_user):
        coupon = make_coupon(terms_url="https://example.com/terms")
        make_user()

        resp = await client.post(
            "/v1/coupons/validate", json={"code": "SAVE10", "email": "Shopper@Example.com"}
        )

        assert resp.status_code == 200
        assert resp.json() == {
            "valid": True,
            "coupon_id": str(coupon.id),
            "code": "SAVE10",
            "offer_name": "Spring sale",
            "discount_type": "PERCENTAGE",
            "discount_value": 10.0,
            "description": "10% off everything",
            "terms_url": "https://example.com/terms",
        }

    async def test_validate_needs_no_token(self, unauthenticated_client, mock_db):
        resp = await unauthenticated_client.post(
            "/v1/coupons/validate", json={"code": "NOPE", "email": "shopper@example.com"}
        )
        assert resp.status_code == 404
        assert resp.json()["error"] == "NOT_FOUND"

    async def test_not_found(self, client, make_user):
        make_user()
        resp = await client.post(
            "/v1/coupons/validate", json={"code": "NOPE", "email": "shopper@example.com"}
        )
        assert resp.status_code == 404
        assert resp.json() == {
            "detail": "Coupon not found",
            "error": "NOT_FOUND",
            "reason": "NOT_FOUND",
        }

    async def test_expired(self, client, make_coupon, make_user, now):
        make_coupon(end_date=now - timedelta(days=1))
        make_user()
        resp = await client.post(
            "/v1/coupons/validate", json={"code": "SAVE10", "email": "shopper@example.com"}
        )
        assert resp.status_code == 410
        assert resp.json()["reason"] == "EXPIRED"

    async def test_exhausted(self, client, engine, make_coupon, make_user):
        make_coupon(max_usage=1)
        make_user("a@example.com")
        make_user("b@example.com")
        await engine.apply(
            code="SAVE10",
            email="a@example.com",
            discount_applied=Decimal("1"),
            transaction_status="completed",
        )

        resp = await client.post(
            "/v1/coupons/validate", json={"code": "SAVE10", "email": "b@example.com"}
        )

        assert resp.status_code == 410
        assert resp.json()["error"] == "EXPIRED"
        assert resp.json()["reason"] == "EXHAUSTED"

    async def test_unknown_user(self, client, make_coupon):
        make_coupon()
        resp = await client.post(
            "/v1/coupons/validate", json={"code": "SAVE10", "email": "ghost@example.com"}
        )
        assert resp.status_code == 404
        assert resp.json()["reason"] == "USER_NOT_FOUND"

    async def test_report_already_used(self, client, make_coupon, make_user):
        make_coupon(discount_type="REPORT", discount_value=Decimal("0"))
        make_user(report_free=False)
        resp = await client.post(
            "/v1/coupons/validate", json={"code": "SAVE10", "email": "shopper@example.com"}
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "ALREADY_USED"

    async def test_bad_email(self, client):
        resp = await client.post(
            "/v1/coupons/validate", json={"code": "SAVE10", "email": "nope"}
        )
        assert resp.status_code == 422

    async def test_upstream_failure(self, client, store, make_user):
        make_user()
        store.failing.add("find_coupons_by_code")
        resp = await client.post(
            "/v1/coupons/validate", json={"code": "SAVE10", "email": "shopper@example.com"}
        )
        assert resp.status_code == 502
        assert resp.json()["error"] == "UPSTREAM_FAILURE"
        assert "connection reset by peer" in resp.json()["detail"]


class TestApplyEndpoint:
    async def test_apply(self, client, store, make_coupon, make_user):
        coupon = make_coupon()
        make_user()

        resp = await client.post("/v1/coupons/apply", json=_apply_body())

        assert resp.status_code == 200
        data = resp.json()
        assert data["applied"] is True
        assert data["coupon"]["coupon_id"] == str(coupon.id)
        assert data["usage"]["discount_applied"] == 4.99
        assert data["usage"]["transaction_status"] == "completed"
        assert len(store.usages) == 1
        assert store.locked_emails == ["shopper@example.com"]

    async def test_per_user_limit(self, client, make_coupon, make_user):
        make_coupon(max_usage_per_user=2)
        make_user()

        assert (await client.post("/v1/coupons/apply", json=_apply_body())).status_code == 200
        assert (await client.post("/v1/coupons/apply", json=_apply_body())).status_code == 200
        resp = await client.post("/v1/coupons/apply", json=_apply_body())

        assert resp.status_code == 403
        assert resp.json()["error"] == "LIMIT_EXCEEDED"
        assert resp.json()["reason"] == "PER_USER_LIMIT"

    async def test_report_twice(self, client, make_coupon, make_user):
        make_coupon(discount_type="REPORT", discount_value=Decimal("0"))
        make_user()
        body = _apply_body(discount_applied="0", original_price="29.00")

        first = await client.post("/v1/coupons/apply", json=body)
        assert first.status_code == 200
        assert first.json()["usage"]["discount_applied"] == 29.0

        second = await client.post("/v1/coupons/apply", json=body)
        assert second.status_code == 409
        assert second.json()["reason"] == "REPORT_ALREADY_USED"

    async def test_retry_with_same_key(self, client, store, make_coupon, make_user):
        make_coupon(max_usage_per_user=1)
        make_user()
        body = _apply_body(redemption_key="order-5150")

        first = await client.post("/v1/coupons/apply", json=body)
        second = await client.post("/v1/coupons/apply", json=body)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["usage"]["id"] == first.json()["usage"]["id"]
        assert len(store.usages) == 1

    async def test_readonly_cannot_apply(self, client, fake_admin, make_coupon, make_user):
        fake_admin.role = "readonly"
        make_coupon()
        make_user()
        resp = await client.post("/v1/coupons/apply", json=_apply_body())
        assert resp.status_code == 403

    async def test_apply_requires_token(self, unauthenticated_client):
        resp = await unauthenticated_client.post("/v1/coupons/apply", json=_apply_body())
        assert resp.status_code == 401


class TestRedemptionsEndpoint:
    async def test_record(self, client, store, make_coupon, make_user):
        coupon = make_coupon(discount_type="REPORT")
        user = make_user()

        resp = await client.post(
            "/v1/coupons/redemptions",
            json={
                "coupon_id": str(coupon.id),
                "email": "shopper@example.com",
                "discount_applied": 0,
                "original_price": 19.5,
                "transaction_status": "Completed",
            },
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["coupon_id"] == str(coupon.id)
        assert data["coupon_code"] == "SAVE10"
        assert data["discount_applied"] == 19.5
        assert data["transaction_status"] == "completed"
        assert user.is_coupon_report_free is False
        assert len(store.usages) == 1

    async def test_unknown_coupon(self, client, make_user):
        make_user()
        resp = await client.post(
            "/v1/coupons/redemptions",
            json={
                "coupon_id": str(uuid.uuid4()),
                "email": "shopper@example.com",
                "discount_applied": 1,
                "transaction_status": "completed",
            },
        )
        assert resp.status_code == 404
        assert resp.json()["reason"] == "COUPON_NOT_FOUND"

    async def test_unknown_user(self, client, store, make_coupon):
        coupon = make_coupon()
        resp = await client.post(
            "/v1/coupons/redemptions",
            json={
                "coupon_id": str(coupon.id),
                "email": "ghost@example.com",
                "discount_applied": 1,
                "transaction_status": "completed",
            },
        )
        assert resp.status_code == 404
        assert resp.json()["reason"] == "USER_NOT_FOUND"
        assert store.usages == []

    async def test_datastore_down(self, client, store, make_coupon, make_user):
        coupon = make_coupon()
        make_user()
        store.failing.add("add_usage")
        resp = await client.post(
            "/v1/coupons/redemptions",
            json={
                "coupon_id": str(coupon.id),
                "email": "shopper@example.com",
                "discount_applied": 1,
                "transaction_status": "completed",
            },
        )
        assert resp.status_code == 502
        assert resp.json()["detail"] == "add_usage failed: connection reset by peer"
