"""
EduPortal Billing - API Endpoint Tests

HTTP-level tests for auth, pricing, checkout, verification, subscription
and admin pricing endpoints, including the standard error format.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.base import utcnow
from app.models.billing import Order, Payment, Subscription
from app.models.billing_enums import OrderStatus, SubscriptionStatus
from app.models.user import User
from app.services.payment_gateway import generate_payment_signature
from app.utils.security import create_access_token

from conftest import create_order_record, create_subscription_record, make_auth_headers


def sign(order_id: str, payment_id: str) -> str:
    return generate_payment_signature(order_id, payment_id, "test_key_secret")


# =============================================================================
# HEALTH AND AUTH
# =============================================================================

class TestHealthAndAuth:
    
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
    
    @pytest.mark.asyncio
    async def test_register_login_me(self, client: AsyncClient):
        register = await client.post("/api/auth/register", json={
            "name": "Meera Iyer",
            "email": "Meera@Example.com",
            "password": "SecurePass123",
        })
        assert register.status_code == 201
        assert register.json()["user"]["email"] == "meera@example.com"
        assert register.json()["user"]["subscription_status"] == "inactive"
        
        login = await client.post("/api/auth/login", json={
            "email": "meera@example.com",
            "password": "SecurePass123",
        })
        assert login.status_code == 200
        token = login.json()["access_token"]
        
        me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["purchased_portals"] == []
    
    @pytest.mark.asyncio
    async def test_duplicate_registration(self, client: AsyncClient, test_user: User):
        response = await client.post("/api/auth/register", json={
            "name": "Someone",
            "email": test_user.email,
            "password": "SecurePass123",
        })
        
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "DUPLICATE_ENTRY"
    
    @pytest.mark.asyncio
    async def test_wrong_password(self, client: AsyncClient, test_user: User):
        response = await client.post("/api/auth/login", json={
            "email": test_user.email,
            "password": "WrongPassword1",
        })
        
        assert response.status_code == 401
    
    @pytest.mark.asyncio
    async def test_protected_endpoint_requires_token(self, client: AsyncClient):
        response = await client.get("/api/user/subscription")
        
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"
        assert response.headers["www-authenticate"] == "Bearer"
    
    @pytest.mark.asyncio
    async def test_garbage_token(self, client: AsyncClient):
        response = await client.get("/api/user/subscription", headers={"Authorization": "Bearer not-a-jwt"})
        
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "TOKEN_INVALID"
    
    @pytest.mark.asyncio
    async def test_token_for_unknown_user(self, client: AsyncClient):
        token = create_access_token({"sub": str(uuid4())})
        
        response = await client.get("/api/user/subscription", headers={"Authorization": f"Bearer {token}"})
        
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "USER_NOT_FOUND"
    
    @pytest.mark.asyncio
    async def test_deactivated_account(
        self, client: AsyncClient, db_session: AsyncSession, test_user: User, auth_headers
    ):
        test_user.is_active = False
        await db_session.commit()
        
        me = await client.get("/api/auth/me", headers=auth_headers)
        login = await client.post("/api/auth/login", json={
            "email": test_user.email,
            "password": "TestPassword123!",
        })
        
        assert me.status_code == 403
        assert me.json()["detail"]["code"] == "ACCOUNT_DISABLED"
        assert login.status_code == 403
        assert login.json()["detail"]["code"] == "ACCOUNT_DISABLED"


# =============================================================================
# PRICING
# =============================================================================

class TestPricingEndpoints:
    
    @pytest.mark.asyncio
    async def test_pricing_page(self, client: AsyncClient):
        response = await client.get("/api/pricing")
        
        assert response.status_code == 200
        data = response.json()
        assert [p["id"] for p in data["portals"]] == ["admin", "teacher", "student"]
        assert data["billing_options"] == ["monthly", "annual"]
    
    @pytest.mark.asyncio
    async def test_features_filtered_by_portal(self, client: AsyncClient):
        response = await client.get("/api/pricing/features", params={"portal": "teacher"})
        
        assert response.status_code == 200
        groups = response.json()["features"]
        assert [g["portal_id"] for g in groups] == ["teacher"]
    
    @pytest.mark.asyncio
    async def test_bundle_discounts(self, client: AsyncClient):
        response = await client.get("/api/pricing/bundle-discounts")
        
        discounts = {d["id"]: d["discount"] for d in response.json()["discounts"]}
        assert discounts == {"admin_teacher": 15, "teacher_student": 10, "all_three": 20}
    
    @pytest.mark.asyncio
    async def test_calculate(self, client: AsyncClient):
        response = await client.post("/api/pricing/calculate", json={
            "portals": ["admin", "teacher"],
            "features": ["fee_management", "grade_access"],
            "billing_cycle": "monthly",
        })
        
        assert response.status_code == 200
        breakdown = response.json()["price_breakdown"]
        assert breakdown["total"] == 2880
        assert breakdown["discount_percentage"] == 15
        assert [f["id"] for f in breakdown["features"]] == ["fee_management"]
    
    @pytest.mark.asyncio
    async def test_calculate_defaults_to_monthly(self, client: AsyncClient):
        response = await client.post("/api/pricing/calculate", json={"portals": ["student"]})
        
        assert response.status_code == 200
        assert response.json()["price_breakdown"]["billing_cycle"] == "monthly"
        assert response.json()["price_breakdown"]["total"] == 400
    
    @pytest.mark.parametrize(
        "body",
        [
            {"portals": [], "features": []},
            {"portals": ["principal"], "features": []},
            {"portals": ["admin"], "features": [], "billing_cycle": "weekly"},
            {"features": ["gradebook"]},
        ],
    )
    @pytest.mark.asyncio
    async def test_calculate_rejects_bad_input(self, client: AsyncClient, body):
        response = await client.post("/api/pricing/calculate", json=body)
        
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


# =============================================================================
# CHECKOUT FLOW
# =============================================================================

class TestCheckoutFlow:
    
    @pytest.mark.asyncio
    async def test_create_order_then_verify(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers,
        test_user: User,
        razorpay_server,
    ):
        with razorpay_server.activate():
            created = await client.post("/api/payment/create-order", headers=auth_headers, json={
                "portals": ["admin", "teacher"],
                "features": ["fee_management"],
                "billing_cycle": "monthly",
            })
        
        assert created.status_code == 201
        order = created.json()["order"]
        assert order["amount"] == 2880
        assert order["amount_in_smallest_unit"] == 288000
        assert order["currency"] == "INR"
        assert order["price_breakdown"]["discount_amount"] == 420
        assert created.json()["provider_public_key"] == "rzp_test_x"
        
        provider_order_id = order["provider_order_id"]
        verified = await client.post("/api/payment/verify", headers=auth_headers, json={
            "razorpay_order_id": provider_order_id,
            "razorpay_payment_id": "pay_e2e",
            "razorpay_signature": sign(provider_order_id, "pay_e2e"),
        })
        
        assert verified.status_code == 200
        subscription = verified.json()["subscription"]
        assert subscription["portals"] == ["admin", "teacher"]
        assert subscription["features"] == ["fee_management"]
        assert subscription["status"] == "active"
        assert 28 <= subscription["days_remaining"] <= 31
        
        me = await client.get("/api/auth/me", headers=auth_headers)
        assert me.json()["subscription_status"] == "active"
        assert me.json()["purchased_portals"] == ["admin", "teacher"]
    
    @pytest.mark.asyncio
    async def test_create_order_requires_auth(self, client: AsyncClient):
        response = await client.post("/api/payment/create-order", json={"portals": ["admin"]})
        
        assert response.status_code == 401
    
    @pytest.mark.asyncio
    async def test_provider_failure_returns_502(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, razorpay_server
    ):
        razorpay_server.set_order_failure(status_code=500, description="Gateway down")
        
        with razorpay_server.activate():
            response = await client.post(
                "/api/payment/create-order", headers=auth_headers, json={"portals": ["admin"]}
            )
        
        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "PAYMENT_GATEWAY_ERROR"
        assert (await db_session.execute(select(func.count(Order.id)))).scalar_one() == 0
    
    @pytest.mark.asyncio
    async def test_verify_bad_signature(self, client: AsyncClient, auth_headers, pending_order: Order):
        response = await client.post("/api/payment/verify", headers=auth_headers, json={
            "provider_order_id": "order_test0001",
            "provider_payment_id": "pay_1",
            "provider_signature": "f" * 64,
        })
        
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "SIGNATURE_MISMATCH"
    
    @pytest.mark.asyncio
    async def test_verify_non_ascii_signature(self, client: AsyncClient, auth_headers, pending_order: Order):
        response = await client.post("/api/payment/verify", headers=auth_headers, json={
            "provider_order_id": "order_test0001",
            "provider_payment_id": "pay_1",
            "provider_signature": "\u00e9" * 64,
        })
        
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "SIGNATURE_MISMATCH"
    
    @pytest.mark.asyncio
    async def test_verify_missing_fields(self, client: AsyncClient, auth_headers):
        response = await client.post("/api/payment/verify", headers=auth_headers, json={
            "provider_order_id": "order_test0001",
        })
        
        assert response.status_code == 400
    
    @pytest.mark.asyncio
    async def test_verify_someone_elses_order(
        self, client: AsyncClient, other_user: User, pending_order: Order
    ):
        response = await client.post("/api/payment/verify", headers=make_auth_headers(other_user), json={
            "provider_order_id": "order_test0001",
            "provider_payment_id": "pay_1",
            "provider_signature": sign("order_test0001", "pay_1"),
        })
        
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "ORDER_NOT_FOUND"
    
    @pytest.mark.asyncio
    async def test_verify_twice(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, pending_order: Order
    ):
        body = {
            "provider_order_id": "order_test0001",
            "provider_payment_id": "pay_1",
            "provider_signature": sign("order_test0001", "pay_1"),
        }
        
        first = await client.post("/api/payment/verify", headers=auth_headers, json=body)
        second = await client.post("/api/payment/verify", headers=auth_headers, json=body)
        
        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json()["detail"]["code"] == "ALREADY_PROCESSED"
        assert (await db_session.execute(select(func.count(Payment.id)))).scalar_one() == 1
        assert (await db_session.execute(select(func.count(Subscription.id)))).scalar_one() == 1


# =============================================================================
# SUBSCRIPTION MANAGEMENT
# =============================================================================

class TestSubscriptionEndpoints:
    
    @pytest.mark.asyncio
    async def test_no_subscription(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/user/subscription", headers=auth_headers)
        
        assert response.status_code == 200
        assert response.json() == {"has_subscription": False, "subscription": None}
    
    @pytest.mark.asyncio
    async def test_active_subscription(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, test_user: User, pending_order: Order
    ):
        await create_subscription_record(db_session, test_user, pending_order)
        
        response = await client.get("/api/user/subscription", headers=auth_headers)
        
        data = response.json()
        assert data["has_subscription"] is True
        assert data["subscription"]["days_remaining"] == 30
        assert data["subscription"]["auto_renew"] is True
    
    @pytest.mark.asyncio
    async def test_expired_subscription_reported_as_none(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, test_user: User, pending_order: Order
    ):
        subscription = await create_subscription_record(
            db_session, test_user, pending_order, start_offset_days=-31, duration_days=30
        )
        
        response = await client.get("/api/user/subscription", headers=auth_headers)
        
        assert response.json()["has_subscription"] is False
        await db_session.refresh(subscription)
        assert subscription.status == SubscriptionStatus.INACTIVE
    
    @pytest.mark.asyncio
    async def test_toggle_auto_renew(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, test_user: User, pending_order: Order
    ):
        await create_subscription_record(db_session, test_user, pending_order)
        
        response = await client.patch("/api/user/subscription/auto-renew", headers=auth_headers)
        
        assert response.status_code == 200
        assert response.json()["auto_renew"] is False
        assert response.json()["message"] == "Auto-renew disabled"
    
    @pytest.mark.asyncio
    async def test_toggle_without_subscription(self, client: AsyncClient, auth_headers):
        response = await client.patch("/api/user/subscription/auto-renew", headers=auth_headers)
        
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NO_ACTIVE_SUBSCRIPTION"
    
    @pytest.mark.asyncio
    async def test_cancel(
        self, client: AsyncClient, db_session: AsyncSession, auth_headers, test_user: User, pending_order: Order
    ):
        subscription = await create_subscription_record(db_session, test_user, pending_order)
        
        response = await client.post("/api/user/subscription/cancel", headers=auth_headers)
        
        assert response.status_code == 200
        data = response.json()
        assert data["subscription"]["status"] == "cancelled"
        assert data["subscription"]["auto_renew"] is False
        assert subscription.end_date.strftime("%d %B %Y") in data["message"]
        
        access = await client.get("/api/user/access/admin", headers=auth_headers)
        assert access.json() == {"portal": "admin", "has_access": True}
    
    @pytest.mark.asyncio
    async def test_cancel_without_subscription(self, client: AsyncClient, auth_headers):
        response = await client.post("/api/user/subscription/cancel", headers=auth_headers)
        
        assert response.status_code == 404
    
    @pytest.mark.asyncio
    async def test_access_unknown_portal(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/user/access/principal", headers=auth_headers)
        
        assert response.status_code == 400


# =============================================================================
# ADMIN PRICING
# =============================================================================

class TestAdminPricing:
    
    @pytest.mark.asyncio
    async def test_regular_user_forbidden(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/admin/pricing", headers=auth_headers)
        
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "INSUFFICIENT_PERMISSIONS"
        assert response.json()["detail"]["details"] == {"required": "admin"}
    
    @pytest.mark.asyncio
    async def test_admin_reads_snapshot(self, client: AsyncClient, admin_headers):
        response = await client.get("/api/admin/pricing", headers=admin_headers)
        
        assert response.status_code == 200
        assert response.json()["pricing"]["portal_prices"]["admin"] == 2000
    
    @pytest.mark.asyncio
    async def test_update_applies_to_next_calculation(self, client: AsyncClient, admin_headers, catalog):
        response = await client.put("/api/admin/pricing", headers=admin_headers, json={
            "portal_prices": {"teacher": 900, "principal": 100},
            "bundle_discounts": {"admin_teacher": 150},
        })
        
        assert response.status_code == 200
        data = response.json()
        assert data["applied"] == {"portal_prices": ["teacher"]}
        assert data["ignored"] == {"portal_prices": ["principal"], "bundle_discounts": ["admin_teacher"]}
        assert data["pricing"]["portal_prices"]["teacher"] == 900
        
        stored = await catalog.storage.load()
        assert stored["portal_prices"]["teacher"] == 900
        
        calculated = await client.post("/api/pricing/calculate", json={"portals": ["teacher"]})
        assert calculated.json()["price_breakdown"]["total"] == 900
