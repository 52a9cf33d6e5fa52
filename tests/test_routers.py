from decimal import Decimal
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from ledgerapi.core.exceptions import (
    AlreadyCheckedInError,
    InsufficientInventoryError,
    InvalidStatusTransitionError,
)
from ledgerapi.core.security import create_access_token
from ledgerapi.main import create_app
from ledgerapi.schemas.pagination import PaginatedResponse
from ledgerapi.schemas.points import PointsBalanceResponse, PointsRecordResponse


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    """테스트 클라이언트 픽스처 (lifespan 미실행)"""
    return TestClient(app)


@pytest.fixture
def user_headers():
    return {"Authorization": f"Bearer {create_access_token(1, ['user'])}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {create_access_token(99, ['admin'])}"}


class TestAuth:
    def test_missing_token(self, client):
        response = client.get("/api/v1/points/balance")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "AUTH_001"

    def test_invalid_token(self, client):
        response = client.get("/api/v1/points/balance", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401

    def test_admin_route_forbidden_for_user(self, client, user_headers):
        response = client.get("/api/v1/admin/points/integrity", headers=user_headers)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTH_002"


class TestPointRoutes:
    """포인트 라우터 테스트"""

    def test_get_my_balance(self, app, client, user_headers):
        # Given
        service = Mock()
        service.get_user_points.return_value = PointsBalanceResponse(
            user_id=1, current_points=1000, total_earned=1200, total_spent=200
        )

        # When
        with app.container.services.point_service.override(service):
            response = client.get("/api/v1/points/balance", headers=user_headers)

        # Then
        assert response.status_code == 200
        assert response.json()["current_points"] == 1000
        service.get_user_points.assert_called_once_with(1)

    def test_records_pagination_envelope(self, app, client, user_headers):
        record = PointsRecordResponse(
            id=5, user_id=1, amount=10, balance_before=0, balance_after=10, type="checkin"
        )
        service = Mock()
        service.get_points_records.return_value = PaginatedResponse[PointsRecordResponse].of(
            [record], total=21, limit=10, offset=10
        )

        with app.container.services.point_service.override(service):
            response = client.get("/api/v1/points/records?limit=10&offset=10", headers=user_headers)

        assert response.status_code == 200
        pagination = response.json()["pagination"]
        assert pagination == {
            "total": 21,
            "limit": 10,
            "offset": 10,
            "page": 2,
            "totalPages": 3,
            "hasNext": True,
            "hasPrev": True,
        }


class TestDomainErrors:
    """도메인 예외 -> 에러 봉투"""

    def test_double_checkin(self, app, client, user_headers):
        service = Mock()
        service.perform_checkin.side_effect = AlreadyCheckedInError()

        with app.container.services.checkin_service.override(service):
            response = client.post("/api/v1/checkin", headers=user_headers)

        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": "CHECKIN_001",
            "message": "今日已签到",
            "details": {},
        }
        service.perform_checkin.assert_called_once_with(1, ["user"])

    def test_out_of_stock(self, app, client, user_headers):
        service = Mock()
        service.redeem_virtual_product.side_effect = InsufficientInventoryError()

        with app.container.services.mall_service.override(service):
            response = client.post("/api/v1/mall/products/3/redeem", headers=user_headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVENTORY_001"

    def test_payout_review_passes_reviewer(self, app, client, admin_headers):
        service = Mock()
        service.update_payout_request_status.side_effect = InvalidStatusTransitionError("请先审批通过再标记打款")

        with app.container.services.payout_service.override(service):
            response = client.put(
                "/api/v1/admin/referral/payouts/7/status",
                json={"status": "paid"},
                headers=admin_headers,
            )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "请先审批通过再标记打款"
        service.update_payout_request_status.assert_called_once_with(7, "paid", 99, None)

    def test_request_validation(self, client, admin_headers):
        response = client.put(
            "/api/v1/admin/referral/payouts/7/status",
            json={"status": "cancelled"},
            headers=admin_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_001"


class TestEndToEnd:
    """실제 서비스 + 인메모리 sqlite"""

    def test_checkin_and_balance(self, app, client, db, alice, default_config):
        headers = {"Authorization": f"Bearer {create_access_token(alice, ['user'])}"}

        with app.container.repositories.database.override(db):
            first = client.post("/api/v1/checkin", headers=headers)
            second = client.post("/api/v1/checkin", headers=headers)
            balance = client.get("/api/v1/points/balance", headers=headers)

        assert first.status_code == 200
        assert first.json()["total_points"] == 10
        assert second.status_code == 400
        assert balance.json()["current_points"] == 10

    def test_admin_product_and_redeem(self, app, client, db, make_user, admin_headers):
        buyer = make_user("buyer", points=500)
        headers = {"Authorization": f"Bearer {create_access_token(buyer)}"}

        with app.container.repositories.database.override(db):
            created = client.post(
                "/api/v1/admin/mall/products",
                json={"name": "兑换卡", "points_cost": 200, "tags": ["card"]},
                headers=admin_headers,
            )
            product_id = created.json()["id"]
            client.post(
                f"/api/v1/admin/mall/products/{product_id}/inventory",
                json={"codes": ["K-1"]},
                headers=admin_headers,
            )
            redeemed = client.post(f"/api/v1/mall/products/{product_id}/redeem", headers=headers)
            again = client.post(f"/api/v1/mall/products/{product_id}/redeem", headers=headers)

        assert created.status_code == 201
        assert redeemed.status_code == 200
        assert redeemed.json()["item"]["code"] == "K-1"
        assert redeemed.json()["points"]["balance_after"] == 300
        assert again.status_code == 400
        assert again.json()["error"]["message"] == "库存不足"

    def test_payout_flow(self, app, client, db, make_user, admin_headers):
        earner = make_user("earner", commission_balance=Decimal("50"))
        headers = {"Authorization": f"Bearer {create_access_token(earner)}"}

        with app.container.repositories.database.override(db):
            created = client.post(
                "/api/v1/referral/payouts",
                json={"amount": "20", "method": "alipay", "account": "a@b.c"},
                headers=headers,
            )
            payout_id = created.json()["id"]
            rejected = client.put(
                f"/api/v1/admin/referral/payouts/{payout_id}/status",
                json={"status": "rejected", "review_notes": "账号错误"},
                headers=admin_headers,
            )
            summary = client.get("/api/v1/referral/payouts/summary", headers=headers)

        assert created.status_code == 200
        assert rejected.json()["status"] == "rejected"
        assert Decimal(summary.json()["commission_balance"]) == Decimal("50")
        assert Decimal(summary.json()["rejected_amount"]) == Decimal("20")

    def test_health(self, app, client, db):
        with app.container.repositories.database.override(db):
            response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
