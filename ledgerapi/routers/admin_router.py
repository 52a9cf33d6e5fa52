"""
관리자 API 라우터

모든 엔드포인트는 admin / super_admin 역할 필요 (require_admin)

- /admin/points/*: 포인트 지급/차감/조정, 일괄 지급, 통계, 정합성 검증
- /admin/checkin/*: 체크인 규칙 관리, 보충 체크인, 통계
- /admin/mall/*: 상품/교환 코드 재고 관리, 전체 교환 내역
- /admin/referral/*: 수수료 심사, 수수료 설정, 주문 정산, 출금 심사
"""

from datetime import date, datetime
from typing import List, Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Path, Query, status

from ledgerapi.containers import Container
from ledgerapi.core.auth_middleware import require_admin
from ledgerapi.models.points import PointsRecordType
from ledgerapi.schemas.checkin import (
    CheckinConfigCreate,
    CheckinConfigResponse,
    CheckinConfigUpdate,
    CheckinResult,
    CheckinStatistics,
    ConfigRoleRequest,
    MakeupCheckinRequest,
)
from ledgerapi.schemas.mall import (
    ExchangeResponse,
    InventoryAddRequest,
    InventoryAddResult,
    InventoryItemResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
)
from ledgerapi.schemas.pagination import PaginatedResponse
from ledgerapi.schemas.points import (
    AdminPointsAdjustmentRequest,
    AdminPointsAdjustmentResult,
    BatchGrantRequest,
    BatchGrantResult,
    PointsBalanceResponse,
    PointsChangeResult,
    PointsIntegrityCheckResponse,
    PointsRecordResponse,
    PointsStatisticsResponse,
    PointsTransactionRequest,
)
from ledgerapi.schemas.referral import (
    CommissionConfig,
    CommissionResponse,
    CommissionStatusUpdate,
    OrderSettlementRequest,
    PayoutResponse,
    PayoutStatusUpdate,
)
from ledgerapi.schemas.user import CurrentUser
from ledgerapi.services.checkin_service import CheckinService
from ledgerapi.services.commission_service import CommissionService
from ledgerapi.services.mall_service import MallService
from ledgerapi.services.payout_service import PayoutService
from ledgerapi.services.point_service import PointService

router = APIRouter(prefix="/admin", tags=["admin"])


# ---- 포인트 ----


@router.post("/points/{user_id}/add", response_model=PointsChangeResult)
@inject
async def admin_add_points(
    request: PointsTransactionRequest,
    user_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    return point_service.add_points(
        user_id,
        request.amount,
        request.type.value,
        description=request.description,
        operator_id=admin.id,
    )


@router.post("/points/{user_id}/deduct", response_model=PointsChangeResult)
@inject
async def admin_deduct_points(
    request: PointsTransactionRequest,
    user_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    """잔액 부족 시 400 (BALANCE_001), 아무것도 기록하지 않음"""
    return point_service.deduct_points(
        user_id,
        request.amount,
        PointsRecordType.ADMIN_ADJUST.value,
        description=request.description,
        operator_id=admin.id,
    )


@router.post("/points/{user_id}/adjust", response_model=AdminPointsAdjustmentResult)
@inject
async def admin_adjust_points(
    request: AdminPointsAdjustmentRequest,
    user_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    """음수 조정은 잔액 0 에서 멈춤"""
    return point_service.admin_adjust_points(
        user_id, request.amount, description=request.description, admin_id=admin.id
    )


@router.post("/points/batch", response_model=BatchGrantResult)
@inject
async def admin_batch_grant(
    request: BatchGrantRequest,
    admin: CurrentUser = Depends(require_admin),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    return point_service.batch_grant_points(
        request.user_ids,
        request.amount,
        request.type.value,
        description=request.description,
        operator_id=admin.id,
    )


@router.get("/points/{user_id}/balance", response_model=PointsBalanceResponse)
@inject
async def admin_get_balance(
    user_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    return point_service.get_user_points(user_id)


@router.get("/points/{user_id}/records", response_model=PaginatedResponse[PointsRecordResponse])
@inject
async def admin_get_records(
    user_id: int = Path(..., ge=1),
    limit: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    type: Optional[str] = Query(None),
    admin: CurrentUser = Depends(require_admin),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    return point_service.get_points_records(user_id, limit, offset, type=type)


@router.get("/points/statistics", response_model=PointsStatisticsResponse)
@inject
async def admin_points_statistics(
    user_id: Optional[int] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    admin: CurrentUser = Depends(require_admin),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    return point_service.get_points_statistics(user_id, date_from, date_to)


@router.get("/points/integrity", response_model=PointsIntegrityCheckResponse)
@inject
async def admin_global_integrity(
    admin: CurrentUser = Depends(require_admin),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    """전체 사용자 current_points 합계 vs 원장 합계"""
    return point_service.verify_global_integrity()


@router.get("/points/integrity/{user_id}", response_model=PointsIntegrityCheckResponse)
@inject
async def admin_user_integrity(
    user_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    return point_service.verify_integrity_for_user(user_id)


# ---- 체크인 ----


@router.get("/checkin/configs", response_model=List[CheckinConfigResponse])
@inject
async def list_checkin_configs(
    include_inactive: bool = Query(True),
    admin: CurrentUser = Depends(require_admin),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    return checkin_service.list_configs(include_inactive)


@router.post("/checkin/configs", response_model=CheckinConfigResponse, status_code=status.HTTP_201_CREATED)
@inject
async def create_checkin_config(
    request: CheckinConfigCreate,
    admin: CurrentUser = Depends(require_admin),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    return checkin_service.create_config(request, created_by=admin.id)


@router.get("/checkin/configs/{config_id}", response_model=CheckinConfigResponse)
@inject
async def get_checkin_config(
    config_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    return checkin_service.get_config(config_id)


@router.put("/checkin/configs/{config_id}", response_model=CheckinConfigResponse)
@inject
async def update_checkin_config(
    request: CheckinConfigUpdate,
    config_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    return checkin_service.update_config(config_id, request)


@router.delete("/checkin/configs/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
@inject
async def delete_checkin_config(
    config_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    """비활성 규칙만 삭제 가능"""
    checkin_service.delete_config(config_id)


@router.post("/checkin/configs/{config_id}/roles", response_model=CheckinConfigResponse)
@inject
async def add_checkin_config_role(
    request: ConfigRoleRequest,
    config_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    return checkin_service.add_config_role(config_id, request.role_name)


@router.delete("/checkin/configs/{config_id}/roles/{role_name}", response_model=CheckinConfigResponse)
@inject
async def remove_checkin_config_role(
    config_id: int = Path(..., ge=1),
    role_name: str = Path(..., min_length=1),
    admin: CurrentUser = Depends(require_admin),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    return checkin_service.remove_config_role(config_id, role_name)


@router.post("/checkin/makeup", response_model=CheckinResult)
@inject
async def makeup_checkin(
    request: MakeupCheckinRequest,
    admin: CurrentUser = Depends(require_admin),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    return checkin_service.makeup_checkin(request.user_id, request.checkin_date, admin_id=admin.id)


@router.get("/checkin/statistics", response_model=CheckinStatistics)
@inject
async def checkin_statistics(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    admin: CurrentUser = Depends(require_admin),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    return checkin_service.get_checkin_statistics(date_from, date_to)


# ---- 상점 ----


@router.get("/mall/products", response_model=PaginatedResponse[ProductResponse])
@inject
async def admin_list_products(
    keyword: Optional[str] = Query(None),
    tags: Optional[List[str]] = Query(None),
    status: Optional[str] = Query(None, description="active | inactive"),
    limit: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    admin: CurrentUser = Depends(require_admin),
    mall_service: MallService = Depends(Provide[Container.services.mall_service]),
):
    return mall_service.list_products_for_admin(
        keyword=keyword, tags=tags, status=status, limit=limit, offset=offset
    )


@router.post("/mall/products", response_model=ProductResponse, status_code=201)
@inject
async def admin_create_product(
    request: ProductCreate,
    admin: CurrentUser = Depends(require_admin),
    mall_service: MallService = Depends(Provide[Container.services.mall_service]),
):
    return mall_service.create_product(request, operator_id=admin.id)


@router.put("/mall/products/{product_id}", response_model=ProductResponse)
@inject
async def admin_update_product(
    request: ProductUpdate,
    product_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    mall_service: MallService = Depends(Provide[Container.services.mall_service]),
):
    return mall_service.update_product(product_id, request)


@router.post("/mall/products/{product_id}/inventory", response_model=InventoryAddResult)
@inject
async def admin_add_inventory(
    request: InventoryAddRequest,
    product_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    mall_service: MallService = Depends(Provide[Container.services.mall_service]),
):
    """교환 코드 일괄 등록 - 빈 값과 중복 코드는 건너뜀"""
    return mall_service.add_inventory_items(product_id, request.codes, operator_id=admin.id)


@router.get("/mall/products/{product_id}/inventory", response_model=PaginatedResponse[InventoryItemResponse])
@inject
async def admin_list_inventory(
    product_id: int = Path(..., ge=1),
    status: Optional[str] = Query(None, description="available | used"),
    limit: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    admin: CurrentUser = Depends(require_admin),
    mall_service: MallService = Depends(Provide[Container.services.mall_service]),
):
    return mall_service.get_inventory_items(product_id, status=status, limit=limit, offset=offset)


@router.get("/mall/exchanges", response_model=PaginatedResponse[ExchangeResponse])
@inject
async def admin_list_exchanges(
    user_id: Optional[int] = Query(None),
    product_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    start_at: Optional[datetime] = Query(None),
    end_at: Optional[datetime] = Query(None),
    limit: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    admin: CurrentUser = Depends(require_admin),
    mall_service: MallService = Depends(Provide[Container.services.mall_service]),
):
    return mall_service.get_admin_exchanges(
        user_id=user_id,
        product_id=product_id,
        status=status,
        start_at=start_at,
        end_at=end_at,
        limit=limit,
        offset=offset,
    )


# ---- 초대 / 수수료 / 출금 ----


@router.get("/referral/commissions", response_model=PaginatedResponse[CommissionResponse])
@inject
async def admin_list_commissions(
    inviter_id: Optional[int] = Query(None),
    invitee_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    admin: CurrentUser = Depends(require_admin),
    commission_service: CommissionService = Depends(Provide[Container.services.commission_service]),
):
    return commission_service.get_commission_records(
        inviter_id=inviter_id, invitee_id=invitee_id, status=status, limit=limit, offset=offset
    )


@router.put("/referral/commissions/{commission_id}/status", response_model=CommissionResponse)
@inject
async def admin_review_commission(
    request: CommissionStatusUpdate,
    commission_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    commission_service: CommissionService = Depends(Provide[Container.services.commission_service]),
):
    """
    수수료 상태 변경 - 초대자 잔액이 상태에 맞게 이동

    HTTP Status:
        200: 변경 성공
        400: 잔액이 음수가 되는 전이 (BALANCE_001)
        404: 수수료 기록 없음
    """
    return commission_service.update_commission_status(
        commission_id, request.status.value, request.review_notes
    )


@router.get("/referral/commission-config", response_model=CommissionConfig)
@inject
async def admin_get_commission_config(
    admin: CurrentUser = Depends(require_admin),
    commission_service: CommissionService = Depends(Provide[Container.services.commission_service]),
):
    return commission_service.get_commission_config()


@router.put("/referral/commission-config", response_model=CommissionConfig)
@inject
async def admin_update_commission_config(
    request: CommissionConfig,
    admin: CurrentUser = Depends(require_admin),
    commission_service: CommissionService = Depends(Provide[Container.services.commission_service]),
):
    return commission_service.update_commission_config(request, operator_id=admin.id)


@router.post("/referral/settlements", response_model=Optional[CommissionResponse])
@inject
async def admin_settle_order(
    request: OrderSettlementRequest,
    admin: CurrentUser = Depends(require_admin),
    commission_service: CommissionService = Depends(Provide[Container.services.commission_service]),
):
    """결제 완료 주문의 초대 수수료 정산 - 대상이 아니면 null"""
    return commission_service.settle_order_commission(
        request.invitee_id, request.order_id, request.order_amount
    )


@router.get("/referral/payouts", response_model=PaginatedResponse[PayoutResponse])
@inject
async def admin_list_payouts(
    user_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    method: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    admin: CurrentUser = Depends(require_admin),
    payout_service: PayoutService = Depends(Provide[Container.services.payout_service]),
):
    return payout_service.get_payout_requests(
        user_id=user_id, status=status, method=method, limit=limit, offset=offset
    )


@router.put("/referral/payouts/{request_id}/status", response_model=PayoutResponse)
@inject
async def admin_review_payout(
    request: PayoutStatusUpdate,
    request_id: int = Path(..., ge=1),
    admin: CurrentUser = Depends(require_admin),
    payout_service: PayoutService = Depends(Provide[Container.services.payout_service]),
):
    """
    출금 심사 - pending -> approved/rejected, approved -> paid/rejected

    반려 시 예약된 금액이 commission_balance 로 환불됨
    """
    return payout_service.update_payout_request_status(
        request_id, request.status.value, admin.id, request.review_notes
    )
