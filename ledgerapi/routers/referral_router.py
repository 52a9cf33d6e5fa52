"""
초대 / 수수료 / 출금 API 라우터 (사용자용)
"""

from typing import Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Query

from ledgerapi.containers import Container
from ledgerapi.core.auth_middleware import get_current_user
from ledgerapi.schemas.pagination import PaginatedResponse
from ledgerapi.schemas.referral import (
    BindInviterRequest,
    CommissionResponse,
    CommissionSummary,
    InviteeInfo,
    InviterInfo,
    InviteStats,
    PayoutCreate,
    PayoutResponse,
    PayoutSettingResponse,
    PayoutSettingUpdate,
    PayoutSummary,
    ReferralCodeResponse,
    ReferralDashboard,
)
from ledgerapi.schemas.user import CurrentUser
from ledgerapi.services.commission_service import CommissionService
from ledgerapi.services.payout_service import PayoutService
from ledgerapi.services.referral_service import ReferralService

router = APIRouter(prefix="/referral", tags=["referral"])


@router.get("/dashboard", response_model=ReferralDashboard)
@inject
async def get_dashboard(
    current_user: CurrentUser = Depends(get_current_user),
    referral_service: ReferralService = Depends(Provide[Container.services.referral_service]),
):
    """초대 코드, 통계, 최근 피초대자, 상위 초대자, 출금 계좌를 한 번에 조회"""
    return referral_service.get_referral_dashboard(current_user.id)


@router.post("/code", response_model=ReferralCodeResponse)
@inject
async def generate_code(
    force: bool = Query(False, description="기존 코드가 있어도 새로 발급"),
    current_user: CurrentUser = Depends(get_current_user),
    referral_service: ReferralService = Depends(Provide[Container.services.referral_service]),
):
    return referral_service.ensure_code(current_user.id, force_new=force)


@router.get("/validate", response_model=Optional[InviterInfo])
@inject
async def validate_code(
    code: str = Query(..., min_length=1),
    referral_service: ReferralService = Depends(Provide[Container.services.referral_service]),
):
    """가입 전 초대 코드 검증 - 인증 불필요"""
    return referral_service.validate_referral_code(code)


@router.post("/bind", response_model=InviterInfo)
@inject
async def bind_inviter(
    request: BindInviterRequest,
    current_user: CurrentUser = Depends(get_current_user),
    referral_service: ReferralService = Depends(Provide[Container.services.referral_service]),
):
    """
    상위 초대자 연결

    HTTP Status:
        200: 연결 성공
        400: 자기 자신의 코드
        404: 존재하지 않는 코드
        409: 이미 연결됨
    """
    return referral_service.bind_inviter(current_user.id, request.referral_code)


@router.get("/stats", response_model=InviteStats)
@inject
async def get_invite_stats(
    current_user: CurrentUser = Depends(get_current_user),
    referral_service: ReferralService = Depends(Provide[Container.services.referral_service]),
):
    return referral_service.get_invite_stats(current_user.id)


@router.get("/invitees", response_model=PaginatedResponse[InviteeInfo])
@inject
async def list_invitees(
    limit: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    referral_service: ReferralService = Depends(Provide[Container.services.referral_service]),
):
    return referral_service.list_invitees(current_user.id, limit, offset)


@router.get("/commissions", response_model=PaginatedResponse[CommissionResponse])
@inject
async def get_my_commissions(
    status: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    commission_service: CommissionService = Depends(Provide[Container.services.commission_service]),
):
    return commission_service.get_commission_records(
        inviter_id=current_user.id, status=status, limit=limit, offset=offset
    )


@router.get("/commissions/summary", response_model=CommissionSummary)
@inject
async def get_my_commission_summary(
    current_user: CurrentUser = Depends(get_current_user),
    commission_service: CommissionService = Depends(Provide[Container.services.commission_service]),
):
    return commission_service.get_commission_summary(current_user.id)


@router.get("/payout-setting", response_model=Optional[PayoutSettingResponse])
@inject
async def get_payout_setting(
    current_user: CurrentUser = Depends(get_current_user),
    payout_service: PayoutService = Depends(Provide[Container.services.payout_service]),
):
    return payout_service.get_payout_setting(current_user.id)


@router.put("/payout-setting", response_model=PayoutSettingResponse)
@inject
async def update_payout_setting(
    request: PayoutSettingUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    payout_service: PayoutService = Depends(Provide[Container.services.payout_service]),
):
    return payout_service.upsert_payout_setting(current_user.id, request, updated_by=current_user.id)


@router.post("/payouts", response_model=PayoutResponse)
@inject
async def apply_payout(
    request: PayoutCreate,
    current_user: CurrentUser = Depends(get_current_user),
    payout_service: PayoutService = Depends(Provide[Container.services.payout_service]),
):
    """
    출금 신청 - 신청 즉시 commission_balance 에서 차감(예약)

    method/account 가 없으면 저장된 출금 계좌를 사용
    """
    return payout_service.create_payout_request(current_user.id, request)


@router.get("/payouts", response_model=PaginatedResponse[PayoutResponse])
@inject
async def get_my_payouts(
    status: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    payout_service: PayoutService = Depends(Provide[Container.services.payout_service]),
):
    return payout_service.get_payout_requests(
        user_id=current_user.id, status=status, limit=limit, offset=offset
    )


@router.get("/payouts/summary", response_model=PayoutSummary)
@inject
async def get_my_payout_summary(
    current_user: CurrentUser = Depends(get_current_user),
    payout_service: PayoutService = Depends(Provide[Container.services.payout_service]),
):
    return payout_service.get_payout_summary(current_user.id)
