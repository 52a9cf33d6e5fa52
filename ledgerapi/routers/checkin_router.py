"""
일일 체크인 API 라우터

- POST /checkin: 오늘 체크인 (연속 보너스 포함)
- GET /checkin/today: 오늘 체크인 여부와 연속 일수
- GET /checkin/history: 내 체크인 이력
- GET /checkin/stats: 내 체크인 통계
- GET /checkin/leaderboard: consecutive | total | monthly 랭킹
- GET /checkin/config: 내 역할에 적용되는 체크인 규칙
"""

from datetime import date
from typing import List, Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Query

from ledgerapi.containers import Container
from ledgerapi.core.auth_middleware import get_current_user
from ledgerapi.schemas.checkin import (
    CheckinConfigResponse,
    CheckinLeaderboardEntry,
    CheckinRecordResponse,
    CheckinResult,
    TodayCheckinStatus,
    UserCheckinStats,
)
from ledgerapi.schemas.pagination import PaginatedResponse
from ledgerapi.schemas.user import CurrentUser
from ledgerapi.services.checkin_service import CheckinService

router = APIRouter(prefix="/checkin", tags=["checkin"])


@router.post("", response_model=CheckinResult)
@inject
async def perform_checkin(
    current_user: CurrentUser = Depends(get_current_user),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    """
    오늘 체크인

    HTTP Status:
        200: 체크인 성공, 포인트 적립
        400: 이미 체크인함 (CHECKIN_001) 또는 적용 가능한 규칙 없음
        401: 인증 실패
    """
    return checkin_service.perform_checkin(current_user.id, current_user.roles)


@router.get("/today", response_model=TodayCheckinStatus)
@inject
async def get_today_status(
    current_user: CurrentUser = Depends(get_current_user),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    return checkin_service.get_today_status(current_user.id)


@router.get("/history", response_model=PaginatedResponse[CheckinRecordResponse])
@inject
async def get_checkin_history(
    limit: Optional[int] = Query(None, description="페이지 크기 (기본 30)"),
    offset: int = Query(0, ge=0),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    """내 체크인 이력 - 날짜 내림차순"""
    return checkin_service.get_checkin_history(
        current_user.id, limit, offset, date_from=date_from, date_to=date_to
    )


@router.get("/stats", response_model=UserCheckinStats)
@inject
async def get_my_checkin_stats(
    current_user: CurrentUser = Depends(get_current_user),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    return checkin_service.get_user_checkin_stats(current_user.id)


@router.get("/leaderboard", response_model=List[CheckinLeaderboardEntry])
@inject
async def get_checkin_leaderboard(
    kind: str = Query("consecutive", description="consecutive | total | monthly"),
    limit: Optional[int] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    return checkin_service.get_leaderboard(kind, limit)


@router.get("/config", response_model=Optional[CheckinConfigResponse])
@inject
async def get_my_checkin_config(
    current_user: CurrentUser = Depends(get_current_user),
    checkin_service: CheckinService = Depends(Provide[Container.services.checkin_service]),
):
    """내 역할에 적용되는 규칙 (없으면 null)"""
    return checkin_service.get_available_config(current_user.roles)
