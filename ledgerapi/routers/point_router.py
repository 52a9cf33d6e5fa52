"""
포인트 API 라우터

사용자용 엔드포인트:
- GET /points/balance: 내 포인트 잔액
- GET /points/records: 내 포인트 원장 (페이지네이션)
- GET /points/statistics: 내 유형별 적립/사용 통계
- GET /points/leaderboard: 포인트 랭킹
- GET /points/rank: 내 순위
- GET /points/integrity: 내 잔액 정합성 검증
- POST /points/transfer: 다른 사용자에게 이체

관리자용 엔드포인트는 admin_router 참고
"""

from datetime import datetime
from typing import List, Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Query

from ledgerapi.containers import Container
from ledgerapi.core.auth_middleware import get_current_user
from ledgerapi.schemas.pagination import PaginatedResponse
from ledgerapi.schemas.points import (
    LeaderboardEntry,
    PointsBalanceResponse,
    PointsIntegrityCheckResponse,
    PointsRecordResponse,
    PointsStatisticsResponse,
    PointsTransferRequest,
    PointsTransferResult,
    UserRankResponse,
)
from ledgerapi.schemas.user import CurrentUser
from ledgerapi.services.point_service import PointService

router = APIRouter(prefix="/points", tags=["points"])


@router.get("/balance", response_model=PointsBalanceResponse)
@inject
async def get_my_balance(
    current_user: CurrentUser = Depends(get_current_user),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
) -> PointsBalanceResponse:
    """
    내 포인트 잔액 조회

    인증 필요: Bearer 토큰

    HTTP Status:
        200: 성공
        401: 인증 실패
        404: 사용자 없음
    """
    return point_service.get_user_points(current_user.id)


@router.get("/records", response_model=PaginatedResponse[PointsRecordResponse])
@inject
async def get_my_records(
    limit: Optional[int] = Query(None, description="페이지 크기 (1-100)"),
    offset: int = Query(0, ge=0, description="오프셋"),
    type: Optional[str] = Query(None, description="변동 유형 필터"),
    current_user: CurrentUser = Depends(get_current_user),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    """
    내 포인트 원장 조회 - 최신순

    Query Parameters:
        limit: 범위를 벗어나면 보정됨 (기본 20)
        offset: 건너뛸 항목 수
        type: checkin, points_mall 등
    """
    return point_service.get_points_records(current_user.id, limit, offset, type=type)


@router.get("/statistics", response_model=PointsStatisticsResponse)
@inject
async def get_my_statistics(
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    """내 유형별 포인트 통계"""
    return point_service.get_points_statistics(current_user.id, date_from, date_to)


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
@inject
async def get_leaderboard(
    kind: str = Query("current_points", description="current_points | total_earned"),
    limit: Optional[int] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    return point_service.get_leaderboard(kind, limit)


@router.get("/rank", response_model=UserRankResponse)
@inject
async def get_my_rank(
    kind: str = Query("current_points"),
    current_user: CurrentUser = Depends(get_current_user),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    """내 순위 - 0 점이면 rank 는 null"""
    return point_service.get_user_rank(current_user.id, kind)


@router.get("/integrity", response_model=PointsIntegrityCheckResponse)
@inject
async def verify_my_integrity(
    current_user: CurrentUser = Depends(get_current_user),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    """current_points 와 원장 합계 비교"""
    return point_service.verify_integrity_for_user(current_user.id)


@router.post("/transfer", response_model=PointsTransferResult)
@inject
async def transfer_points(
    request: PointsTransferRequest,
    current_user: CurrentUser = Depends(get_current_user),
    point_service: PointService = Depends(Provide[Container.services.point_service]),
):
    """
    포인트 이체

    HTTP Status:
        200: 성공
        400: 잔액 부족 또는 자기 자신에게 이체
        404: 수신자 없음
    """
    return point_service.transfer_points(
        current_user.id,
        request.to_user_id,
        request.amount,
        description=request.description,
        operator_id=current_user.id,
    )
