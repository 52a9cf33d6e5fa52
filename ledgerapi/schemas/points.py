from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime

from ledgerapi.models.points import PointsRecordType


class PointsRecordResponse(BaseModel):
    """포인트 원장 항목"""

    id: int = Field(..., description="원장 항목 ID")
    user_id: int
    amount: int = Field(..., description="포인트 변화량 (부호 있음)")
    balance_before: int = Field(..., description="변동 전 잔액")
    balance_after: int = Field(..., description="변동 후 잔액")
    type: str = Field(..., description="변동 유형")
    source: Optional[str] = None
    description: Optional[str] = None
    related_id: Optional[int] = None
    related_type: Optional[str] = None
    operator_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PointsBalanceResponse(BaseModel):
    """포인트 잔액 응답"""

    user_id: int
    current_points: int = Field(..., description="현재 포인트 잔액")
    total_earned: int
    total_spent: int

    class Config:
        from_attributes = True


class PointsChangeResult(BaseModel):
    """add_points / deduct_points 결과"""

    user_id: int
    amount: int
    balance_before: int
    balance_after: int
    record: PointsRecordResponse


class PointsTransactionRequest(BaseModel):
    """포인트 추가 요청 (관리자)"""

    amount: int = Field(..., gt=0, description="포인트 금액")
    type: PointsRecordType = PointsRecordType.SYSTEM_GRANT
    description: Optional[str] = Field(None, max_length=255)


class AdminPointsAdjustmentRequest(BaseModel):
    """관리자 포인트 조정 요청 - 음수 허용"""

    amount: int = Field(..., description="조정 금액 (0 제외)")
    description: Optional[str] = Field(None, max_length=255)


class AdminPointsAdjustmentResult(BaseModel):
    user_id: int
    requested_amount: int
    applied_amount: int = Field(..., description="0 하한 적용 후 실제 변동량")
    balance_before: int
    balance_after: int
    record_id: Optional[int] = None


class PointsTransferRequest(BaseModel):
    to_user_id: int
    amount: int = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=255)


class PointsTransferResult(BaseModel):
    from_user_id: int
    to_user_id: int
    amount: int
    from_balance_after: int
    to_balance_after: int


class BatchGrantRequest(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    type: PointsRecordType = PointsRecordType.SYSTEM_GRANT
    description: Optional[str] = Field(None, max_length=255)


class BatchGrantItemResult(BaseModel):
    user_id: int
    success: bool
    balance_after: Optional[int] = None
    error: Optional[str] = None


class BatchGrantResult(BaseModel):
    success_count: int
    failure_count: int
    results: List[BatchGrantItemResult]


class PointsTypeStatistics(BaseModel):
    type: str
    count: int
    total_earned: int
    total_spent: int


class PointsStatisticsResponse(BaseModel):
    by_type: List[PointsTypeStatistics]
    total_earned: int
    total_spent: int


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    username: str
    nickname: Optional[str] = None
    value: int


class UserRankResponse(BaseModel):
    user_id: int
    kind: str
    rank: Optional[int] = None
    value: int


class PointsIntegrityCheckResponse(BaseModel):
    """원장 합계 vs current_points 정합성 검증"""

    user_id: Optional[int] = None
    status: str = Field(..., description="OK | MISMATCH")
    current_points: int
    ledger_sum: int
    record_count: int
    mismatched_users: Dict[int, int] = Field(
        default_factory=dict, description="user_id -> 차이 (전체 검증 시)"
    )
