from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ledgerapi.schemas.points import PointsChangeResult


def _normalize_bonus(value: Dict[str, int]) -> Dict[str, int]:
    for key, bonus in value.items():
        if not str(key).isdigit() or int(key) <= 0:
            raise ValueError(f"连续天数必须为正整数: {key}")
        if bonus < 0:
            raise ValueError("奖励积分不能为负数")
    return {str(key): bonus for key, bonus in value.items()}


class CheckinConfigBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    daily_points: int = Field(..., ge=0, description="기본 체크인 포인트")
    consecutive_bonus: Dict[str, int] = Field(
        default_factory=dict, description='연속 일수 -> 보너스, 예: {"7": 20}'
    )
    monthly_reset: bool = False
    is_active: bool = True

    @field_validator("consecutive_bonus")
    @classmethod
    def validate_bonus(cls, value: Dict[str, int]) -> Dict[str, int]:
        return _normalize_bonus(value)


class CheckinConfigCreate(CheckinConfigBase):
    roles: List[str] = Field(default_factory=list, description="비어 있으면 모든 역할")


class CheckinConfigUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    daily_points: Optional[int] = Field(None, ge=0)
    consecutive_bonus: Optional[Dict[str, int]] = None
    monthly_reset: Optional[bool] = None
    is_active: Optional[bool] = None
    roles: Optional[List[str]] = None

    @field_validator("consecutive_bonus")
    @classmethod
    def validate_bonus(cls, value: Optional[Dict[str, int]]) -> Optional[Dict[str, int]]:
        if value is None:
            return value
        return _normalize_bonus(value)


class CheckinConfigResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    daily_points: int
    consecutive_bonus: Dict[str, int]
    monthly_reset: bool
    is_active: bool
    created_by: Optional[int] = None
    roles: List[str] = Field(default_factory=list, validation_alias="role_names")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CheckinRecordResponse(BaseModel):
    id: int
    user_id: int
    config_id: Optional[int] = None
    checkin_date: date
    points_earned: int
    bonus_points: int
    consecutive_days: int
    is_bonus: bool
    is_makeup: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CheckinResult(BaseModel):
    """체크인 결과"""

    checkin: CheckinRecordResponse
    base_points: int
    bonus_points: int
    total_points: int
    consecutive_days: int
    points: Optional[PointsChangeResult] = None


class TodayCheckinStatus(BaseModel):
    checked_in: bool
    checkin: Optional[CheckinRecordResponse] = None
    consecutive_days: int


class UserCheckinStats(BaseModel):
    total_checkins: int
    total_points_earned: int
    max_consecutive_days: int
    bonus_count: int
    first_checkin_date: Optional[date] = None
    last_checkin_date: Optional[date] = None
    current_consecutive_days: int
    checked_in_today: bool


class CheckinLeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    username: str
    nickname: Optional[str] = None
    value: int
    last_checkin_date: Optional[date] = None


class CheckinStatistics(BaseModel):
    unique_users: int
    total_checkins: int
    total_points_distributed: int
    bonus_checkins: int
    avg_consecutive_days: float
    max_consecutive_days: int


class MakeupCheckinRequest(BaseModel):
    user_id: int
    checkin_date: date


class ConfigRoleRequest(BaseModel):
    role_name: str = Field(..., min_length=1, max_length=20)
