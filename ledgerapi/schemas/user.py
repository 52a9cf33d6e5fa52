from decimal import Decimal
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from ledgerapi.models.user import UserRole


class CurrentUser(BaseModel):
    """Bearer 토큰에서 복원한 요청 사용자"""

    id: int
    roles: List[str] = Field(default_factory=lambda: [UserRole.USER.value])

    @property
    def is_admin(self) -> bool:
        return any(UserRole.is_admin(role) for role in self.roles)


class User(BaseModel):
    id: int
    username: str
    email: Optional[str] = None
    nickname: Optional[str] = None
    status: str
    role: str
    referral_code: Optional[str] = None
    inviter_id: Optional[int] = None
    invited_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserBalance(BaseModel):
    """사용자 잔액 스냅샷"""

    id: int
    current_points: int
    total_earned: int
    total_spent: int
    commission_balance: Decimal
    commission_pending_balance: Decimal
    total_commission_earned: Decimal

    class Config:
        from_attributes = True
