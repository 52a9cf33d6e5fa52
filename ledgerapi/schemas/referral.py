from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ledgerapi.models.referral import CommissionEventType, CommissionStatus, PayoutMethod, PayoutStatus


class CommissionConfig(BaseModel):
    """system_settings.referral_commission"""

    enabled: bool = True
    first_rate: float = Field(0.10, ge=0, le=1, description="첫 충전 수수료율")
    renewal_rate: float = Field(0.0, ge=0, le=1, description="갱신 수수료율")


class CommissionCreate(BaseModel):
    inviter_id: int
    invitee_id: int
    order_id: str = Field(..., min_length=1, max_length=64)
    order_amount: Decimal = Field(..., ge=0)
    commission_amount: Decimal = Field(..., ge=0)
    commission_rate: Decimal = Field(..., ge=0, le=1)
    event_type: CommissionEventType = CommissionEventType.FIRST_RECHARGE


class OrderSettlementRequest(BaseModel):
    invitee_id: int
    order_id: str = Field(..., min_length=1, max_length=64)
    order_amount: Decimal = Field(..., gt=0)


class CommissionResponse(BaseModel):
    id: int
    inviter_id: int
    invitee_id: int
    order_id: str
    order_amount: Decimal
    commission_amount: Decimal
    commission_rate: Decimal
    event_type: str
    status: str
    review_notes: Optional[str] = None
    settled_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    invitee_username: Optional[str] = None

    class Config:
        from_attributes = True


class CommissionStatusUpdate(BaseModel):
    status: CommissionStatus
    review_notes: Optional[str] = Field(None, max_length=500)


class CommissionSummary(BaseModel):
    total_count: int
    total_amount: Decimal
    pending_amount: Decimal
    approved_amount: Decimal
    paid_amount: Decimal
    rejected_amount: Decimal


class PayoutSettingUpdate(BaseModel):
    method: PayoutMethod
    account: str = Field(..., min_length=1, max_length=255)
    account_name: Optional[str] = Field(None, max_length=100)
    usdt_network: Optional[str] = Field(None, max_length=20)


class PayoutSettingResponse(BaseModel):
    user_id: int
    method: str
    account: str
    account_name: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None
    updated_by: Optional[int] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PayoutCreate(BaseModel):
    amount: Decimal = Field(..., description="출금 금액")
    method: Optional[PayoutMethod] = None
    account: Optional[str] = Field(None, max_length=255)
    account_name: Optional[str] = Field(None, max_length=100)
    usdt_network: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = Field(None, max_length=500)


class PayoutResponse(BaseModel):
    id: int
    user_id: int
    amount: Decimal
    method: str
    account: str
    account_name: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None
    status: str
    requested_notes: Optional[str] = None
    review_notes: Optional[str] = None
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PayoutStatusUpdate(BaseModel):
    status: PayoutStatus
    review_notes: Optional[str] = Field(None, max_length=500)


class PayoutSummary(BaseModel):
    commission_balance: Decimal
    processing_amount: Decimal = Field(..., description="pending + approved")
    paid_amount: Decimal
    rejected_amount: Decimal


class BindInviterRequest(BaseModel):
    referral_code: str = Field(..., min_length=1, max_length=16)


class InviterInfo(BaseModel):
    inviter_id: int
    username: str
    nickname: Optional[str] = None
    referral_code: Optional[str] = None
    invited_at: Optional[datetime] = None


class InviteeInfo(BaseModel):
    user_id: int
    username: str
    nickname: Optional[str] = None
    invited_at: Optional[datetime] = None
    commission_amount: Decimal = Decimal("0")


class InviteStats(BaseModel):
    invite_count: int
    commission_balance: Decimal
    commission_pending_balance: Decimal
    total_commission_earned: Decimal
    payout_processing_amount: Decimal
    payout_paid_amount: Decimal


class ReferralCodeResponse(BaseModel):
    user_id: int
    referral_code: str


class ReferralDashboard(BaseModel):
    referral_code: Optional[str] = None
    stats: InviteStats
    commission_summary: CommissionSummary
    invitees: List[InviteeInfo]
    inviter: Optional[InviterInfo] = None
    payout_setting: Optional[PayoutSettingResponse] = None
