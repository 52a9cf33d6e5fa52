import enum
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ledgerapi.models.base import BaseModel, BigIntegerId, JSONType


class CommissionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class CommissionEventType(str, enum.Enum):
    FIRST_RECHARGE = "first_recharge"
    RENEWAL = "renewal"


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class PayoutMethod(str, enum.Enum):
    ALIPAY = "alipay"
    USDT = "usdt"


class UserReferral(BaseModel):
    """초대 관계 - 피초대자당 1건"""

    __tablename__ = "user_referrals"

    id: Mapped[int] = mapped_column(BigIntegerId, primary_key=True, autoincrement=True)
    inviter_id: Mapped[int] = mapped_column(
        BigIntegerId, ForeignKey("users.id"), nullable=False, index=True
    )
    invitee_id: Mapped[int] = mapped_column(
        BigIntegerId, ForeignKey("users.id"), nullable=False, unique=True
    )
    referral_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)


class ReferralCommission(BaseModel):
    """
    추천 수수료 원장

    order_id 유니크 인덱스가 주문당 1건을 최종 보장.
    상태 전이에 따라 초대자의 commission_balance / commission_pending_balance 가 이동.
    """

    __tablename__ = "referral_commissions"
    __table_args__ = (
        Index("idx_referral_commissions_inviter_status", "inviter_id", "status"),
        Index("idx_referral_commissions_invitee", "invitee_id"),
    )

    id: Mapped[int] = mapped_column(BigIntegerId, primary_key=True, autoincrement=True)
    inviter_id: Mapped[int] = mapped_column(
        BigIntegerId, ForeignKey("users.id"), nullable=False
    )
    invitee_id: Mapped[int] = mapped_column(
        BigIntegerId, ForeignKey("users.id"), nullable=False
    )
    order_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    order_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=CommissionStatus.PENDING.value, nullable=False
    )
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    settled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class ReferralPayoutRequest(BaseModel):
    """출금 신청 - 생성 시 commission_balance 에서 금액을 예약(차감)"""

    __tablename__ = "referral_payout_requests"
    __table_args__ = (Index("idx_payout_requests_user_status", "user_id", "status"),)

    id: Mapped[int] = mapped_column(BigIntegerId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigIntegerId, ForeignKey("users.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    account: Mapped[str] = mapped_column(String(255), nullable=False)
    account_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    extra: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=PayoutStatus.PENDING.value, nullable=False
    )
    requested_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class ReferralPayoutSetting(BaseModel):
    """사용자별 기본 출금 계좌"""

    __tablename__ = "referral_payout_settings"

    user_id: Mapped[int] = mapped_column(
        BigIntegerId, ForeignKey("users.id"), primary_key=True
    )
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    account: Mapped[str] = mapped_column(String(255), nullable=False)
    account_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    extra: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    updated_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
