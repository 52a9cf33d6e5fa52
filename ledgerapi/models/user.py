from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ledgerapi.models.base import BaseModel, BigIntegerId

"""User role enumeration for role-based access control."""


class UserRole(str, Enum):
    """사용자 역할 정의"""

    USER = "user"  # 일반 사용자
    VIP = "vip"  # 유료 회원
    ADMIN = "admin"  # 관리자
    SUPER_ADMIN = "super_admin"  # 최고 관리자

    @classmethod
    def is_admin(cls, role: Union[str, "UserRole"]) -> bool:
        """관리자 권한 확인"""
        if isinstance(role, cls):
            role = role.value
        return role in [cls.ADMIN.value, cls.SUPER_ADMIN.value]


class UserStatus(str, Enum):
    NORMAL = "normal"
    BANNED = "banned"


class User(BaseModel):
    """
    사용자 테이블 - 잔액 컬럼은 비정규화된 값

    current_points 는 항상 points_records.amount 합계와 같아야 하며,
    모든 잔액 컬럼은 음수가 될 수 없음. 갱신 전 반드시 FOR UPDATE 잠금.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_inviter_id", "inviter_id"),
        Index("idx_users_current_points", "current_points"),
    )

    id: Mapped[int] = mapped_column(BigIntegerId, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    nickname: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=UserStatus.NORMAL.value, nullable=False
    )
    role: Mapped[str] = mapped_column(
        String(20), default=UserRole.USER.value, nullable=False
    )

    # 포인트
    current_points: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_earned: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    total_spent: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    # 추천 수수료 (금액)
    commission_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )  # 출금 가능
    commission_pending_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )  # 심사 대기
    total_commission_earned: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )

    # 추천 관계
    referral_code: Mapped[Optional[str]] = mapped_column(
        String(16), unique=True, nullable=True
    )
    inviter_id: Mapped[Optional[int]] = mapped_column(
        BigIntegerId, ForeignKey("users.id"), nullable=True
    )
    invited_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, points={self.current_points})>"

    @property
    def is_admin(self) -> bool:
        return UserRole.is_admin(str(self.role))
