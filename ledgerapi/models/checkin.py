from datetime import date
from typing import Dict, Optional

from sqlalchemy import BigInteger, Boolean, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.schema import UniqueConstraint

from ledgerapi.models.base import BaseModel, BigIntegerId, JSONType


class CheckinConfig(BaseModel):
    """체크인 규칙 - 역할 바인딩이 없으면 모든 사용자에게 적용"""

    __tablename__ = "checkin_configs"

    id: Mapped[int] = mapped_column(BigIntegerId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    daily_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # {"7": 20, "30": 100} - 연속 일수 -> 보너스
    consecutive_bonus: Mapped[Dict[str, int]] = mapped_column(
        JSONType, default=dict, nullable=False
    )
    monthly_reset: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    roles = relationship(
        "CheckinConfigRole",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CheckinConfigRole.id",
    )

    @property
    def role_names(self):
        return [role.role_name for role in self.roles]


class CheckinConfigRole(BaseModel):
    __tablename__ = "checkin_config_roles"
    __table_args__ = (
        UniqueConstraint("checkin_config_id", "role_name", name="uq_checkin_config_role"),
    )

    id: Mapped[int] = mapped_column(BigIntegerId, primary_key=True, autoincrement=True)
    checkin_config_id: Mapped[int] = mapped_column(
        BigIntegerId, ForeignKey("checkin_configs.id", ondelete="CASCADE"), nullable=False
    )
    role_name: Mapped[str] = mapped_column(String(20), nullable=False)


class UserCheckin(BaseModel):
    """
    체크인 기록 - 사용자/날짜당 1건 (유니크 제약이 최종 보장)

    points_earned 는 기본 포인트, bonus_points 는 연속 보너스
    """

    __tablename__ = "user_checkins"
    __table_args__ = (
        UniqueConstraint("user_id", "checkin_date", name="uq_user_checkin_date"),
        Index("idx_user_checkins_date", "checkin_date"),
    )

    id: Mapped[int] = mapped_column(BigIntegerId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigIntegerId, ForeignKey("users.id"), nullable=False
    )
    config_id: Mapped[Optional[int]] = mapped_column(
        BigIntegerId, ForeignKey("checkin_configs.id", ondelete="SET NULL"), nullable=True
    )
    checkin_date: Mapped[date] = mapped_column(Date, nullable=False)
    points_earned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    bonus_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    consecutive_days: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_bonus: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_makeup: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
