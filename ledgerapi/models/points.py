"""
포인트 시스템 데이터 모델

사용자 포인트의 모든 변동을 기록하는 원장 테이블.
users.current_points 의 모든 변경은 정확히 한 건의 PointsRecord 와 함께 커밋된다.
"""

import enum

from sqlalchemy import BigInteger, Column, ForeignKey, Index, String, Text
from ledgerapi.models.base import BaseModel, BigIntegerId


class PointsRecordType(str, enum.Enum):
    CHECKIN = "checkin"
    MAKEUP_CHECKIN = "makeup_checkin"
    RESOURCE_DOWNLOAD = "resource_download"
    ADMIN_ADJUST = "admin_adjust"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    CARD_REDEEM = "card_redeem"
    PURCHASE = "purchase"
    POINTS_MALL = "points_mall"
    SYSTEM_GRANT = "system_grant"


class PointsRecord(BaseModel):
    """
    포인트 원장 - 추가만 가능(Append-only), 수정/삭제 없음

    - amount: 부호 있는 변동량
    - balance_before / balance_after: 변동 전후 잔액 (재생 검증용)
    - related_id / related_type: 변동 원인 엔티티 (체크인 기록, 교환 기록 등)
    """

    __tablename__ = "points_records"
    __table_args__ = (
        Index("idx_points_records_user_created", "user_id", "created_at"),
        Index("idx_points_records_type", "type"),
    )

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    user_id = Column(BigIntegerId, ForeignKey("users.id"), nullable=False)

    # 양수면 증가, 음수면 감소
    amount = Column(BigInteger, nullable=False)
    balance_before = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)

    type = Column(String(32), nullable=False)
    source = Column(String(64), nullable=True)
    description = Column(Text, nullable=True)

    related_id = Column(BigInteger, nullable=True)
    related_type = Column(String(64), nullable=True)

    # 관리자 조정/이체 시 처리자
    operator_id = Column(BigInteger, nullable=True)
