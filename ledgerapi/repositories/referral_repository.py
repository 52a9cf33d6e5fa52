"""
추천(초대) 관계 / 수수료 / 출금 리포지토리

잔액 이동은 서비스 계층에서 잠긴 User 행을 통해 수행하며,
여기서는 조회/기록과 집계만 담당한다.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import case, desc, func
from sqlalchemy.orm import Session

from ledgerapi.models.referral import (
    CommissionStatus,
    PayoutStatus,
    ReferralCommission as ReferralCommissionModel,
    ReferralPayoutRequest as ReferralPayoutRequestModel,
    ReferralPayoutSetting as ReferralPayoutSettingModel,
    UserReferral as UserReferralModel,
)
from ledgerapi.models.user import User as UserModel
from ledgerapi.repositories.base import BaseRepository
from ledgerapi.schemas.referral import (
    CommissionResponse,
    CommissionSummary,
    InviteeInfo,
    PayoutResponse,
    PayoutSettingResponse,
)

ZERO = Decimal("0")


def _amount_sum(column, status_column=None, statuses=None):
    if statuses is None:
        return func.coalesce(func.sum(column), 0)
    return func.coalesce(
        func.sum(case((status_column.in_(statuses), column), else_=0)), 0
    )


def _to_decimal(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


class ReferralRepository(BaseRepository[UserReferralModel, InviteeInfo]):
    def __init__(self, db: Session):
        super().__init__(UserReferralModel, InviteeInfo, db)

    def get_by_invitee(self, invitee_id: int) -> Optional[UserReferralModel]:
        return (
            self.db.query(UserReferralModel)
            .filter(UserReferralModel.invitee_id == invitee_id)
            .first()
        )

    def count_invitees(self, inviter_id: int) -> int:
        return int(
            self.db.query(func.count(UserReferralModel.id))
            .filter(UserReferralModel.inviter_id == inviter_id)
            .scalar()
            or 0
        )

    def list_invitees(self, inviter_id: int, limit: int, offset: int) -> Tuple[List[InviteeInfo], int]:
        commission = (
            self.db.query(
                ReferralCommissionModel.invitee_id.label("invitee_id"),
                func.sum(ReferralCommissionModel.commission_amount).label("amount"),
            )
            .filter(
                ReferralCommissionModel.inviter_id == inviter_id,
                ReferralCommissionModel.status != CommissionStatus.REJECTED.value,
            )
            .group_by(ReferralCommissionModel.invitee_id)
            .subquery()
        )
        query = (
            self.db.query(UserReferralModel, UserModel, commission.c.amount)
            .join(UserModel, UserModel.id == UserReferralModel.invitee_id)
            .outerjoin(commission, commission.c.invitee_id == UserReferralModel.invitee_id)
            .filter(UserReferralModel.inviter_id == inviter_id)
            .order_by(desc(UserReferralModel.created_at), desc(UserReferralModel.id))
        )
        rows, total = self._paginate(query, limit, offset)
        items = [
            InviteeInfo(
                user_id=user.id,
                username=user.username,
                nickname=user.nickname,
                invited_at=referral.created_at,
                commission_amount=_to_decimal(amount),
            )
            for referral, user, amount in rows
        ]
        return items, total


class CommissionRepository(BaseRepository[ReferralCommissionModel, CommissionResponse]):
    def __init__(self, db: Session):
        super().__init__(ReferralCommissionModel, CommissionResponse, db)

    def exists_for_order(self, order_id: str) -> bool:
        return (
            self.db.query(ReferralCommissionModel.id)
            .filter(ReferralCommissionModel.order_id == order_id)
            .first()
            is not None
        )

    def exists_for_invitee(self, invitee_id: int) -> bool:
        return (
            self.db.query(ReferralCommissionModel.id)
            .filter(ReferralCommissionModel.invitee_id == invitee_id)
            .first()
            is not None
        )

    def list_commissions(
        self,
        limit: int,
        offset: int,
        inviter_id: Optional[int] = None,
        invitee_id: Optional[int] = None,
        status: Optional[str] = None,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
    ) -> Tuple[List[CommissionResponse], int]:
        query = self.db.query(ReferralCommissionModel, UserModel.username).join(
            UserModel, UserModel.id == ReferralCommissionModel.invitee_id
        )
        if inviter_id is not None:
            query = query.filter(ReferralCommissionModel.inviter_id == inviter_id)
        if invitee_id is not None:
            query = query.filter(ReferralCommissionModel.invitee_id == invitee_id)
        if status:
            query = query.filter(ReferralCommissionModel.status == status)
        if start_at is not None:
            query = query.filter(ReferralCommissionModel.created_at >= start_at)
        if end_at is not None:
            query = query.filter(ReferralCommissionModel.created_at <= end_at)
        query = query.order_by(desc(ReferralCommissionModel.id))

        rows, total = self._paginate(query, limit, offset)
        items = []
        for commission, username in rows:
            schema = self._to_schema(commission)
            schema.invitee_username = username
            items.append(schema)
        return items, total

    def get_summary(self, inviter_id: int) -> CommissionSummary:
        amount = ReferralCommissionModel.commission_amount
        status = ReferralCommissionModel.status
        row = (
            self.db.query(
                func.count(ReferralCommissionModel.id),
                _amount_sum(amount, status, [s.value for s in CommissionStatus if s != CommissionStatus.REJECTED]),
                _amount_sum(amount, status, [CommissionStatus.PENDING.value]),
                _amount_sum(amount, status, [CommissionStatus.APPROVED.value]),
                _amount_sum(amount, status, [CommissionStatus.PAID.value]),
                _amount_sum(amount, status, [CommissionStatus.REJECTED.value]),
            )
            .filter(ReferralCommissionModel.inviter_id == inviter_id)
            .one()
        )
        return CommissionSummary(
            total_count=int(row[0]),
            total_amount=_to_decimal(row[1]),
            pending_amount=_to_decimal(row[2]),
            approved_amount=_to_decimal(row[3]),
            paid_amount=_to_decimal(row[4]),
            rejected_amount=_to_decimal(row[5]),
        )


class PayoutRepository(BaseRepository[ReferralPayoutRequestModel, PayoutResponse]):
    def __init__(self, db: Session):
        super().__init__(ReferralPayoutRequestModel, PayoutResponse, db)

    def list_requests(
        self,
        limit: int,
        offset: int,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        method: Optional[str] = None,
    ) -> Tuple[List[PayoutResponse], int]:
        query = self.db.query(ReferralPayoutRequestModel)
        if user_id is not None:
            query = query.filter(ReferralPayoutRequestModel.user_id == user_id)
        if status:
            query = query.filter(ReferralPayoutRequestModel.status == status)
        if method:
            query = query.filter(ReferralPayoutRequestModel.method == method)
        query = query.order_by(desc(ReferralPayoutRequestModel.id))
        items, total = self._paginate(query, limit, offset)
        return self._to_schemas(items), total

    def get_amounts(self, user_id: int) -> Tuple[Decimal, Decimal, Decimal]:
        """(처리 중 = pending+approved, 지급 완료, 반려)"""
        amount = ReferralPayoutRequestModel.amount
        status = ReferralPayoutRequestModel.status
        row = (
            self.db.query(
                _amount_sum(amount, status, [PayoutStatus.PENDING.value, PayoutStatus.APPROVED.value]),
                _amount_sum(amount, status, [PayoutStatus.PAID.value]),
                _amount_sum(amount, status, [PayoutStatus.REJECTED.value]),
            )
            .filter(ReferralPayoutRequestModel.user_id == user_id)
            .one()
        )
        return _to_decimal(row[0]), _to_decimal(row[1]), _to_decimal(row[2])


class PayoutSettingRepository(BaseRepository[ReferralPayoutSettingModel, PayoutSettingResponse]):
    def __init__(self, db: Session):
        super().__init__(ReferralPayoutSettingModel, PayoutSettingResponse, db)

    def get_model(self, user_id: int) -> Optional[ReferralPayoutSettingModel]:
        return self.db.get(ReferralPayoutSettingModel, user_id)
