"""
포인트 리포지토리 - 원장 기록 및 집계

핵심 특징:
- 잔액 변경은 반드시 잠긴(FOR UPDATE) User 인스턴스를 통해서만 수행
- 모든 변경마다 balance_before / balance_after 를 가진 원장 1건 추가
- current_points == SUM(points_records.amount) 검증 쿼리 제공
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import case, desc, func
from sqlalchemy.orm import Session

from ledgerapi.models.points import PointsRecord as PointsRecordModel
from ledgerapi.models.user import User as UserModel
from ledgerapi.repositories.base import BaseRepository
from ledgerapi.schemas.points import (
    LeaderboardEntry,
    PointsRecordResponse,
    PointsTypeStatistics,
)

LEADERBOARD_COLUMNS = {
    "current_points": UserModel.current_points,
    "total_earned": UserModel.total_earned,
}


class PointsRepository(BaseRepository[PointsRecordModel, PointsRecordResponse]):
    """포인트 원장 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(PointsRecordModel, PointsRecordResponse, db)

    def apply_change(
        self,
        user: UserModel,
        amount: int,
        type: str,
        description: Optional[str] = None,
        related_id: Optional[int] = None,
        related_type: Optional[str] = None,
        operator_id: Optional[int] = None,
        source: Optional[str] = None,
    ) -> PointsRecordModel:
        """
        잠긴 사용자 행의 잔액을 변경하고 원장 1건을 추가

        Args:
            user: with_for_update 로 조회된 사용자
            amount: 부호 있는 변동량. 잔액 하한 검증은 호출자 책임
        """
        balance_before = int(user.current_points or 0)
        balance_after = balance_before + amount

        user.current_points = balance_after
        if amount > 0:
            user.total_earned = int(user.total_earned or 0) + amount
        elif amount < 0:
            user.total_spent = int(user.total_spent or 0) - amount

        record = PointsRecordModel(
            user_id=user.id,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            type=type,
            source=source or type,
            description=description,
            related_id=related_id,
            related_type=related_type,
            operator_id=operator_id,
        )
        self.db.add(record)
        self.db.flush()
        self.db.refresh(record)
        return record

    def get_user_records(
        self,
        user_id: int,
        limit: int,
        offset: int,
        type: Optional[str] = None,
    ) -> Tuple[List[PointsRecordResponse], int]:
        query = self.db.query(PointsRecordModel).filter(
            PointsRecordModel.user_id == user_id
        )
        if type:
            query = query.filter(PointsRecordModel.type == type)
        query = query.order_by(desc(PointsRecordModel.id))
        items, total = self._paginate(query, limit, offset)
        return self._to_schemas(items), total

    def get_statistics(
        self,
        user_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> List[PointsTypeStatistics]:
        """유형별 건수 / 적립 / 사용 합계"""
        earned = func.coalesce(
            func.sum(case((PointsRecordModel.amount > 0, PointsRecordModel.amount), else_=0)), 0
        )
        spent = func.coalesce(
            func.sum(case((PointsRecordModel.amount < 0, -PointsRecordModel.amount), else_=0)), 0
        )
        query = self.db.query(
            PointsRecordModel.type,
            func.count(PointsRecordModel.id),
            earned,
            spent,
        )
        if user_id is not None:
            query = query.filter(PointsRecordModel.user_id == user_id)
        if date_from is not None:
            query = query.filter(PointsRecordModel.created_at >= date_from)
        if date_to is not None:
            query = query.filter(PointsRecordModel.created_at <= date_to)

        rows = query.group_by(PointsRecordModel.type).order_by(PointsRecordModel.type).all()
        return [
            PointsTypeStatistics(
                type=row[0], count=int(row[1]), total_earned=int(row[2]), total_spent=int(row[3])
            )
            for row in rows
        ]

    def get_leaderboard(self, kind: str, limit: int) -> List[LeaderboardEntry]:
        column = LEADERBOARD_COLUMNS[kind]
        users = (
            self.db.query(UserModel)
            .filter(column > 0)
            .order_by(desc(column), UserModel.id.asc())
            .limit(limit)
            .all()
        )
        return [
            LeaderboardEntry(
                rank=index + 1,
                user_id=user.id,
                username=user.username,
                nickname=user.nickname,
                value=int(getattr(user, kind)),
            )
            for index, user in enumerate(users)
        ]

    def get_user_rank(self, user: UserModel, kind: str) -> int:
        column = LEADERBOARD_COLUMNS[kind]
        value = getattr(user, kind)
        higher = self.db.query(func.count(UserModel.id)).filter(column > value).scalar()
        return int(higher or 0) + 1

    def get_ledger_summary(self, user_id: int) -> Tuple[int, int]:
        """(원장 합계, 원장 건수)"""
        row = (
            self.db.query(
                func.coalesce(func.sum(PointsRecordModel.amount), 0),
                func.count(PointsRecordModel.id),
            )
            .filter(PointsRecordModel.user_id == user_id)
            .one()
        )
        return int(row[0]), int(row[1])

    def find_mismatched_users(self) -> Dict[int, int]:
        """current_points 와 원장 합계가 다른 사용자 -> 차이"""
        ledger = (
            self.db.query(
                PointsRecordModel.user_id.label("user_id"),
                func.sum(PointsRecordModel.amount).label("ledger_sum"),
            )
            .group_by(PointsRecordModel.user_id)
            .subquery()
        )
        ledger_sum = func.coalesce(ledger.c.ledger_sum, 0)
        rows = (
            self.db.query(UserModel.id, UserModel.current_points - ledger_sum)
            .outerjoin(ledger, ledger.c.user_id == UserModel.id)
            .filter(UserModel.current_points != ledger_sum)
            .all()
        )
        return {int(row[0]): int(row[1]) for row in rows}

    def get_global_totals(self) -> Tuple[int, int, int]:
        """(전체 current_points, 전체 원장 합계, 원장 건수)"""
        points = self.db.query(func.coalesce(func.sum(UserModel.current_points), 0)).scalar()
        ledger_sum, count = self.db.query(
            func.coalesce(func.sum(PointsRecordModel.amount), 0),
            func.count(PointsRecordModel.id),
        ).one()
        return int(points or 0), int(ledger_sum or 0), int(count or 0)
