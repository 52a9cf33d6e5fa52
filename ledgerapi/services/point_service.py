from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ledgerapi.core.exceptions import (
    BaseAPIException,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from ledgerapi.database.connection import Database
from ledgerapi.models.points import PointsRecordType
from ledgerapi.repositories.points_repository import LEADERBOARD_COLUMNS, PointsRepository
from ledgerapi.repositories.user_repository import UserRepository
from ledgerapi.schemas.pagination import PaginatedResponse, PaginationLimits
from ledgerapi.schemas.points import (
    AdminPointsAdjustmentResult,
    BatchGrantItemResult,
    BatchGrantResult,
    LeaderboardEntry,
    PointsBalanceResponse,
    PointsChangeResult,
    PointsIntegrityCheckResponse,
    PointsRecordResponse,
    PointsStatisticsResponse,
    PointsTransferResult,
    UserRankResponse,
)
import logging

logger = logging.getLogger(__name__)


class PointService:
    """
    포인트 원장 서비스

    잔액 변경 메서드는 모두 tx 인자를 받는다. tx 가 주어지면 호출자의
    트랜잭션(체크인, 상품 교환 등)에 합류하여 같은 원자 단위로 커밋된다.
    """

    def __init__(self, database: Database):
        self.database = database

    def add_points(
        self,
        user_id: int,
        amount: int,
        type: str,
        description: Optional[str] = None,
        related_id: Optional[int] = None,
        related_type: Optional[str] = None,
        operator_id: Optional[int] = None,
        tx: Optional[Session] = None,
    ) -> PointsChangeResult:
        """포인트 적립 (증가 전용)

        Args:
            user_id: 사용자 ID
            amount: 적립 포인트 (0보다 커야 함)
            type: PointsRecordType 값
            tx: 합류할 트랜잭션

        Returns:
            PointsChangeResult: 변동 전후 잔액과 원장 항목
        """
        if amount <= 0:
            raise ValidationError("积分数量必须大于0")

        with self.database.transaction(tx) as session:
            user = UserRepository(session).lock_by_id(user_id)
            if user is None:
                raise NotFoundError("用户不存在")

            record = PointsRepository(session).apply_change(
                user,
                amount,
                type,
                description=description,
                related_id=related_id,
                related_type=related_type,
                operator_id=operator_id,
            )
            result = self._to_change_result(record)

        logger.info(
            f"Added {amount} points for user {user_id} ({type}), balance {result.balance_after}"
        )
        return result

    def deduct_points(
        self,
        user_id: int,
        points: int,
        source: str,
        description: Optional[str] = None,
        reference_id: Optional[int] = None,
        reference_type: Optional[str] = None,
        operator_id: Optional[int] = None,
        tx: Optional[Session] = None,
    ) -> PointsChangeResult:
        """포인트 차감 - 잔액 부족 시 InsufficientBalanceError, 아무것도 기록하지 않음"""
        if points <= 0:
            raise ValidationError("积分数量必须大于0")

        with self.database.transaction(tx) as session:
            user = UserRepository(session).lock_by_id(user_id)
            if user is None:
                raise NotFoundError("用户不存在")

            if user.current_points < points:
                logger.warning(
                    f"Insufficient points for user {user_id}: has {user.current_points}, needs {points}"
                )
                raise InsufficientBalanceError(
                    "积分余额不足",
                    details={"current_points": int(user.current_points), "required": points},
                )

            record = PointsRepository(session).apply_change(
                user,
                -points,
                source,
                description=description,
                related_id=reference_id,
                related_type=reference_type,
                operator_id=operator_id,
            )
            result = self._to_change_result(record)

        logger.info(
            f"Deducted {points} points from user {user_id} ({source}), balance {result.balance_after}"
        )
        return result

    def admin_adjust_points(
        self,
        user_id: int,
        amount: int,
        description: Optional[str] = None,
        admin_id: Optional[int] = None,
    ) -> AdminPointsAdjustmentResult:
        """관리자 조정 - 음수 조정은 잔액 0 에서 멈추고, 원장에는 실제 적용된 변동량을 기록"""
        if amount == 0:
            raise ValidationError("调整积分不能为0")

        with self.database.transaction() as session:
            user = UserRepository(session).lock_by_id(user_id)
            if user is None:
                raise NotFoundError("用户不存在")

            balance_before = int(user.current_points)
            applied = amount if amount > 0 else max(amount, -balance_before)
            record = PointsRepository(session).apply_change(
                user,
                applied,
                PointsRecordType.ADMIN_ADJUST.value,
                description=description or f"管理员调整积分 {amount:+d}",
                operator_id=admin_id,
            )

            result = AdminPointsAdjustmentResult(
                user_id=user_id,
                requested_amount=amount,
                applied_amount=applied,
                balance_before=balance_before,
                balance_after=record.balance_after,
                record_id=record.id,
            )

        logger.info(
            f"Admin {admin_id} adjusted points for user {user_id}: requested {amount}, applied {applied}"
        )
        return result

    def transfer_points(
        self,
        from_user_id: int,
        to_user_id: int,
        amount: int,
        description: Optional[str] = None,
        operator_id: Optional[int] = None,
    ) -> PointsTransferResult:
        """사용자 간 이체 - 한 트랜잭션에서 transfer_out / transfer_in 두 건 기록"""
        if amount <= 0:
            raise ValidationError("积分数量必须大于0")
        if from_user_id == to_user_id:
            raise ValidationError("不能向自己转账")

        with self.database.transaction() as session:
            users = {
                user.id: user
                for user in UserRepository(session).lock_many([from_user_id, to_user_id])
            }
            sender = users.get(from_user_id)
            receiver = users.get(to_user_id)
            if sender is None or receiver is None:
                raise NotFoundError("用户不存在")
            if sender.current_points < amount:
                raise InsufficientBalanceError("积分余额不足")

            points_repo = PointsRepository(session)
            out_record = points_repo.apply_change(
                sender,
                -amount,
                PointsRecordType.TRANSFER_OUT.value,
                description=description or f"转出积分给用户{to_user_id}",
                related_id=to_user_id,
                related_type="user",
                operator_id=operator_id,
            )
            in_record = points_repo.apply_change(
                receiver,
                amount,
                PointsRecordType.TRANSFER_IN.value,
                description=description or f"收到用户{from_user_id}转入积分",
                related_id=from_user_id,
                related_type="user",
                operator_id=operator_id,
            )

        logger.info(f"Transferred {amount} points from user {from_user_id} to {to_user_id}")
        return PointsTransferResult(
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=amount,
            from_balance_after=out_record.balance_after,
            to_balance_after=in_record.balance_after,
        )

    def batch_grant_points(
        self,
        user_ids: List[int],
        amount: int,
        type: str = PointsRecordType.SYSTEM_GRANT.value,
        description: Optional[str] = None,
        operator_id: Optional[int] = None,
    ) -> BatchGrantResult:
        """일괄 지급 - 사용자마다 독립 트랜잭션, 일부 실패해도 나머지는 커밋"""
        results: List[BatchGrantItemResult] = []
        for user_id in dict.fromkeys(user_ids):
            try:
                change = self.add_points(
                    user_id,
                    amount,
                    type,
                    description=description,
                    operator_id=operator_id,
                )
                results.append(
                    BatchGrantItemResult(
                        user_id=user_id, success=True, balance_after=change.balance_after
                    )
                )
            except BaseAPIException as e:
                results.append(BatchGrantItemResult(user_id=user_id, success=False, error=e.message))

        success_count = sum(1 for r in results if r.success)
        logger.info(
            f"Batch grant {amount} points: {success_count} succeeded, {len(results) - success_count} failed"
        )
        return BatchGrantResult(
            success_count=success_count,
            failure_count=len(results) - success_count,
            results=results,
        )

    def get_user_points(self, user_id: int) -> PointsBalanceResponse:
        with self.database.transaction() as session:
            user = UserRepository(session).get_model(user_id)
            if user is None:
                raise NotFoundError("用户不存在")
            return PointsBalanceResponse(
                user_id=user.id,
                current_points=user.current_points,
                total_earned=user.total_earned,
                total_spent=user.total_spent,
            )

    def get_points_records(
        self,
        user_id: int,
        limit: Optional[int] = None,
        offset: int = 0,
        type: Optional[str] = None,
    ) -> PaginatedResponse[PointsRecordResponse]:
        limit = PaginationLimits.clamp(PaginationLimits.POINTS_RECORDS, limit)
        with self.database.transaction() as session:
            items, total = PointsRepository(session).get_user_records(
                user_id, limit, offset, type=type
            )
        return PaginatedResponse[PointsRecordResponse].of(items, total, limit, offset)

    def get_points_statistics(
        self,
        user_id: Optional[int] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> PointsStatisticsResponse:
        with self.database.transaction() as session:
            by_type = PointsRepository(session).get_statistics(user_id, date_from, date_to)
        return PointsStatisticsResponse(
            by_type=by_type,
            total_earned=sum(s.total_earned for s in by_type),
            total_spent=sum(s.total_spent for s in by_type),
        )

    def get_leaderboard(
        self, kind: str = "current_points", limit: Optional[int] = None
    ) -> List[LeaderboardEntry]:
        if kind not in LEADERBOARD_COLUMNS:
            raise ValidationError(f"不支持的排行榜类型: {kind}")
        limit = PaginationLimits.clamp(PaginationLimits.LEADERBOARD, limit)
        with self.database.transaction() as session:
            return PointsRepository(session).get_leaderboard(kind, limit)

    def get_user_rank(self, user_id: int, kind: str = "current_points") -> UserRankResponse:
        if kind not in LEADERBOARD_COLUMNS:
            raise ValidationError(f"不支持的排行榜类型: {kind}")
        with self.database.transaction() as session:
            user = UserRepository(session).get_model(user_id)
            if user is None:
                raise NotFoundError("用户不存在")
            value = int(getattr(user, kind))
            # 0 점 사용자는 순위 없음
            rank = PointsRepository(session).get_user_rank(user, kind) if value > 0 else None
        return UserRankResponse(user_id=user_id, kind=kind, rank=rank, value=value)

    def verify_integrity_for_user(self, user_id: int) -> PointsIntegrityCheckResponse:
        """current_points == SUM(amount) 검증"""
        with self.database.transaction() as session:
            user = UserRepository(session).get_model(user_id)
            if user is None:
                raise NotFoundError("用户不存在")
            ledger_sum, count = PointsRepository(session).get_ledger_summary(user_id)
            current = int(user.current_points)

        status = "OK" if current == ledger_sum else "MISMATCH"
        if status != "OK":
            logger.error(
                f"Points integrity mismatch for user {user_id}: balance {current}, ledger {ledger_sum}"
            )
        return PointsIntegrityCheckResponse(
            user_id=user_id,
            status=status,
            current_points=current,
            ledger_sum=ledger_sum,
            record_count=count,
        )

    def verify_global_integrity(self) -> PointsIntegrityCheckResponse:
        with self.database.transaction() as session:
            points_repo = PointsRepository(session)
            total_points, ledger_sum, count = points_repo.get_global_totals()
            mismatched = points_repo.find_mismatched_users()

        status = "OK" if not mismatched and total_points == ledger_sum else "MISMATCH"
        if status != "OK":
            logger.error(f"Global points integrity mismatch: {len(mismatched)} users")
        return PointsIntegrityCheckResponse(
            status=status,
            current_points=total_points,
            ledger_sum=ledger_sum,
            record_count=count,
            mismatched_users=mismatched,
        )

    @staticmethod
    def _to_change_result(record) -> PointsChangeResult:
        return PointsChangeResult(
            user_id=record.user_id,
            amount=record.amount,
            balance_before=record.balance_before,
            balance_after=record.balance_after,
            record=PointsRecordResponse.model_validate(record),
        )
