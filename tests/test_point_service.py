import pytest

from ledgerapi.core.exceptions import (
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from ledgerapi.models.points import PointsRecordType


class TestPointService:
    """PointService 테스트 - 잔액과 원장 합계는 항상 일치"""

    def test_add_points_writes_ledger(self, point_service, alice):
        """적립 시 잔액/누적 적립/원장 1건"""
        # When
        result = point_service.add_points(alice, 100, PointsRecordType.SYSTEM_GRANT.value, description="grant")

        # Then
        assert result.balance_before == 0
        assert result.balance_after == 100
        assert result.record.amount == 100
        balance = point_service.get_user_points(alice)
        assert balance.current_points == 100
        assert balance.total_earned == 100
        assert balance.total_spent == 0

    def test_add_points_rejects_non_positive(self, point_service, alice):
        with pytest.raises(ValidationError):
            point_service.add_points(alice, 0, PointsRecordType.SYSTEM_GRANT.value)

    def test_add_points_unknown_user(self, point_service):
        with pytest.raises(NotFoundError):
            point_service.add_points(999, 10, PointsRecordType.SYSTEM_GRANT.value)

    def test_deduct_points(self, point_service, make_user):
        user_id = make_user("carol", points=50)

        result = point_service.deduct_points(user_id, 30, PointsRecordType.PURCHASE.value)

        assert result.amount == -30
        assert result.balance_before == 50
        assert result.balance_after == 20
        balance = point_service.get_user_points(user_id)
        assert balance.total_spent == 30

    def test_deduct_insufficient_leaves_no_trace(self, point_service, make_user):
        """잔액 부족 시 잔액/원장 모두 변화 없음"""
        user_id = make_user("carol", points=10)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            point_service.deduct_points(user_id, 11, PointsRecordType.PURCHASE.value)

        assert exc_info.value.message == "积分余额不足"
        assert point_service.get_user_points(user_id).current_points == 10
        records = point_service.get_points_records(user_id)
        assert records.pagination.total == 1

    def test_admin_adjust_clamps_at_zero(self, point_service, make_user):
        """음수 조정은 0 에서 멈추고 실제 변동량만 기록"""
        user_id = make_user("carol", points=30)

        result = point_service.admin_adjust_points(user_id, -100, admin_id=1)

        assert result.requested_amount == -100
        assert result.applied_amount == -30
        assert result.balance_after == 0
        records = point_service.get_points_records(user_id, type=PointsRecordType.ADMIN_ADJUST.value)
        assert records.items[0].amount == -30

    def test_admin_adjust_zero_rejected(self, point_service, alice):
        with pytest.raises(ValidationError):
            point_service.admin_adjust_points(alice, 0)

    def test_transfer_points(self, point_service, make_user):
        sender = make_user("carol", points=100)
        receiver = make_user("dave")

        result = point_service.transfer_points(sender, receiver, 40)

        assert result.from_balance_after == 60
        assert result.to_balance_after == 40
        assert point_service.verify_integrity_for_user(sender).status == "OK"
        assert point_service.verify_integrity_for_user(receiver).status == "OK"

    def test_transfer_to_self_rejected(self, point_service, alice):
        with pytest.raises(ValidationError):
            point_service.transfer_points(alice, alice, 10)

    def test_transfer_insufficient(self, point_service, make_user):
        sender = make_user("carol", points=5)
        receiver = make_user("dave")

        with pytest.raises(InsufficientBalanceError):
            point_service.transfer_points(sender, receiver, 10)

        assert point_service.get_user_points(receiver).current_points == 0

    def test_batch_grant_partial_failure(self, point_service, alice, bob):
        """존재하지 않는 사용자는 실패로 기록되고 나머지는 커밋"""
        result = point_service.batch_grant_points([alice, 999, bob], 5)

        assert result.success_count == 2
        assert result.failure_count == 1
        failed = [r for r in result.results if not r.success]
        assert failed[0].user_id == 999
        assert point_service.get_user_points(bob).current_points == 5

    def test_records_are_newest_first_with_pagination(self, point_service, alice):
        for amount in (1, 2, 3):
            point_service.add_points(alice, amount, PointsRecordType.SYSTEM_GRANT.value)

        page = point_service.get_points_records(alice, limit=2, offset=0)

        assert [r.amount for r in page.items] == [3, 2]
        assert page.pagination.total == 3
        assert page.pagination.total_pages == 2
        assert page.pagination.has_next is True
        assert page.pagination.has_prev is False

    def test_statistics_by_type(self, point_service, make_user):
        user_id = make_user("carol", points=100)
        point_service.deduct_points(user_id, 30, PointsRecordType.POINTS_MALL.value)

        stats = point_service.get_points_statistics(user_id)

        assert stats.total_earned == 100
        assert stats.total_spent == 30
        by_type = {s.type: s for s in stats.by_type}
        assert by_type[PointsRecordType.POINTS_MALL.value].total_spent == 30

    def test_leaderboard_and_rank(self, point_service, make_user):
        first = make_user("carol", points=300)
        second = make_user("dave", points=100)
        zero = make_user("erin")

        board = point_service.get_leaderboard("current_points", 10)

        assert [entry.user_id for entry in board] == [first, second]
        assert point_service.get_user_rank(second).rank == 2
        assert point_service.get_user_rank(zero).rank is None

    def test_leaderboard_unknown_kind(self, point_service):
        with pytest.raises(ValidationError):
            point_service.get_leaderboard("bogus")

    def test_global_integrity_detects_mismatch(self, point_service, db, make_user):
        user_id = make_user("carol", points=100)
        assert point_service.verify_global_integrity().status == "OK"

        # 원장 없이 잔액만 변경
        db.query("UPDATE users SET current_points = 150 WHERE id = :id", {"id": user_id})

        result = point_service.verify_global_integrity()
        assert result.status == "MISMATCH"
        assert result.mismatched_users == {user_id: 50}
