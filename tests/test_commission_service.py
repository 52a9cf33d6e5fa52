from decimal import Decimal

import pytest

from ledgerapi.core.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from ledgerapi.models.user import User
from ledgerapi.schemas.referral import CommissionConfig, CommissionCreate, PayoutCreate
from ledgerapi.services.commission_service import compute_commission_deltas


def _balances(db, user_id):
    with db.transaction() as session:
        user = session.get(User, user_id)
        return (
            Decimal(user.commission_balance),
            Decimal(user.commission_pending_balance),
            Decimal(user.total_commission_earned),
        )


@pytest.fixture
def invitee(make_user, alice):
    return make_user("invitee", inviter_id=alice)


@pytest.fixture
def commission(commission_service, alice, invitee):
    return commission_service.create_commission_record(
        CommissionCreate(
            inviter_id=alice,
            invitee_id=invitee,
            order_id="ORDER-1",
            order_amount=Decimal("100"),
            commission_amount=Decimal("10"),
            commission_rate=Decimal("0.1"),
        )
    )


class TestCommissionDeltas:
    @pytest.mark.parametrize(
        "old,new,balance,pending",
        [
            ("pending", "approved", 10, -10),
            ("pending", "paid", 10, -10),
            ("pending", "rejected", 0, -10),
            ("approved", "paid", 0, 0),
            ("approved", "pending", -10, 10),
            ("approved", "rejected", -10, 0),
            ("paid", "pending", -10, 10),
            ("rejected", "approved", 10, 0),
            ("rejected", "pending", 0, 10),
            ("approved", "approved", 0, 0),
        ],
    )
    def test_transition_edges(self, old, new, balance, pending):
        assert compute_commission_deltas(old, new, Decimal("10")) == (Decimal(balance), Decimal(pending))


class TestCommissionService:
    """CommissionService 테스트 - 상태 전이에 따른 잔액 이동"""

    def test_create_adds_pending(self, db, commission, alice):
        assert commission.status == "pending"
        assert _balances(db, alice) == (Decimal("0"), Decimal("10"), Decimal("10"))

    def test_duplicate_order_rejected(self, commission_service, commission, alice, invitee):
        with pytest.raises(ConflictError):
            commission_service.create_commission_record(
                CommissionCreate(
                    inviter_id=alice,
                    invitee_id=invitee,
                    order_id="ORDER-1",
                    order_amount=Decimal("50"),
                    commission_amount=Decimal("5"),
                    commission_rate=Decimal("0.1"),
                )
            )
        assert commission_service.has_commission_record("ORDER-1") is True

    def test_approve_then_pay(self, db, commission_service, commission, alice):
        approved = commission_service.update_commission_status(commission.id, "approved", "ok")
        assert approved.settled_at is not None
        assert _balances(db, alice)[:2] == (Decimal("10"), Decimal("0"))

        paid = commission_service.update_commission_status(commission.id, "paid")
        assert paid.paid_at is not None
        assert paid.review_notes == "ok"
        assert _balances(db, alice)[:2] == (Decimal("10"), Decimal("0"))

    def test_back_to_pending_clears_timestamps(self, db, commission_service, commission, alice):
        commission_service.update_commission_status(commission.id, "paid")

        reverted = commission_service.update_commission_status(commission.id, "pending")

        assert reverted.settled_at is None
        assert reverted.paid_at is None
        assert _balances(db, alice)[:2] == (Decimal("0"), Decimal("10"))

    def test_reject_pending(self, db, commission_service, commission, alice):
        commission_service.update_commission_status(commission.id, "rejected")
        assert _balances(db, alice)[:2] == (Decimal("0"), Decimal("0"))

    def test_same_status_updates_notes_only(self, db, commission_service, commission, alice):
        result = commission_service.update_commission_status(commission.id, "pending", "checked")
        assert result.review_notes == "checked"
        assert _balances(db, alice)[:2] == (Decimal("0"), Decimal("10"))

    def test_revoking_reserved_commission_fails(self, db, commission_service, payout_service, commission, alice):
        """출금으로 예약된 금액은 수수료 취소로 음수가 될 수 없음"""
        commission_service.update_commission_status(commission.id, "approved")
        payout_service.create_payout_request(
            alice, PayoutCreate(amount=Decimal("10"), method="alipay", account="a@b.c")
        )

        with pytest.raises(InsufficientBalanceError):
            commission_service.update_commission_status(commission.id, "rejected")

        assert commission_service.get_commission_records(inviter_id=alice).items[0].status == "approved"

    def test_invalid_status(self, commission_service, commission):
        with pytest.raises(ValidationError):
            commission_service.update_commission_status(commission.id, "unknown")

    def test_missing_commission(self, commission_service):
        with pytest.raises(NotFoundError):
            commission_service.update_commission_status(999, "approved")

    def test_summary(self, commission_service, commission, alice):
        commission_service.update_commission_status(commission.id, "approved")

        summary = commission_service.get_commission_summary(alice)

        assert summary.total_count == 1
        assert summary.approved_amount == Decimal("10")
        assert summary.pending_amount == Decimal("0")

    def test_records_include_invitee_username(self, commission_service, commission, alice):
        page = commission_service.get_commission_records(inviter_id=alice)
        assert page.items[0].invitee_username == "invitee"


class TestOrderSettlement:
    """주문 결제 완료 시 수수료 정산"""

    def test_first_order_uses_first_rate(self, commission_service, alice, invitee):
        result = commission_service.settle_order_commission(invitee, "O-1", Decimal("88"))

        assert result.event_type == "first_recharge"
        assert result.commission_amount == Decimal("8.80")
        assert result.inviter_id == alice

    def test_renewal_with_zero_rate_skipped(self, commission_service, invitee):
        commission_service.settle_order_commission(invitee, "O-1", Decimal("100"))

        assert commission_service.settle_order_commission(invitee, "O-2", Decimal("100")) is None

    def test_renewal_rate_from_stored_config(self, commission_service, invitee):
        commission_service.update_commission_config(
            CommissionConfig(enabled=True, first_rate=0.1, renewal_rate=0.05)
        )
        commission_service.settle_order_commission(invitee, "O-1", Decimal("100"))

        renewal = commission_service.settle_order_commission(invitee, "O-2", Decimal("100"))

        assert renewal.event_type == "renewal"
        assert renewal.commission_amount == Decimal("5.00")

    def test_same_order_settled_once(self, commission_service, invitee):
        commission_service.settle_order_commission(invitee, "O-1", Decimal("100"))
        assert commission_service.settle_order_commission(invitee, "O-1", Decimal("100")) is None

    def test_disabled_config(self, commission_service, invitee):
        commission_service.update_commission_config(CommissionConfig(enabled=False))
        assert commission_service.get_commission_config().enabled is False
        assert commission_service.settle_order_commission(invitee, "O-1", Decimal("100")) is None

    def test_user_without_inviter(self, commission_service, bob):
        assert commission_service.settle_order_commission(bob, "O-1", Decimal("100")) is None
