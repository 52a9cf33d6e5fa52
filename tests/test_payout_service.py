from decimal import Decimal

import pytest

from ledgerapi.core.exceptions import (
    BusinessLogicError,
    InsufficientBalanceError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
)
from ledgerapi.models.user import User
from ledgerapi.schemas.referral import PayoutCreate, PayoutSettingUpdate


def _commission_balance(db, user_id) -> Decimal:
    with db.transaction() as session:
        return Decimal(session.get(User, user_id).commission_balance)


@pytest.fixture
def earner(make_user):
    """출금 가능 수수료 100 보유"""
    return make_user("earner", commission_balance=Decimal("100"))


@pytest.fixture
def payout(payout_service, earner):
    return payout_service.create_payout_request(
        earner, PayoutCreate(amount=Decimal("30"), method="alipay", account="pay@example.com")
    )


class TestPayoutRequest:
    """PayoutService 테스트 - 신청 시 예약, 반려 시 환불"""

    def test_create_reserves_balance(self, db, payout, earner):
        assert payout.status == "pending"
        assert payout.amount == Decimal("30")
        assert _commission_balance(db, earner) == Decimal("70")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5")])
    def test_non_positive_amount(self, payout_service, earner, amount):
        with pytest.raises(ValidationError) as exc_info:
            payout_service.create_payout_request(
                earner, PayoutCreate(amount=amount, method="alipay", account="x")
            )
        assert exc_info.value.message == "提现金额必须大于0"

    def test_exceeds_balance(self, db, payout_service, earner):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            payout_service.create_payout_request(
                earner, PayoutCreate(amount=Decimal("100.01"), method="alipay", account="x")
            )
        assert exc_info.value.message == "可提现余额不足"
        assert _commission_balance(db, earner) == Decimal("100")

    def test_unknown_user(self, payout_service):
        with pytest.raises(NotFoundError):
            payout_service.create_payout_request(
                999, PayoutCreate(amount=Decimal("1"), method="alipay", account="x")
            )

    def test_requires_saved_setting_when_account_missing(self, payout_service, earner):
        with pytest.raises(BusinessLogicError) as exc_info:
            payout_service.create_payout_request(earner, PayoutCreate(amount=Decimal("10")))
        assert exc_info.value.message == "请先配置提现账号"

    def test_uses_saved_setting(self, payout_service, earner):
        payout_service.upsert_payout_setting(
            earner,
            PayoutSettingUpdate(method="usdt", account="TXaddr", usdt_network="trc20"),
        )

        result = payout_service.create_payout_request(earner, PayoutCreate(amount=Decimal("10")))

        assert result.method == "usdt"
        assert result.account == "TXaddr"
        assert result.extra == {"usdt_network": "TRC20"}

    def test_setting_upsert_overwrites(self, payout_service, earner):
        payout_service.upsert_payout_setting(earner, PayoutSettingUpdate(method="usdt", account="T1"))
        setting = payout_service.upsert_payout_setting(
            earner, PayoutSettingUpdate(method="alipay", account="a@b.c", account_name="张三")
        )

        assert setting.method == "alipay"
        assert setting.extra == {}
        assert payout_service.get_payout_setting(earner).account_name == "张三"


class TestPayoutReview:
    """출금 심사 상태 전이"""

    def test_approve_then_pay(self, db, payout_service, payout, earner):
        approved = payout_service.update_payout_request_status(payout.id, "approved", reviewer_id=9)
        assert approved.reviewed_by == 9
        assert approved.reviewed_at is not None

        paid = payout_service.update_payout_request_status(payout.id, "paid", reviewer_id=9, review_notes="done")
        assert paid.paid_at is not None
        assert paid.review_notes == "done"
        assert _commission_balance(db, earner) == Decimal("70")

    def test_reject_pending_refunds(self, db, payout_service, payout, earner):
        payout_service.update_payout_request_status(payout.id, "rejected", reviewer_id=9)
        assert _commission_balance(db, earner) == Decimal("100")

    def test_reject_approved_refunds(self, db, payout_service, payout, earner):
        payout_service.update_payout_request_status(payout.id, "approved", reviewer_id=9)
        payout_service.update_payout_request_status(payout.id, "rejected", reviewer_id=9)
        assert _commission_balance(db, earner) == Decimal("100")

    @pytest.mark.parametrize(
        "path,target,message",
        [
            ([], "paid", "请先审批通过再标记打款"),
            ([], "pending", "状态未发生变化"),
            (["approved"], "pending", "已审批的提现申请不可重新置为待审批"),
            (["approved", "paid"], "rejected", "已打款的提现申请不可修改"),
            (["rejected"], "approved", "已驳回的提现申请不可再次处理"),
        ],
    )
    def test_disallowed_transitions(self, db, payout_service, payout, earner, path, target, message):
        for status in path:
            payout_service.update_payout_request_status(payout.id, status, reviewer_id=9)
        balance_before = _commission_balance(db, earner)

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            payout_service.update_payout_request_status(payout.id, target, reviewer_id=9)

        assert exc_info.value.message == message
        assert _commission_balance(db, earner) == balance_before

    def test_invalid_status(self, payout_service, payout):
        with pytest.raises(ValidationError):
            payout_service.update_payout_request_status(payout.id, "cancelled", reviewer_id=9)

    def test_missing_request(self, payout_service):
        with pytest.raises(NotFoundError):
            payout_service.update_payout_request_status(999, "approved", reviewer_id=9)

    def test_summary_and_listing(self, payout_service, payout, earner):
        second = payout_service.create_payout_request(
            earner, PayoutCreate(amount=Decimal("20"), method="usdt", account="T")
        )
        payout_service.update_payout_request_status(payout.id, "approved", reviewer_id=9)
        payout_service.update_payout_request_status(payout.id, "paid", reviewer_id=9)
        payout_service.update_payout_request_status(second.id, "rejected", reviewer_id=9)

        summary = payout_service.get_payout_summary(earner)
        assert summary.commission_balance == Decimal("70")
        assert summary.paid_amount == Decimal("30")
        assert summary.rejected_amount == Decimal("20")
        assert summary.processing_amount == Decimal("0")

        usdt = payout_service.get_payout_requests(method="usdt")
        assert [p.id for p in usdt.items] == [second.id]
