from decimal import Decimal

import pytest

from ledgerapi.core.exceptions import (
    BusinessLogicError,
    ConflictError,
    NotFoundError,
)
from ledgerapi.models.user import UserStatus
from ledgerapi.services.referral_service import REFERRAL_CODE_ALPHABET, generate_code


class TestReferralCode:
    def test_generate_code_alphabet(self):
        code = generate_code(8)
        assert len(code) == 8
        assert set(code) <= set(REFERRAL_CODE_ALPHABET)

    def test_ensure_code_is_stable(self, referral_service, alice):
        first = referral_service.ensure_code(alice)
        second = referral_service.ensure_code(alice)
        assert first.referral_code == second.referral_code

    def test_force_new_code(self, referral_service, alice, monkeypatch):
        referral_service.ensure_code(alice)
        monkeypatch.setattr(
            "ledgerapi.services.referral_service.generate_code", lambda length=8: "NEWCODE2"
        )

        result = referral_service.ensure_code(alice, force_new=True)

        assert result.referral_code == "NEWCODE2"

    def test_collision_retries(self, referral_service, make_user, monkeypatch):
        make_user("taken", referral_code="TAKEN123")
        user_id = make_user("carol")
        codes = iter(["TAKEN123", "TAKEN123", "FRESH234"])
        monkeypatch.setattr(
            "ledgerapi.services.referral_service.generate_code", lambda length=8: next(codes)
        )

        result = referral_service.ensure_code(user_id)

        assert result.referral_code == "FRESH234"

    def test_unknown_user(self, referral_service):
        with pytest.raises(NotFoundError):
            referral_service.ensure_code(999)


class TestBindInviter:
    """상위 초대자 연결"""

    def test_bind_with_normalized_code(self, referral_service, make_user):
        inviter = make_user("inviter", referral_code="ABCD2345")
        invitee = make_user("newbie")

        result = referral_service.bind_inviter(invitee, "  abcd2345 ")

        assert result.inviter_id == inviter
        assert referral_service.get_inviter(invitee).inviter_id == inviter
        assert referral_service.get_invite_stats(inviter).invite_count == 1

    def test_self_binding_rejected(self, referral_service, make_user):
        user_id = make_user("loner", referral_code="SELF2345")
        with pytest.raises(BusinessLogicError) as exc_info:
            referral_service.bind_inviter(user_id, "SELF2345")
        assert exc_info.value.message == "不能绑定自己为上级"

    def test_rebinding_rejected(self, referral_service, make_user):
        make_user("first", referral_code="FIRST234")
        make_user("second", referral_code="SECND234")
        invitee = make_user("newbie")
        referral_service.bind_inviter(invitee, "FIRST234")

        with pytest.raises(ConflictError) as exc_info:
            referral_service.bind_inviter(invitee, "SECND234")
        assert exc_info.value.message == "用户已绑定上级"

    def test_unknown_code(self, referral_service, alice):
        with pytest.raises(NotFoundError):
            referral_service.bind_inviter(alice, "NOPE2345")

    def test_validate_code(self, referral_service, make_user):
        make_user("banned", referral_code="BANNED23", status=UserStatus.BANNED.value)
        make_user("ok", referral_code="GOODCODE")

        assert referral_service.validate_referral_code("goodcode").username == "ok"
        assert referral_service.validate_referral_code("") is None
        with pytest.raises(BusinessLogicError):
            referral_service.validate_referral_code("BANNED23")
        with pytest.raises(NotFoundError):
            referral_service.validate_referral_code("MISSING2")

    def test_find_inviter_by_code(self, referral_service, make_user):
        make_user("inviter", referral_code="ABCD2345")
        assert referral_service.find_inviter_by_code(" abcd2345").username == "inviter"
        assert referral_service.find_inviter_by_code(None) is None


class TestDashboard:
    def test_dashboard_aggregates(self, referral_service, commission_service, make_user):
        inviter = make_user("inviter", referral_code="ABCD2345")
        invitee = make_user("newbie")
        referral_service.bind_inviter(invitee, "ABCD2345")
        commission_service.settle_order_commission(invitee, "O-1", Decimal("50"))

        dashboard = referral_service.get_referral_dashboard(inviter)

        assert dashboard.referral_code == "ABCD2345"
        assert dashboard.stats.invite_count == 1
        assert dashboard.stats.commission_pending_balance == Decimal("5")
        assert dashboard.commission_summary.pending_amount == Decimal("5")
        assert [i.user_id for i in dashboard.invitees] == [invitee]
        assert dashboard.invitees[0].commission_amount == Decimal("5")
        assert dashboard.inviter is None
        assert dashboard.payout_setting is None
