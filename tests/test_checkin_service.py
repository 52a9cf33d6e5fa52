from datetime import date, timedelta

import pytest

from ledgerapi.core.exceptions import (
    AlreadyCheckedInError,
    BusinessLogicError,
    ValidationError,
)
from ledgerapi.schemas.checkin import CheckinConfigCreate, CheckinConfigUpdate
from ledgerapi.services.checkin_service import (
    compute_bonus_points,
    compute_consecutive_days,
)


class TestStreakHelpers:
    """연속 일수 / 보너스 계산"""

    def test_consecutive_days(self):
        today = date(2024, 3, 10)
        assert compute_consecutive_days(None, 0, today) == 1
        assert compute_consecutive_days(today - timedelta(days=1), 4, today) == 5
        assert compute_consecutive_days(today - timedelta(days=2), 4, today) == 1
        assert compute_consecutive_days(today, 4, today) == 4

    @pytest.mark.parametrize(
        "days,expected",
        [(1, 0), (3, 5), (6, 5), (7, 20), (14, 20), (21, 20), (30, 100)],
    )
    def test_bonus_picks_largest_divisor_key(self, days, expected):
        bonus = {"3": 5, "7": 20, "30": 100, "weekly": 999}
        assert compute_bonus_points(bonus, days) == expected

    def test_bonus_empty(self):
        assert compute_bonus_points({}, 7) == 0
        assert compute_bonus_points(None, 7) == 0


class TestCheckinService:
    """CheckinService 테스트"""

    def test_seven_day_streak_awards_bonus(self, checkin_service, point_service, clock, alice, default_config):
        """7일 연속: 10 x 6 + (10 + 20) = 90"""
        totals = []
        for day in range(7):
            result = checkin_service.perform_checkin(alice, ["user"])
            totals.append(result.total_points)
            assert result.consecutive_days == day + 1
            clock.advance()

        assert totals == [10, 10, 10, 10, 10, 10, 30]
        assert point_service.get_user_points(alice).current_points == 90
        assert point_service.verify_integrity_for_user(alice).status == "OK"

    def test_skipped_day_resets_streak(self, checkin_service, clock, alice, default_config):
        checkin_service.perform_checkin(alice, ["user"])
        clock.advance()
        checkin_service.perform_checkin(alice, ["user"])
        clock.advance(2)

        result = checkin_service.perform_checkin(alice, ["user"])

        assert result.consecutive_days == 1

    def test_double_checkin_rejected(self, checkin_service, point_service, alice, default_config):
        checkin_service.perform_checkin(alice, ["user"])

        with pytest.raises(AlreadyCheckedInError) as exc_info:
            checkin_service.perform_checkin(alice, ["user"])

        assert exc_info.value.message == "今日已签到"
        assert point_service.get_user_points(alice).current_points == 10

    def test_no_config_rejected(self, checkin_service, alice):
        with pytest.raises(BusinessLogicError):
            checkin_service.perform_checkin(alice, ["user"])

    def test_zero_point_config_records_checkin_only(self, checkin_service, point_service, alice):
        checkin_service.create_config(CheckinConfigCreate(name="zero", daily_points=0))

        result = checkin_service.perform_checkin(alice, ["user"])

        assert result.total_points == 0
        assert result.points is None
        assert point_service.get_points_records(alice).pagination.total == 0

    def test_role_bound_config_selection(self, checkin_service, default_config):
        """역할 바인딩 규칙이 우선 (더 최근), 바인딩 없는 규칙은 모두에게 적용"""
        vip = checkin_service.create_config(
            CheckinConfigCreate(name="vip", daily_points=20, roles=["vip"])
        )

        assert checkin_service.get_available_config(["vip"]).id == vip.id
        assert checkin_service.get_available_config(["user"]).id == default_config

    def test_inactive_config_skipped(self, checkin_service, default_config):
        checkin_service.update_config(default_config, CheckinConfigUpdate(is_active=False))

        assert checkin_service.get_available_config(["user"]) is None

    def test_role_only_config_not_applied_to_others(self, checkin_service):
        checkin_service.create_config(CheckinConfigCreate(name="vip", daily_points=20, roles=["vip"]))

        assert checkin_service.get_available_config(["user"]) is None

    def test_config_role_management(self, checkin_service, default_config):
        config = checkin_service.add_config_role(default_config, "vip")
        assert config.roles == ["vip"]

        config = checkin_service.remove_config_role(default_config, "vip")
        assert config.roles == []

    def test_delete_requires_inactive(self, checkin_service, default_config):
        with pytest.raises(BusinessLogicError):
            checkin_service.delete_config(default_config)

        checkin_service.update_config(default_config, CheckinConfigUpdate(is_active=False))
        checkin_service.delete_config(default_config)

        assert checkin_service.list_configs() == []

    def test_makeup_checkin(self, checkin_service, point_service, clock, alice, default_config):
        past = clock.today - timedelta(days=3)

        result = checkin_service.makeup_checkin(alice, past, admin_id=1)

        assert result.checkin.is_makeup is True
        assert result.total_points == 10
        assert point_service.get_user_points(alice).current_points == 10
        with pytest.raises(AlreadyCheckedInError):
            checkin_service.makeup_checkin(alice, past, admin_id=1)

    def test_makeup_future_rejected(self, checkin_service, clock, alice, default_config):
        with pytest.raises(ValidationError):
            checkin_service.makeup_checkin(alice, clock.today + timedelta(days=1))

    def test_today_status_and_stats(self, checkin_service, clock, alice, default_config):
        checkin_service.perform_checkin(alice, ["user"])
        clock.advance()
        checkin_service.perform_checkin(alice, ["user"])

        status = checkin_service.get_today_status(alice)
        assert status.checked_in is True
        assert status.consecutive_days == 2

        stats = checkin_service.get_user_checkin_stats(alice)
        assert stats.total_checkins == 2
        assert stats.total_points_earned == 20
        assert stats.max_consecutive_days == 2

        clock.advance(3)
        assert checkin_service.get_consecutive_days(alice) == 0

    def test_history_is_date_descending(self, checkin_service, clock, alice, default_config):
        for _ in range(3):
            checkin_service.perform_checkin(alice, ["user"])
            clock.advance()

        history = checkin_service.get_checkin_history(alice)

        dates = [record.checkin_date for record in history.items]
        assert dates == sorted(dates, reverse=True)
        assert history.pagination.total == 3

    def test_streak_leaderboard(self, checkin_service, clock, alice, bob, default_config):
        checkin_service.perform_checkin(alice, ["user"])
        checkin_service.perform_checkin(bob, ["user"])
        clock.advance()
        checkin_service.perform_checkin(alice, ["user"])

        board = checkin_service.get_leaderboard("consecutive")

        assert board[0].user_id == alice
        assert board[0].value == 2

    def test_unknown_leaderboard_kind(self, checkin_service):
        with pytest.raises(ValidationError):
            checkin_service.get_leaderboard("weekly")
