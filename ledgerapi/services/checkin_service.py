import logging
from datetime import date, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from ledgerapi.core.exceptions import (
    AlreadyCheckedInError,
    BusinessLogicError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from ledgerapi.database.connection import Database
from ledgerapi.models.checkin import CheckinConfigRole
from ledgerapi.models.points import PointsRecordType
from ledgerapi.repositories.checkin_repository import (
    CheckinConfigRepository,
    CheckinRepository,
)
from ledgerapi.repositories.user_repository import UserRepository
from ledgerapi.schemas.checkin import (
    CheckinConfigCreate,
    CheckinConfigResponse,
    CheckinConfigUpdate,
    CheckinLeaderboardEntry,
    CheckinRecordResponse,
    CheckinResult,
    CheckinStatistics,
    TodayCheckinStatus,
    UserCheckinStats,
)
from ledgerapi.schemas.pagination import PaginatedResponse, PaginationLimits
from ledgerapi.services.point_service import PointService
from ledgerapi.utils.timezone_utils import get_local_today, get_month_range

logger = logging.getLogger(__name__)

LEADERBOARD_KINDS = ("consecutive", "total", "monthly")


def compute_consecutive_days(
    last_date: Optional[date], last_consecutive: int, today: date
) -> int:
    """어제 체크인했으면 +1, 오늘이면 그대로, 그 외에는 1"""
    if last_date is None:
        return 1
    if last_date == today:
        return last_consecutive
    if last_date == today - timedelta(days=1):
        return last_consecutive + 1
    return 1


def compute_bonus_points(consecutive_bonus: Optional[Dict], consecutive_days: int) -> int:
    """
    연속 보너스 계산

    n % k == 0 이고 n >= k 인 정수 키 k 중 가장 큰 키의 보너스.
    숫자가 아닌 키는 무시
    """
    best_key = None
    for key in (consecutive_bonus or {}):
        try:
            days = int(key)
        except (TypeError, ValueError):
            continue
        if days <= 0 or consecutive_days < days or consecutive_days % days != 0:
            continue
        if best_key is None or days > best_key[0]:
            best_key = (days, key)

    if best_key is None:
        return 0
    return int(consecutive_bonus[best_key[1]] or 0)


class CheckinService:
    """일일 체크인 서비스

    clock: 서비스 타임존 기준 "오늘"을 반환하는 callable (테스트에서 교체)
    """

    def __init__(
        self,
        database: Database,
        point_service: PointService,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.database = database
        self.point_service = point_service
        self.clock = clock or get_local_today

    def perform_checkin(self, user_id: int, user_roles: List[str]) -> CheckinResult:
        today = self.clock()
        try:
            with self.database.transaction() as session:
                user = UserRepository(session).lock_by_id(user_id)
                if user is None:
                    raise NotFoundError("用户不存在")

                checkin_repo = CheckinRepository(session)
                if checkin_repo.get_by_user_and_date(user_id, today):
                    raise AlreadyCheckedInError("今日已签到")

                config = CheckinConfigRepository(session).find_applicable(user_roles)
                if config is None:
                    raise BusinessLogicError("CHECKIN_002", "签到功能未配置或无权限")

                last = checkin_repo.get_latest(user_id, on_or_before=today)
                consecutive_days = compute_consecutive_days(
                    last.checkin_date if last else None,
                    last.consecutive_days if last else 0,
                    today,
                )
                base_points = int(config.daily_points or 0)
                bonus_points = compute_bonus_points(config.consecutive_bonus, consecutive_days)
                total_points = base_points + bonus_points

                record = checkin_repo.create(
                    user_id=user_id,
                    config_id=config.id,
                    checkin_date=today,
                    points_earned=base_points,
                    bonus_points=bonus_points,
                    consecutive_days=consecutive_days,
                    is_bonus=bonus_points > 0,
                )

                points_result = None
                if total_points > 0:
                    if bonus_points > 0:
                        description = (
                            f"每日签到+{base_points}积分，连续{consecutive_days}天奖励+{bonus_points}积分"
                        )
                    else:
                        description = f"每日签到获得{base_points}积分"
                    points_result = self.point_service.add_points(
                        user_id,
                        total_points,
                        PointsRecordType.CHECKIN.value,
                        description=description,
                        related_id=record.id,
                        related_type="checkin",
                        tx=session,
                    )

                result = CheckinResult(
                    checkin=CheckinRecordResponse.model_validate(record),
                    base_points=base_points,
                    bonus_points=bonus_points,
                    total_points=total_points,
                    consecutive_days=consecutive_days,
                    points=points_result,
                )
        except IntegrityError:
            # 동시 요청이 먼저 (user_id, checkin_date) 를 선점
            logger.warning(f"Concurrent checkin rejected for user {user_id} on {today}")
            raise AlreadyCheckedInError("今日已签到")

        logger.info(
            f"User {user_id} checked in on {today}: streak {consecutive_days}, "
            f"points {base_points}+{bonus_points}"
        )
        return result

    def makeup_checkin(
        self, user_id: int, checkin_date: date, admin_id: Optional[int] = None
    ) -> CheckinResult:
        """보충 체크인 (관리자) - 기본 포인트만, 연속 일수 1"""
        if checkin_date > self.clock():
            raise ValidationError("不能为未来日期补签")

        try:
            with self.database.transaction() as session:
                user = UserRepository(session).lock_by_id(user_id)
                if user is None:
                    raise NotFoundError("用户不存在")

                checkin_repo = CheckinRepository(session)
                if checkin_repo.get_by_user_and_date(user_id, checkin_date):
                    raise AlreadyCheckedInError("该日期已有签到记录")

                config = CheckinConfigRepository(session).find_applicable([user.role])
                if config is None:
                    raise BusinessLogicError("CHECKIN_002", "签到功能未配置或无权限")

                base_points = int(config.daily_points or 0)
                record = checkin_repo.create(
                    user_id=user_id,
                    config_id=config.id,
                    checkin_date=checkin_date,
                    points_earned=base_points,
                    bonus_points=0,
                    consecutive_days=1,
                    is_bonus=False,
                    is_makeup=True,
                )

                points_result = None
                if base_points > 0:
                    points_result = self.point_service.add_points(
                        user_id,
                        base_points,
                        PointsRecordType.MAKEUP_CHECKIN.value,
                        description=f"补签{checkin_date.isoformat()}获得{base_points}积分",
                        related_id=record.id,
                        related_type="makeup_checkin",
                        operator_id=admin_id,
                        tx=session,
                    )

                result = CheckinResult(
                    checkin=CheckinRecordResponse.model_validate(record),
                    base_points=base_points,
                    bonus_points=0,
                    total_points=base_points,
                    consecutive_days=1,
                    points=points_result,
                )
        except IntegrityError:
            raise AlreadyCheckedInError("该日期已有签到记录")

        logger.info(f"Admin {admin_id} made up checkin for user {user_id} on {checkin_date}")
        return result

    def get_consecutive_days(self, user_id: int) -> int:
        """현재 이어지고 있는 연속 일수 (어제/오늘 체크인이 없으면 0)"""
        today = self.clock()
        with self.database.transaction() as session:
            last = CheckinRepository(session).get_latest(user_id, on_or_before=today)
        if last is None or last.checkin_date < today - timedelta(days=1):
            return 0
        return last.consecutive_days

    def get_today_status(self, user_id: int) -> TodayCheckinStatus:
        today = self.clock()
        with self.database.transaction() as session:
            record = CheckinRepository(session).get_by_user_and_date(user_id, today)
            checkin = CheckinRecordResponse.model_validate(record) if record else None
        return TodayCheckinStatus(
            checked_in=checkin is not None,
            checkin=checkin,
            consecutive_days=self.get_consecutive_days(user_id),
        )

    def get_checkin_history(
        self,
        user_id: int,
        limit: Optional[int] = None,
        offset: int = 0,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> PaginatedResponse[CheckinRecordResponse]:
        limit = PaginationLimits.clamp(PaginationLimits.CHECKIN_HISTORY, limit)
        with self.database.transaction() as session:
            items, total = CheckinRepository(session).get_history(
                user_id, limit, offset, date_from=date_from, date_to=date_to
            )
        return PaginatedResponse[CheckinRecordResponse].of(items, total, limit, offset)

    def get_user_checkin_stats(self, user_id: int) -> UserCheckinStats:
        today = self.clock()
        with self.database.transaction() as session:
            repo = CheckinRepository(session)
            total, points, max_days, bonus_count, first_date, last_date = repo.get_user_summary(user_id)
            checked_in_today = repo.get_by_user_and_date(user_id, today) is not None

        return UserCheckinStats(
            total_checkins=int(total),
            total_points_earned=int(points),
            max_consecutive_days=int(max_days),
            bonus_count=int(bonus_count),
            first_checkin_date=first_date,
            last_checkin_date=last_date,
            current_consecutive_days=self.get_consecutive_days(user_id),
            checked_in_today=checked_in_today,
        )

    def get_leaderboard(
        self, kind: str = "consecutive", limit: Optional[int] = None
    ) -> List[CheckinLeaderboardEntry]:
        if kind not in LEADERBOARD_KINDS:
            raise ValidationError(f"不支持的排行榜类型: {kind}")
        limit = PaginationLimits.clamp(PaginationLimits.LEADERBOARD, limit)
        today = self.clock()

        with self.database.transaction() as session:
            repo = CheckinRepository(session)
            if kind == "consecutive":
                return repo.get_streak_leaderboard(today - timedelta(days=1), limit)
            if kind == "monthly":
                month_start, _ = get_month_range(today)
                return repo.get_count_leaderboard(limit, date_from=month_start)
            return repo.get_count_leaderboard(limit)

    def get_checkin_statistics(
        self, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> CheckinStatistics:
        with self.database.transaction() as session:
            return CheckinRepository(session).get_statistics(date_from, date_to)

    # ---- 규칙 관리 (관리자) ----

    def list_configs(self, include_inactive: bool = True) -> List[CheckinConfigResponse]:
        with self.database.transaction() as session:
            return CheckinConfigRepository(session).list_configs(include_inactive)

    def get_config(self, config_id: int) -> CheckinConfigResponse:
        with self.database.transaction() as session:
            config = CheckinConfigRepository(session).get_by_id(config_id)
        if config is None:
            raise NotFoundError("签到配置不存在")
        return config

    def get_available_config(self, user_roles: List[str]) -> Optional[CheckinConfigResponse]:
        with self.database.transaction() as session:
            repo = CheckinConfigRepository(session)
            return repo._to_schema(repo.find_applicable(user_roles))

    def create_config(
        self, request: CheckinConfigCreate, created_by: Optional[int] = None
    ) -> CheckinConfigResponse:
        with self.database.transaction() as session:
            repo = CheckinConfigRepository(session)
            config = repo.create(
                **request.model_dump(exclude={"roles"}),
                created_by=created_by,
            )
            if request.roles:
                repo.replace_roles(config, request.roles)
            result = repo._to_schema(config)

        logger.info(f"Checkin config {result.id} created by {created_by}")
        return result

    def update_config(self, config_id: int, request: CheckinConfigUpdate) -> CheckinConfigResponse:
        with self.database.transaction() as session:
            repo = CheckinConfigRepository(session)
            config = repo.get_model(config_id)
            if config is None:
                raise NotFoundError("签到配置不存在")

            for key, value in request.model_dump(exclude_unset=True, exclude={"roles"}).items():
                setattr(config, key, value)
            if request.roles is not None:
                repo.replace_roles(config, request.roles)
            session.flush()
            result = repo._to_schema(config)

        logger.info(f"Checkin config {config_id} updated")
        return result

    def delete_config(self, config_id: int) -> None:
        """비활성 규칙만 삭제 가능"""
        with self.database.transaction() as session:
            config = CheckinConfigRepository(session).get_model(config_id)
            if config is None:
                raise NotFoundError("签到配置不存在")
            if config.is_active:
                raise BusinessLogicError("CHECKIN_003", "请先停用签到配置再删除")
            session.delete(config)

        logger.info(f"Checkin config {config_id} deleted")

    def add_config_role(self, config_id: int, role_name: str) -> CheckinConfigResponse:
        try:
            with self.database.transaction() as session:
                repo = CheckinConfigRepository(session)
                config = repo.get_model(config_id)
                if config is None:
                    raise NotFoundError("签到配置不存在")
                if repo.get_role(config_id, role_name):
                    raise ConflictError("该角色已绑定")
                config.roles.append(CheckinConfigRole(role_name=role_name))
                session.flush()
                result = repo._to_schema(config)
        except IntegrityError:
            raise ConflictError("该角色已绑定")
        return result

    def remove_config_role(self, config_id: int, role_name: str) -> CheckinConfigResponse:
        with self.database.transaction() as session:
            repo = CheckinConfigRepository(session)
            config = repo.get_model(config_id)
            if config is None:
                raise NotFoundError("签到配置不存在")
            role = repo.get_role(config_id, role_name)
            if role is None:
                raise NotFoundError("该角色未绑定")
            config.roles.remove(role)
            session.flush()
            return repo._to_schema(config)
