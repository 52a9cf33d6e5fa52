from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import and_, case, desc, exists, func, or_
from sqlalchemy.orm import Session

from ledgerapi.models.checkin import (
    CheckinConfig as CheckinConfigModel,
    CheckinConfigRole as CheckinConfigRoleModel,
    UserCheckin as UserCheckinModel,
)
from ledgerapi.models.user import User as UserModel, UserStatus
from ledgerapi.repositories.base import BaseRepository
from ledgerapi.schemas.checkin import (
    CheckinConfigResponse,
    CheckinLeaderboardEntry,
    CheckinRecordResponse,
    CheckinStatistics,
)


class CheckinConfigRepository(BaseRepository[CheckinConfigModel, CheckinConfigResponse]):
    def __init__(self, db: Session):
        super().__init__(CheckinConfigModel, CheckinConfigResponse, db)

    def find_applicable(self, user_roles: List[str]) -> Optional[CheckinConfigModel]:
        """
        사용자에게 적용할 체크인 규칙을 단일 쿼리로 선택

        활성 규칙 중 역할 바인딩이 없거나 사용자 역할과 겹치는 것,
        가장 최근 생성 순
        """
        has_roles = exists().where(
            CheckinConfigRoleModel.checkin_config_id == CheckinConfigModel.id
        )
        role_matches = exists().where(
            and_(
                CheckinConfigRoleModel.checkin_config_id == CheckinConfigModel.id,
                CheckinConfigRoleModel.role_name.in_(list(user_roles or [])),
            )
        )
        return (
            self.db.query(CheckinConfigModel)
            .filter(CheckinConfigModel.is_active.is_(True))
            .filter(or_(~has_roles, role_matches))
            .order_by(desc(CheckinConfigModel.created_at), desc(CheckinConfigModel.id))
            .first()
        )

    def list_configs(self, include_inactive: bool = True) -> List[CheckinConfigResponse]:
        query = self.db.query(CheckinConfigModel)
        if not include_inactive:
            query = query.filter(CheckinConfigModel.is_active.is_(True))
        configs = query.order_by(
            desc(CheckinConfigModel.created_at), desc(CheckinConfigModel.id)
        ).all()
        return self._to_schemas(configs)

    def replace_roles(self, config: CheckinConfigModel, role_names: List[str]) -> None:
        config.roles.clear()
        self.db.flush()
        for role_name in dict.fromkeys(role_names):
            config.roles.append(CheckinConfigRoleModel(role_name=role_name))
        self.db.flush()

    def get_role(self, config_id: int, role_name: str) -> Optional[CheckinConfigRoleModel]:
        return (
            self.db.query(CheckinConfigRoleModel)
            .filter(
                CheckinConfigRoleModel.checkin_config_id == config_id,
                CheckinConfigRoleModel.role_name == role_name,
            )
            .first()
        )


class CheckinRepository(BaseRepository[UserCheckinModel, CheckinRecordResponse]):
    """체크인 기록 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(UserCheckinModel, CheckinRecordResponse, db)

    def get_by_user_and_date(self, user_id: int, checkin_date: date) -> Optional[UserCheckinModel]:
        return (
            self.db.query(UserCheckinModel)
            .filter(
                UserCheckinModel.user_id == user_id,
                UserCheckinModel.checkin_date == checkin_date,
            )
            .first()
        )

    def get_latest(self, user_id: int, on_or_before: Optional[date] = None) -> Optional[UserCheckinModel]:
        query = self.db.query(UserCheckinModel).filter(UserCheckinModel.user_id == user_id)
        if on_or_before is not None:
            query = query.filter(UserCheckinModel.checkin_date <= on_or_before)
        return query.order_by(desc(UserCheckinModel.checkin_date)).first()

    def get_history(
        self,
        user_id: int,
        limit: int,
        offset: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> Tuple[List[CheckinRecordResponse], int]:
        query = self.db.query(UserCheckinModel).filter(UserCheckinModel.user_id == user_id)
        if date_from is not None:
            query = query.filter(UserCheckinModel.checkin_date >= date_from)
        if date_to is not None:
            query = query.filter(UserCheckinModel.checkin_date <= date_to)
        query = query.order_by(desc(UserCheckinModel.checkin_date))
        items, total = self._paginate(query, limit, offset)
        return self._to_schemas(items), total

    def get_user_summary(self, user_id: int):
        """(건수, 총 포인트, 최대 연속, 보너스 건수, 첫 날짜, 마지막 날짜)"""
        return (
            self.db.query(
                func.count(UserCheckinModel.id),
                func.coalesce(
                    func.sum(UserCheckinModel.points_earned + UserCheckinModel.bonus_points), 0
                ),
                func.coalesce(func.max(UserCheckinModel.consecutive_days), 0),
                func.count(case((UserCheckinModel.is_bonus.is_(True), 1))),
                func.min(UserCheckinModel.checkin_date),
                func.max(UserCheckinModel.checkin_date),
            )
            .filter(UserCheckinModel.user_id == user_id)
            .one()
        )

    def get_streak_leaderboard(self, since: date, limit: int) -> List[CheckinLeaderboardEntry]:
        """현재 이어지고 있는 연속 체크인 순위 (마지막 체크인이 since 이후인 사용자)"""
        latest = (
            self.db.query(
                UserCheckinModel.user_id.label("user_id"),
                func.max(UserCheckinModel.checkin_date).label("last_date"),
            )
            .group_by(UserCheckinModel.user_id)
            .subquery()
        )
        rows = (
            self.db.query(UserModel, UserCheckinModel.consecutive_days, UserCheckinModel.checkin_date)
            .join(latest, latest.c.user_id == UserModel.id)
            .join(
                UserCheckinModel,
                and_(
                    UserCheckinModel.user_id == latest.c.user_id,
                    UserCheckinModel.checkin_date == latest.c.last_date,
                ),
            )
            .filter(UserModel.status == UserStatus.NORMAL.value)
            .filter(latest.c.last_date >= since)
            .order_by(desc(UserCheckinModel.consecutive_days), UserModel.id.asc())
            .limit(limit)
            .all()
        )
        return [
            CheckinLeaderboardEntry(
                rank=index + 1,
                user_id=user.id,
                username=user.username,
                nickname=user.nickname,
                value=int(days),
                last_checkin_date=last_date,
            )
            for index, (user, days, last_date) in enumerate(rows)
        ]

    def get_count_leaderboard(
        self, limit: int, date_from: Optional[date] = None
    ) -> List[CheckinLeaderboardEntry]:
        """체크인 횟수 순위 (date_from 지정 시 해당 날짜 이후만)"""
        count = func.count(UserCheckinModel.id)
        points = func.coalesce(
            func.sum(UserCheckinModel.points_earned + UserCheckinModel.bonus_points), 0
        )
        query = (
            self.db.query(UserModel, count, func.max(UserCheckinModel.checkin_date))
            .join(UserCheckinModel, UserCheckinModel.user_id == UserModel.id)
            .filter(UserModel.status == UserStatus.NORMAL.value)
        )
        if date_from is not None:
            query = query.filter(UserCheckinModel.checkin_date >= date_from)
        rows = (
            query.group_by(UserModel.id)
            .order_by(desc(count), desc(points), UserModel.id.asc())
            .limit(limit)
            .all()
        )
        return [
            CheckinLeaderboardEntry(
                rank=index + 1,
                user_id=user.id,
                username=user.username,
                nickname=user.nickname,
                value=int(total),
                last_checkin_date=last_date,
            )
            for index, (user, total, last_date) in enumerate(rows)
        ]

    def get_statistics(
        self, date_from: Optional[date] = None, date_to: Optional[date] = None
    ) -> CheckinStatistics:
        query = self.db.query(
            func.count(func.distinct(UserCheckinModel.user_id)),
            func.count(UserCheckinModel.id),
            func.coalesce(
                func.sum(UserCheckinModel.points_earned + UserCheckinModel.bonus_points), 0
            ),
            func.count(case((UserCheckinModel.is_bonus.is_(True), 1))),
            func.coalesce(func.avg(UserCheckinModel.consecutive_days), 0),
            func.coalesce(func.max(UserCheckinModel.consecutive_days), 0),
        )
        if date_from is not None:
            query = query.filter(UserCheckinModel.checkin_date >= date_from)
        if date_to is not None:
            query = query.filter(UserCheckinModel.checkin_date <= date_to)
        row = query.one()
        return CheckinStatistics(
            unique_users=int(row[0]),
            total_checkins=int(row[1]),
            total_points_distributed=int(row[2]),
            bonus_checkins=int(row[3]),
            avg_consecutive_days=round(float(row[4]), 2),
            max_consecutive_days=int(row[5]),
        )
