from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool

from ledgerapi.config import settings
from ledgerapi.database.connection import Database
from ledgerapi.models import Base
from ledgerapi.models.checkin import CheckinConfig
from ledgerapi.models.user import User, UserRole
from ledgerapi.services.checkin_service import CheckinService
from ledgerapi.services.commission_service import CommissionService
from ledgerapi.services.mall_service import MallService
from ledgerapi.services.payout_service import PayoutService
from ledgerapi.services.point_service import PointService
from ledgerapi.services.referral_service import ReferralService


class FakeClock:
    """서비스 타임존 "오늘"을 테스트에서 조작"""

    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today

    def advance(self, days: int = 1) -> date:
        self.today = self.today + timedelta(days=days)
        return self.today


@pytest.fixture
def db():
    """인메모리 sqlite - 모든 세션이 같은 커넥션을 공유"""
    database = Database(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=database.engine)
    yield database
    Base.metadata.drop_all(bind=database.engine)
    database.shutdown()


@pytest.fixture
def make_user(db):
    def _make_user(username: str, points: int = 0, role: str = UserRole.USER.value, **kwargs):
        fields = {
            "current_points": 0,
            "total_earned": 0,
            "total_spent": 0,
            "commission_balance": Decimal("0"),
            "commission_pending_balance": Decimal("0"),
            "total_commission_earned": Decimal("0"),
        }
        fields.update(kwargs)
        with db.transaction() as session:
            user = User(username=username, role=role, **fields)
            session.add(user)
            session.flush()
            user_id = user.id
        if points:
            PointService(db).add_points(user_id, points, "system_grant", description="초기 지급")
        return user_id

    return _make_user


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def clock():
    return FakeClock(date(2024, 3, 1))


@pytest.fixture
def default_config(db):
    with db.transaction() as session:
        config = CheckinConfig(
            name="default",
            daily_points=10,
            consecutive_bonus={"7": 20},
            is_active=True,
        )
        session.add(config)
        session.flush()
        return config.id


@pytest.fixture
def point_service(db):
    return PointService(db)


@pytest.fixture
def checkin_service(db, point_service, clock):
    return CheckinService(db, point_service, clock=clock)


@pytest.fixture
def mall_service(db, point_service):
    return MallService(db, point_service)


@pytest.fixture
def commission_service(db):
    return CommissionService(db, settings)


@pytest.fixture
def payout_service(db):
    return PayoutService(db)


@pytest.fixture
def referral_service(db, commission_service, payout_service):
    return ReferralService(db, settings, commission_service, payout_service)
