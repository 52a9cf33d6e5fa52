"""
실제 PostgreSQL 에서의 동시성 검증 (FOR UPDATE / SKIP LOCKED)

LEDGER_TEST_POSTGRES_URL 이 설정된 경우에만 실행
"""

import os
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from ledgerapi.core.exceptions import (
    AlreadyCheckedInError,
    BaseAPIException,
    InsufficientInventoryError,
)
from ledgerapi.database.connection import Database
from ledgerapi.models import Base
from ledgerapi.models.checkin import CheckinConfig
from ledgerapi.models.user import User
from ledgerapi.schemas.mall import ProductCreate
from ledgerapi.services.checkin_service import CheckinService
from ledgerapi.services.mall_service import MallService
from ledgerapi.services.point_service import PointService

POSTGRES_URL = os.getenv("LEDGER_TEST_POSTGRES_URL")

pytestmark = pytest.mark.skipif(not POSTGRES_URL, reason="LEDGER_TEST_POSTGRES_URL not set")

WORKERS = 10


@pytest.fixture
def pg():
    database = Database(
        POSTGRES_URL,
        pool_size=WORKERS,
        max_overflow=0,
        connect_args={"options": "-csearch_path=public"},
    )
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield database
    Base.metadata.drop_all(bind=database.engine)
    database.shutdown()


def _create_user(database, username, points=0):
    with database.transaction() as session:
        user = User(username=username)
        session.add(user)
        session.flush()
        user_id = user.id
    if points:
        PointService(database).add_points(user_id, points, "system_grant")
    return user_id


def _run_concurrently(fn, count=WORKERS):
    def _call():
        try:
            fn()
            return "ok"
        except BaseAPIException as e:
            return type(e)

    with ThreadPoolExecutor(max_workers=count) as pool:
        outcomes = list(pool.map(lambda _: _call(), range(count)))
    return outcomes


class TestConcurrentLedger:
    def test_concurrent_redemptions_never_oversell(self, pg):
        """재고 3개에 10건 동시 교환: 정확히 3건 성공"""
        points = PointService(pg)
        mall = MallService(pg, points)
        user_id = _create_user(pg, "buyer", points=10_000)
        product = mall.create_product(ProductCreate(name="card", points_cost=10))
        mall.add_inventory_items(product.id, ["C1", "C2", "C3"])

        outcomes = _run_concurrently(lambda: mall.redeem_virtual_product(product.id, user_id))

        assert outcomes.count("ok") == 3
        assert outcomes.count(InsufficientInventoryError) == WORKERS - 3
        assert points.get_user_points(user_id).current_points == 10_000 - 30
        assert points.verify_integrity_for_user(user_id).status == "OK"

    def test_concurrent_checkins_award_once(self, pg):
        with pg.transaction() as session:
            session.add(CheckinConfig(name="default", daily_points=10, consecutive_bonus={}))
        points = PointService(pg)
        checkin = CheckinService(pg, points, clock=lambda: date(2024, 3, 1))
        user_id = _create_user(pg, "early-bird")

        outcomes = _run_concurrently(lambda: checkin.perform_checkin(user_id, ["user"]))

        assert outcomes.count("ok") == 1
        assert outcomes.count(AlreadyCheckedInError) == WORKERS - 1
        assert points.get_user_points(user_id).current_points == 10
