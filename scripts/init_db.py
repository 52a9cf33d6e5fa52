import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import text

from ledgerapi.config import settings
from ledgerapi.database.session import database
from ledgerapi.models import Base
from ledgerapi.models.checkin import CheckinConfig


def init_db(with_default_config: bool = True):
    """데이터베이스 초기화 - 스키마/테이블 생성 + 기본 체크인 규칙"""
    database.init()
    engine = database.engine
    try:
        if engine.url.get_backend_name() == "postgresql":
            with engine.connect() as conn:
                conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {settings.POSTGRES_SCHEMA}"))
                conn.commit()

        Base.metadata.create_all(bind=engine)

        if with_default_config:
            with database.transaction() as session:
                if session.query(CheckinConfig.id).first() is None:
                    session.add(
                        CheckinConfig(
                            name="默认签到规则",
                            description="每日签到 10 积分，连续 7 天额外奖励 20 积分",
                            daily_points=10,
                            consecutive_bonus={"7": 20},
                            is_active=True,
                        )
                    )
        print(f"Database initialized successfully with schema: {settings.POSTGRES_SCHEMA}")
    except Exception as e:
        print(f"Database initialization failed: {str(e)}")
        raise
    finally:
        database.shutdown()


if __name__ == "__main__":
    init_db()
