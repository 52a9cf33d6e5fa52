import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ledgerapi.config import settings
from ledgerapi.core.exceptions import InternalServerError, LedgerTimeoutError

logger = logging.getLogger(__name__)

# query_canceled(statement_timeout), lock_not_available(lock_timeout)
TIMEOUT_PGCODES = {"57014", "55P03"}


def _is_timeout(exc: OperationalError) -> bool:
    pgcode = getattr(exc.orig, "pgcode", None)
    return pgcode in TIMEOUT_PGCODES


class Database:
    """
    Unit-of-Work 협력 객체

    - init(url) / shutdown() 로 엔진 생명주기를 명시적으로 관리
    - query(sql, params): 단순 조회용, dict 목록 반환
    - transaction(tx=None): BEGIN/COMMIT/ROLLBACK 자동 처리.
      tx 가 주어지면 호출자의 트랜잭션에 합류하고 커밋은 호출자가 담당
    - get_client(): 수동 범위 관리를 위한 Session
    """

    def __init__(self, url: Optional[str] = None, **engine_kwargs: Any):
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        if url:
            self.init(url, **engine_kwargs)

    def init(self, url: Optional[str] = None, **engine_kwargs: Any) -> None:
        if self._engine is not None:
            return

        url = url or settings.database_url
        options: Dict[str, Any] = {"echo": settings.DEBUG}  # 디버그 모드에서 SQL 로깅
        if url.startswith("postgresql"):
            options.update(
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_pre_ping=True,  # 연결 유효성 검사
                pool_recycle=3600,  # 1시간마다 연결 재생성
                connect_args={
                    "options": (
                        f"-csearch_path={settings.POSTGRES_SCHEMA} "
                        f"-cstatement_timeout={settings.DB_STATEMENT_TIMEOUT_MS} "
                        f"-clock_timeout={settings.DB_LOCK_TIMEOUT_MS}"
                    )
                },
            )
        options.update(engine_kwargs)

        self._engine = create_engine(url, **options)
        # expire_on_commit=False: 커밋 후에도 반환된 객체 속성 접근 가능
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self._engine,
            expire_on_commit=False,
        )
        logger.info(f"Database initialized ({self._engine.url.get_backend_name()})")

    def shutdown(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database connections disposed")

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise InternalServerError("Database is not initialized")
        return self._engine

    def get_client(self) -> Session:
        """호출자가 직접 close 해야 하는 Session"""
        if self._session_factory is None:
            raise InternalServerError("Database is not initialized")
        return self._session_factory()

    def query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            result = conn.execute(text(sql), params or {})
            if not result.returns_rows:
                conn.commit()
                return []
            return [dict(row._mapping) for row in result]

    @contextmanager
    def transaction(self, tx: Optional[Session] = None) -> Iterator[Session]:
        """원자적 작업 단위

        Args:
            tx: 이미 열린 트랜잭션. 주어지면 그대로 사용하며 커밋/롤백하지 않음
        """
        if tx is not None:
            yield tx
            return

        session = self.get_client()
        try:
            yield session
            session.commit()
        except OperationalError as e:
            session.rollback()
            if _is_timeout(e):
                logger.warning(f"Transaction aborted by timeout: {e.orig}")
                raise LedgerTimeoutError(details={"reason": str(e.orig)}) from e
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
