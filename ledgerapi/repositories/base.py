from abc import ABC
from typing import TypeVar, Generic, Optional, List, Any, Type, Tuple
from sqlalchemy.orm import Session, Query
from pydantic import BaseModel

T = TypeVar("T")
SchemaType = TypeVar("SchemaType", bound=BaseModel)


class BaseRepository(Generic[T, SchemaType], ABC):
    """
    모든 리포지토리의 베이스 클래스

    세션은 호출자(Database.transaction)가 소유한다.
    리포지토리는 flush 만 하고 commit/rollback 하지 않는다.
    """

    def __init__(
        self, model_class: Type[T], schema_class: Type[SchemaType], db: Session
    ):
        self.model_class = model_class
        self.schema_class = schema_class
        self.db = db

    def _to_schema(self, model_instance: Any) -> Optional[SchemaType]:
        """SQLAlchemy 모델을 Pydantic 스키마로 변환"""
        if model_instance is None:
            return None
        return self.schema_class.model_validate(model_instance)

    def _to_schemas(self, model_instances: List[Any]) -> List[SchemaType]:
        return [self._to_schema(instance) for instance in model_instances]

    def get_model(self, id: Any) -> Optional[T]:
        return self.db.get(self.model_class, id)

    def get_by_id(self, id: Any) -> Optional[SchemaType]:
        """ID로 조회 - Pydantic 스키마 반환"""
        return self._to_schema(self.get_model(id))

    def lock_by_id(self, id: Any) -> Optional[T]:
        """SELECT ... FOR UPDATE - 트랜잭션 종료까지 행 잠금"""
        return (
            self.db.query(self.model_class)
            .filter(getattr(self.model_class, "id") == id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def create(self, **kwargs) -> T:
        """새 레코드 생성 (flush 후 server default 반영)"""
        instance = self.model_class(**kwargs)
        self.db.add(instance)
        self.db.flush()
        self.db.refresh(instance)
        return instance

    def _paginate(self, query: Query, limit: int, offset: int) -> Tuple[List[T], int]:
        """(현재 페이지 목록, 전체 개수)"""
        total = query.order_by(None).count()
        items = query.offset(offset).limit(limit).all()
        return items, total
