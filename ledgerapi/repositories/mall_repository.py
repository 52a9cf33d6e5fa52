from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import String, case, cast, desc, func, or_
from sqlalchemy.orm import Session

from ledgerapi.models.mall import (
    InventoryItemStatus,
    PointsExchange as PointsExchangeModel,
    PointsProduct as PointsProductModel,
    ProductType,
    UNLIMITED_STOCK,
    VirtualProductItem as VirtualProductItemModel,
)
from ledgerapi.models.user import User as UserModel
from ledgerapi.repositories.base import BaseRepository
from ledgerapi.schemas.mall import (
    ExchangeResponse,
    InventoryItemResponse,
    ProductResponse,
)


def _tags_overlap(tags: List[str]):
    """tags 중 하나라도 포함 (JSON 배열 텍스트 매칭)"""
    column = cast(PointsProductModel.tags, String)
    return or_(*[column.like(f'%"{tag}"%') for tag in tags])


def _keyword_match(keyword: str):
    pattern = f"%{keyword}%"
    return or_(
        PointsProductModel.name.ilike(pattern),
        PointsProductModel.description.ilike(pattern),
    )


class ProductRepository(BaseRepository[PointsProductModel, ProductResponse]):
    def __init__(self, db: Session):
        super().__init__(PointsProductModel, ProductResponse, db)

    def _inventory_counts(self, product_ids: List[int]) -> Dict[int, Tuple[int, int]]:
        """product_id -> (available, used)"""
        if not product_ids:
            return {}
        rows = (
            self.db.query(
                VirtualProductItemModel.product_id,
                func.count(case((VirtualProductItemModel.status == InventoryItemStatus.AVAILABLE.value, 1))),
                func.count(case((VirtualProductItemModel.status == InventoryItemStatus.USED.value, 1))),
            )
            .filter(VirtualProductItemModel.product_id.in_(product_ids))
            .group_by(VirtualProductItemModel.product_id)
            .all()
        )
        return {int(row[0]): (int(row[1]), int(row[2])) for row in rows}

    def _with_counts(self, products: List[PointsProductModel]) -> List[ProductResponse]:
        counts = self._inventory_counts([p.id for p in products])
        results = []
        for product in products:
            schema = self._to_schema(product)
            schema.available_count, schema.used_count = counts.get(product.id, (0, 0))
            results.append(schema)
        return results

    def to_response(self, product: PointsProductModel) -> ProductResponse:
        return self._with_counts([product])[0]

    def list_products(
        self,
        limit: int,
        offset: int,
        keyword: Optional[str] = None,
        tags: Optional[List[str]] = None,
        is_active: Optional[bool] = None,
        in_stock_only: bool = False,
    ) -> Tuple[List[ProductResponse], int]:
        query = self.db.query(PointsProductModel).filter(
            PointsProductModel.type == ProductType.VIRTUAL.value
        )
        if is_active is not None:
            query = query.filter(PointsProductModel.is_active.is_(is_active))
        if keyword:
            query = query.filter(_keyword_match(keyword))
        if tags:
            query = query.filter(_tags_overlap(tags))
        if in_stock_only:
            query = query.filter(
                or_(PointsProductModel.stock == UNLIMITED_STOCK, PointsProductModel.stock > 0)
            )
        query = query.order_by(desc(PointsProductModel.created_at), desc(PointsProductModel.id))
        products, total = self._paginate(query, limit, offset)
        return self._with_counts(products), total


class InventoryRepository(BaseRepository[VirtualProductItemModel, InventoryItemResponse]):
    def __init__(self, db: Session):
        super().__init__(VirtualProductItemModel, InventoryItemResponse, db)

    def claim_available(self, product_id: int) -> Optional[VirtualProductItemModel]:
        """
        미사용 코드 1건을 잠금 획득

        SKIP LOCKED: 다른 트랜잭션이 잡고 있는 행은 건너뛰어 동시 교환이 서로 대기하지 않음
        """
        return (
            self.db.query(VirtualProductItemModel)
            .filter(
                VirtualProductItemModel.product_id == product_id,
                VirtualProductItemModel.status == InventoryItemStatus.AVAILABLE.value,
            )
            .order_by(VirtualProductItemModel.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
            .populate_existing()
            .first()
        )

    def existing_codes(self, product_id: int, codes: List[str]) -> set:
        rows = (
            self.db.query(VirtualProductItemModel.code)
            .filter(
                VirtualProductItemModel.product_id == product_id,
                VirtualProductItemModel.code.in_(codes),
            )
            .all()
        )
        return {row[0] for row in rows}

    def bulk_insert(self, product_id: int, codes: List[str]) -> int:
        for code in codes:
            self.db.add(VirtualProductItemModel(product_id=product_id, code=code))
        self.db.flush()
        return len(codes)

    def list_items(
        self, product_id: int, limit: int, offset: int, status: Optional[str] = None
    ) -> Tuple[List[InventoryItemResponse], int]:
        query = self.db.query(VirtualProductItemModel).filter(
            VirtualProductItemModel.product_id == product_id
        )
        if status:
            query = query.filter(VirtualProductItemModel.status == status)
        query = query.order_by(desc(VirtualProductItemModel.id))
        items, total = self._paginate(query, limit, offset)
        return self._to_schemas(items), total


class ExchangeRepository(BaseRepository[PointsExchangeModel, ExchangeResponse]):
    def __init__(self, db: Session):
        super().__init__(PointsExchangeModel, ExchangeResponse, db)

    def list_exchanges(
        self,
        limit: int,
        offset: int,
        user_id: Optional[int] = None,
        product_id: Optional[int] = None,
        status: Optional[str] = None,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
    ) -> Tuple[List[ExchangeResponse], int]:
        query = (
            self.db.query(
                PointsExchangeModel,
                PointsProductModel.name,
                VirtualProductItemModel.code,
                UserModel.username,
            )
            .join(PointsProductModel, PointsProductModel.id == PointsExchangeModel.product_id)
            .join(UserModel, UserModel.id == PointsExchangeModel.user_id)
            .outerjoin(
                VirtualProductItemModel,
                VirtualProductItemModel.id == PointsExchangeModel.item_id,
            )
            .filter(PointsProductModel.type == ProductType.VIRTUAL.value)
        )
        if user_id is not None:
            query = query.filter(PointsExchangeModel.user_id == user_id)
        if product_id is not None:
            query = query.filter(PointsExchangeModel.product_id == product_id)
        if status:
            query = query.filter(PointsExchangeModel.status == status)
        if start_at is not None:
            query = query.filter(PointsExchangeModel.created_at >= start_at)
        if end_at is not None:
            query = query.filter(PointsExchangeModel.created_at <= end_at)

        query = query.order_by(desc(PointsExchangeModel.id))
        rows, total = self._paginate(query, limit, offset)

        items = []
        for exchange, product_name, code, username in rows:
            schema = self._to_schema(exchange)
            schema.product_name = product_name
            schema.redeem_code = (exchange.exchange_data or {}).get("code") or code
            schema.username = username
            items.append(schema)
        return items, total
