import logging
from datetime import datetime
from typing import List, Optional

from ledgerapi.core.exceptions import (
    BusinessLogicError,
    InsufficientInventoryError,
    NotFoundError,
    ValidationError,
)
from ledgerapi.database.connection import Database
from ledgerapi.models.mall import (
    ExchangeStatus,
    InventoryItemStatus,
    ProductType,
    UNLIMITED_STOCK,
)
from ledgerapi.models.points import PointsRecordType
from ledgerapi.repositories.mall_repository import (
    ExchangeRepository,
    InventoryRepository,
    ProductRepository,
)
from ledgerapi.schemas.mall import (
    ExchangeResponse,
    InventoryAddResult,
    InventoryItemResponse,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
    RedemptionResult,
)
from ledgerapi.schemas.pagination import PaginatedResponse, PaginationLimits
from ledgerapi.services.point_service import PointService
from ledgerapi.utils.timezone_utils import get_utc_now

logger = logging.getLogger(__name__)

PRODUCT_STATUS_FILTERS = {"active": True, "inactive": False}


class MallService:
    """포인트 상점 (가상 상품 / 교환 코드) 서비스"""

    def __init__(self, database: Database, point_service: PointService):
        self.database = database
        self.point_service = point_service

    def redeem_virtual_product(self, product_id: int, user_id: int) -> RedemptionResult:
        """
        가상 상품 교환

        상품 잠금 -> 미사용 코드 SKIP LOCKED 획득 -> 포인트 차감 -> 교환 기록 -> 코드 사용 처리.
        어느 단계에서든 실패하면 전체 롤백되어 코드는 available 로 남는다.
        """
        with self.database.transaction() as session:
            product_repo = ProductRepository(session)
            product = product_repo.lock_by_id(product_id)
            if (
                product is None
                or product.type != ProductType.VIRTUAL.value
                or not product.is_active
            ):
                raise NotFoundError("商品不存在或已下架")

            item = InventoryRepository(session).claim_available(product_id)
            if item is None:
                logger.warning(f"Product {product_id} out of inventory (user {user_id})")
                raise InsufficientInventoryError("库存不足")

            points_result = self.point_service.deduct_points(
                user_id,
                product.points_cost,
                PointsRecordType.POINTS_MALL.value,
                description=f"兑换商品：{product.name}",
                reference_id=product.id,
                reference_type="points_product",
                tx=session,
            )

            exchange = ExchangeRepository(session).create(
                user_id=user_id,
                product_id=product.id,
                item_id=item.id,
                quantity=1,
                points_cost=product.points_cost,
                total_points=product.points_cost,
                status=ExchangeStatus.COMPLETED.value,
                exchange_data={"code": item.code},
            )

            item.status = InventoryItemStatus.USED.value
            item.redeemed_by = user_id
            item.redeemed_at = get_utc_now()
            if product.stock != UNLIMITED_STOCK:
                product.stock = max(product.stock - 1, 0)
            session.flush()

            result = RedemptionResult(
                product=product_repo.to_response(product),
                item=InventoryItemResponse.model_validate(item),
                exchange=ExchangeResponse.model_validate(exchange),
                points=points_result,
            )

        logger.info(
            f"User {user_id} redeemed product {product_id} (item {result.item.id}) "
            f"for {result.exchange.total_points} points"
        )
        return result

    def create_product(
        self, request: ProductCreate, operator_id: Optional[int] = None
    ) -> ProductResponse:
        with self.database.transaction() as session:
            repo = ProductRepository(session)
            product = repo.create(
                **request.model_dump(),
                type=ProductType.VIRTUAL.value,
                created_by=operator_id,
            )
            result = repo.to_response(product)

        logger.info(f"Product {result.id} created by {operator_id}")
        return result

    def update_product(self, product_id: int, request: ProductUpdate) -> ProductResponse:
        changes = request.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("没有可更新的字段")

        with self.database.transaction() as session:
            repo = ProductRepository(session)
            product = repo.lock_by_id(product_id)
            if product is None:
                raise NotFoundError("商品不存在")
            for key, value in changes.items():
                setattr(product, key, value)
            session.flush()
            return repo.to_response(product)

    def get_product(self, product_id: int) -> ProductResponse:
        with self.database.transaction() as session:
            repo = ProductRepository(session)
            product = repo.get_model(product_id)
            if product is None:
                raise NotFoundError("商品不存在")
            return repo.to_response(product)

    def list_products_for_admin(
        self,
        keyword: Optional[str] = None,
        tags: Optional[List[str]] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> PaginatedResponse[ProductResponse]:
        limit = PaginationLimits.clamp(PaginationLimits.PRODUCTS, limit)
        with self.database.transaction() as session:
            items, total = ProductRepository(session).list_products(
                limit,
                offset,
                keyword=keyword,
                tags=tags,
                is_active=PRODUCT_STATUS_FILTERS.get(status or ""),
            )
        return PaginatedResponse[ProductResponse].of(items, total, limit, offset)

    def list_active_products(
        self,
        keyword: Optional[str] = None,
        tags: Optional[List[str]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> PaginatedResponse[ProductResponse]:
        limit = PaginationLimits.clamp(PaginationLimits.PRODUCTS, limit)
        with self.database.transaction() as session:
            items, total = ProductRepository(session).list_products(
                limit,
                offset,
                keyword=keyword,
                tags=tags,
                is_active=True,
                in_stock_only=True,
            )
        return PaginatedResponse[ProductResponse].of(items, total, limit, offset)

    def add_inventory_items(
        self, product_id: int, codes: List[str], operator_id: Optional[int] = None
    ) -> InventoryAddResult:
        """교환 코드 일괄 등록 - 공백 제거, 빈 값/중복은 건너뜀"""
        normalized = list(
            dict.fromkeys(code.strip() for code in codes if isinstance(code, str) and code.strip())
        )
        if not normalized:
            raise ValidationError("兑换码格式无效")

        with self.database.transaction() as session:
            product = ProductRepository(session).lock_by_id(product_id)
            if product is None:
                raise NotFoundError("商品不存在")
            if product.type != ProductType.VIRTUAL.value:
                raise BusinessLogicError("MALL_001", "仅虚拟商品支持兑换码库存")

            inventory_repo = InventoryRepository(session)
            existing = inventory_repo.existing_codes(product_id, normalized)
            new_codes = [code for code in normalized if code not in existing]
            inserted = inventory_repo.bulk_insert(product_id, new_codes) if new_codes else 0

        logger.info(
            f"Added {inserted} inventory items to product {product_id} by {operator_id} "
            f"({len(codes) - inserted} skipped)"
        )
        return InventoryAddResult(
            product_id=product_id,
            requested=len(codes),
            inserted=inserted,
            skipped=len(codes) - inserted,
        )

    def get_inventory_items(
        self,
        product_id: int,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> PaginatedResponse[InventoryItemResponse]:
        if status and status not in {s.value for s in InventoryItemStatus}:
            raise ValidationError(f"无效的库存状态: {status}")
        limit = PaginationLimits.clamp(PaginationLimits.PRODUCTS, limit)
        with self.database.transaction() as session:
            items, total = InventoryRepository(session).list_items(
                product_id, limit, offset, status=status
            )
        return PaginatedResponse[InventoryItemResponse].of(items, total, limit, offset)

    def get_user_exchanges(
        self,
        user_id: int,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> PaginatedResponse[ExchangeResponse]:
        limit = PaginationLimits.clamp(PaginationLimits.EXCHANGES, limit)
        with self.database.transaction() as session:
            items, total = ExchangeRepository(session).list_exchanges(
                limit, offset, user_id=user_id, status=status
            )
        return PaginatedResponse[ExchangeResponse].of(items, total, limit, offset)

    def get_admin_exchanges(
        self,
        user_id: Optional[int] = None,
        product_id: Optional[int] = None,
        status: Optional[str] = None,
        start_at: Optional[datetime] = None,
        end_at: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> PaginatedResponse[ExchangeResponse]:
        limit = PaginationLimits.clamp(PaginationLimits.EXCHANGES, limit)
        with self.database.transaction() as session:
            items, total = ExchangeRepository(session).list_exchanges(
                limit,
                offset,
                user_id=user_id,
                product_id=product_id,
                status=status,
                start_at=start_at,
                end_at=end_at,
            )
        return PaginatedResponse[ExchangeResponse].of(items, total, limit, offset)
