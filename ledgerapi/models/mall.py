import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.schema import UniqueConstraint

from ledgerapi.models.base import BaseModel, BigIntegerId, JSONType


class ProductType(str, enum.Enum):
    VIRTUAL = "virtual"


class InventoryItemStatus(str, enum.Enum):
    AVAILABLE = "available"  # 미사용
    USED = "used"  # 교환 완료


class ExchangeStatus(str, enum.Enum):
    COMPLETED = "completed"


# stock 이 이 값이면 무제한
UNLIMITED_STOCK = -1


class PointsProduct(BaseModel):
    __tablename__ = "points_products"
    __table_args__ = (Index("idx_points_products_active", "is_active", "type"),)

    id: Mapped[int] = mapped_column(BigIntegerId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(
        String(20), default=ProductType.VIRTUAL.value, nullable=False
    )
    points_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, default=UNLIMITED_STOCK, nullable=False)
    tags: Mapped[List[str]] = mapped_column(JSONType, default=list, nullable=False)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)


class VirtualProductItem(BaseModel):
    """교환용 코드(卡密) 한 건 - redeemed_by/redeemed_at 은 단 한 번만 기록"""

    __tablename__ = "virtual_product_items"
    __table_args__ = (
        UniqueConstraint("product_id", "code", name="uq_virtual_item_product_code"),
        Index("idx_virtual_items_product_status", "product_id", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntegerId, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        BigIntegerId, ForeignKey("points_products.id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=InventoryItemStatus.AVAILABLE.value, nullable=False
    )
    redeemed_by: Mapped[Optional[int]] = mapped_column(
        BigIntegerId, ForeignKey("users.id"), nullable=True
    )
    redeemed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class PointsExchange(BaseModel):
    """교환 기록 - 교환 시점의 가격 스냅샷"""

    __tablename__ = "points_exchanges"
    __table_args__ = (Index("idx_points_exchanges_user", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(BigIntegerId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigIntegerId, ForeignKey("users.id"), nullable=False
    )
    product_id: Mapped[int] = mapped_column(
        BigIntegerId, ForeignKey("points_products.id"), nullable=False
    )
    item_id: Mapped[Optional[int]] = mapped_column(
        BigIntegerId, ForeignKey("virtual_product_items.id"), nullable=True
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    points_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=ExchangeStatus.COMPLETED.value, nullable=False
    )
    exchange_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
