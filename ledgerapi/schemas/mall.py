from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ledgerapi.schemas.points import PointsChangeResult


class ProductCreate(BaseModel):
    """가상 상품 등록 요청"""

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    points_cost: int = Field(..., gt=0)
    stock: int = Field(-1, ge=-1, description="-1 은 무제한")
    tags: List[str] = Field(default_factory=list)
    details: Optional[Dict[str, Any]] = None
    image_url: Optional[str] = None
    is_active: bool = True

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(tag.strip() for tag in value if tag and tag.strip()))


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    points_cost: Optional[int] = Field(None, gt=0)
    stock: Optional[int] = Field(None, ge=-1)
    tags: Optional[List[str]] = None
    details: Optional[Dict[str, Any]] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return value
        return list(dict.fromkeys(tag.strip() for tag in value if tag and tag.strip()))


class ProductResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    type: str
    points_cost: int
    stock: int
    tags: List[str] = Field(default_factory=list)
    details: Optional[Dict[str, Any]] = None
    image_url: Optional[str] = None
    is_active: bool
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    available_count: Optional[int] = Field(None, description="미사용 코드 수")
    used_count: Optional[int] = Field(None, description="사용된 코드 수")

    class Config:
        from_attributes = True


class InventoryItemResponse(BaseModel):
    id: int
    product_id: int
    code: str
    status: str
    redeemed_by: Optional[int] = None
    redeemed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InventoryAddRequest(BaseModel):
    codes: List[str] = Field(..., min_length=1)


class InventoryAddResult(BaseModel):
    product_id: int
    requested: int
    inserted: int
    skipped: int


class ExchangeResponse(BaseModel):
    id: int
    user_id: int
    product_id: int
    item_id: Optional[int] = None
    quantity: int
    points_cost: int
    total_points: int
    status: str
    exchange_data: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    product_name: Optional[str] = None
    redeem_code: Optional[str] = None
    username: Optional[str] = None

    class Config:
        from_attributes = True


class RedemptionResult(BaseModel):
    """상품 교환 결과"""

    product: ProductResponse
    item: InventoryItemResponse
    exchange: ExchangeResponse
    points: PointsChangeResult
