"""
포인트 상점 API 라우터

- GET /mall/products: 판매 중 + 재고 있는 상품 목록 (키워드/태그 필터)
- GET /mall/products/{product_id}: 상품 상세
- POST /mall/products/{product_id}/redeem: 가상 상품 교환
- GET /mall/exchanges: 내 교환 내역
"""

from typing import List, Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Path, Query

from ledgerapi.containers import Container
from ledgerapi.core.auth_middleware import get_current_user
from ledgerapi.core.exceptions import NotFoundError
from ledgerapi.schemas.mall import ExchangeResponse, ProductResponse, RedemptionResult
from ledgerapi.schemas.pagination import PaginatedResponse
from ledgerapi.schemas.user import CurrentUser
from ledgerapi.services.mall_service import MallService

router = APIRouter(prefix="/mall", tags=["mall"])


@router.get("/products", response_model=PaginatedResponse[ProductResponse])
@inject
async def list_products(
    keyword: Optional[str] = Query(None, description="이름/설명 검색"),
    tags: Optional[List[str]] = Query(None, description="태그 (하나라도 일치)"),
    limit: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    mall_service: MallService = Depends(Provide[Container.services.mall_service]),
):
    return mall_service.list_active_products(keyword=keyword, tags=tags, limit=limit, offset=offset)


@router.get("/products/{product_id}", response_model=ProductResponse)
@inject
async def get_product(
    product_id: int = Path(..., ge=1),
    current_user: CurrentUser = Depends(get_current_user),
    mall_service: MallService = Depends(Provide[Container.services.mall_service]),
):
    product = mall_service.get_product(product_id)
    if not product.is_active:
        raise NotFoundError("商品不存在或已下架")
    return product


@router.post("/products/{product_id}/redeem", response_model=RedemptionResult)
@inject
async def redeem_product(
    product_id: int = Path(..., ge=1),
    current_user: CurrentUser = Depends(get_current_user),
    mall_service: MallService = Depends(Provide[Container.services.mall_service]),
):
    """
    가상 상품 교환 - 교환 코드 1개 발급

    HTTP Status:
        200: 교환 성공 (응답의 item.code 가 교환 코드)
        400: 재고 부족 (INVENTORY_001) 또는 포인트 부족 (BALANCE_001)
        404: 상품 없음 또는 판매 중지
    """
    return mall_service.redeem_virtual_product(product_id, current_user.id)


@router.get("/exchanges", response_model=PaginatedResponse[ExchangeResponse])
@inject
async def get_my_exchanges(
    status: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    offset: int = Query(0, ge=0),
    current_user: CurrentUser = Depends(get_current_user),
    mall_service: MallService = Depends(Provide[Container.services.mall_service]),
):
    return mall_service.get_user_exchanges(current_user.id, status=status, limit=limit, offset=offset)
