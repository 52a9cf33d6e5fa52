import math
from pydantic import BaseModel, Field
from typing import Generic, TypeVar, List

T = TypeVar('T')


class PaginationInfo(BaseModel):
    """페이지네이션 메타 정보 (응답 키는 camelCase)"""
    total: int
    limit: int
    offset: int
    page: int
    total_pages: int = Field(..., alias="totalPages")
    has_next: bool = Field(..., alias="hasNext")
    has_prev: bool = Field(..., alias="hasPrev")

    class Config:
        populate_by_name = True

    @classmethod
    def build(cls, total: int, limit: int, offset: int) -> "PaginationInfo":
        return cls(
            total=total,
            limit=limit,
            offset=offset,
            page=offset // limit + 1 if limit else 1,
            total_pages=math.ceil(total / limit) if limit else 0,
            has_next=offset + limit < total,
            has_prev=offset > 0,
        )


class PaginatedResponse(BaseModel, Generic[T]):
    """{items, pagination} 형태의 목록 응답"""
    items: List[T]
    pagination: PaginationInfo

    @classmethod
    def of(cls, items: List[T], total: int, limit: int, offset: int):
        return cls(items=items, pagination=PaginationInfo.build(total, limit, offset))


# 엔드포인트별 페이지네이션 제한
class PaginationLimits:
    POINTS_RECORDS = {"min": 1, "max": 100, "default": 20}
    CHECKIN_HISTORY = {"min": 1, "max": 100, "default": 30}
    PRODUCTS = {"min": 1, "max": 100, "default": 20}
    EXCHANGES = {"min": 1, "max": 100, "default": 20}
    COMMISSIONS = {"min": 1, "max": 100, "default": 20}
    PAYOUTS = {"min": 1, "max": 100, "default": 20}
    LEADERBOARD = {"min": 1, "max": 100, "default": 10}

    @staticmethod
    def clamp(limits: dict, limit: int) -> int:
        """범위를 벗어난 limit 보정"""
        if limit is None:
            return limits["default"]
        return max(limits["min"], min(limit, limits["max"]))
