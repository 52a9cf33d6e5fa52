# Repository layer - Data access with Pydantic responses

from .base import BaseRepository
from .user_repository import UserRepository
from .points_repository import PointsRepository
from .checkin_repository import CheckinConfigRepository, CheckinRepository
from .mall_repository import ProductRepository, InventoryRepository, ExchangeRepository
from .referral_repository import (
    ReferralRepository,
    CommissionRepository,
    PayoutRepository,
    PayoutSettingRepository,
)
from .system_setting_repository import SystemSettingRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "PointsRepository",
    "CheckinConfigRepository",
    "CheckinRepository",
    "ProductRepository",
    "InventoryRepository",
    "ExchangeRepository",
    "ReferralRepository",
    "CommissionRepository",
    "PayoutRepository",
    "PayoutSettingRepository",
    "SystemSettingRepository",
]
