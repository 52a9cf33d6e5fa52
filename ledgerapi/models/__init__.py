from ledgerapi.models.base import Base
from ledgerapi.models.user import User, UserRole, UserStatus
from ledgerapi.models.points import PointsRecord, PointsRecordType
from ledgerapi.models.checkin import CheckinConfig, CheckinConfigRole, UserCheckin
from ledgerapi.models.mall import PointsProduct, VirtualProductItem, PointsExchange
from ledgerapi.models.referral import (
    UserReferral,
    ReferralCommission,
    ReferralPayoutRequest,
    ReferralPayoutSetting,
)
from ledgerapi.models.system_setting import SystemSetting

__all__ = [
    "Base",
    "User",
    "UserRole",
    "UserStatus",
    "PointsRecord",
    "PointsRecordType",
    "CheckinConfig",
    "CheckinConfigRole",
    "UserCheckin",
    "PointsProduct",
    "VirtualProductItem",
    "PointsExchange",
    "UserReferral",
    "ReferralCommission",
    "ReferralPayoutRequest",
    "ReferralPayoutSetting",
    "SystemSetting",
]
