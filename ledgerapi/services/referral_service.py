import logging
import secrets
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ledgerapi.config import Settings
from ledgerapi.core.exceptions import (
    BusinessLogicError,
    ConflictError,
    InternalServerError,
    NotFoundError,
    ValidationError,
)
from ledgerapi.database.connection import Database
from ledgerapi.models.user import UserStatus
from ledgerapi.repositories.referral_repository import (
    PayoutRepository,
    ReferralRepository,
)
from ledgerapi.repositories.user_repository import UserRepository
from ledgerapi.schemas.pagination import PaginatedResponse, PaginationLimits
from ledgerapi.schemas.referral import (
    InviteeInfo,
    InviterInfo,
    InviteStats,
    ReferralCodeResponse,
    ReferralDashboard,
)
from ledgerapi.services.commission_service import CommissionService
from ledgerapi.services.payout_service import PayoutService
from ledgerapi.utils.timezone_utils import get_utc_now

logger = logging.getLogger(__name__)

# 혼동되는 문자(I, O, 0, 1) 제외
REFERRAL_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
DASHBOARD_INVITEE_LIMIT = 20


def generate_code(length: int = 8) -> str:
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(length))


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class ReferralService:
    """초대 코드 / 상하위 관계 / 초대 현황"""

    def __init__(
        self,
        database: Database,
        settings: Settings,
        commission_service: CommissionService,
        payout_service: PayoutService,
    ):
        self.database = database
        self.settings = settings
        self.commission_service = commission_service
        self.payout_service = payout_service

    def get_user_code(self, user_id: int) -> Optional[str]:
        with self.database.transaction() as session:
            user = UserRepository(session).get_model(user_id)
            if user is None:
                raise NotFoundError("用户不存在")
            return user.referral_code

    def ensure_code(self, user_id: int, force_new: bool = False) -> ReferralCodeResponse:
        """
        초대 코드 보장 - 없거나 force_new 이면 새로 발급

        유니크 제약 충돌 시 REFERRAL_CODE_MAX_ATTEMPTS 회까지 재시도
        """
        existing = self.get_user_code(user_id)
        if existing and not force_new:
            return ReferralCodeResponse(user_id=user_id, referral_code=existing)

        for attempt in range(self.settings.REFERRAL_CODE_MAX_ATTEMPTS):
            code = generate_code(self.settings.REFERRAL_CODE_LENGTH)
            try:
                with self.database.transaction() as session:
                    user = UserRepository(session).lock_by_id(user_id)
                    if user is None:
                        raise NotFoundError("用户不存在")
                    user.referral_code = code
                    session.flush()
            except IntegrityError:
                logger.warning(f"Referral code collision for user {user_id} (attempt {attempt + 1})")
                continue

            logger.info(f"Referral code issued for user {user_id} (force_new={force_new})")
            return ReferralCodeResponse(user_id=user_id, referral_code=code)

        logger.error(f"Failed to issue referral code for user {user_id}")
        raise InternalServerError("生成邀请码失败，请稍后重试")

    def find_inviter_by_code(self, code: Optional[str]) -> Optional[InviterInfo]:
        normalized = normalize_code(code)
        if not normalized:
            return None
        with self.database.transaction() as session:
            inviter = UserRepository(session).get_by_referral_code(normalized)
            if inviter is None:
                return None
            return InviterInfo(
                inviter_id=inviter.id,
                username=inviter.username,
                nickname=inviter.nickname,
                referral_code=inviter.referral_code,
            )

    def validate_referral_code(self, code: Optional[str]) -> Optional[InviterInfo]:
        normalized = normalize_code(code)
        if not normalized:
            return None
        with self.database.transaction() as session:
            inviter = UserRepository(session).get_by_referral_code(normalized)
            if inviter is None:
                raise NotFoundError("邀请码不存在")
            if inviter.status != UserStatus.NORMAL.value:
                raise BusinessLogicError("REFERRAL_002", "邀请码对应的用户状态异常")
            return InviterInfo(
                inviter_id=inviter.id,
                username=inviter.username,
                nickname=inviter.nickname,
                referral_code=inviter.referral_code,
            )

    def bind_inviter(self, invitee_id: int, code: Optional[str]) -> InviterInfo:
        """
        피초대자에게 상위 초대자 연결 (1회만 가능)

        invitee 행을 잠근 뒤 users.inviter_id 와 user_referrals 를 함께 기록
        """
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError("邀请码不能为空")

        try:
            with self.database.transaction() as session:
                user_repo = UserRepository(session)
                inviter = user_repo.get_by_referral_code(normalized)
                if inviter is None:
                    raise NotFoundError("邀请码无效")
                if inviter.id == invitee_id:
                    raise BusinessLogicError("REFERRAL_001", "不能绑定自己为上级")

                invitee = user_repo.lock_by_id(invitee_id)
                if invitee is None:
                    raise NotFoundError("用户不存在")
                if invitee.inviter_id is not None:
                    raise ConflictError("用户已绑定上级")

                now = get_utc_now()
                invitee.inviter_id = inviter.id
                invitee.invited_at = invitee.invited_at or now
                ReferralRepository(session).create(
                    inviter_id=inviter.id,
                    invitee_id=invitee_id,
                    referral_code=normalized,
                )
                result = InviterInfo(
                    inviter_id=inviter.id,
                    username=inviter.username,
                    nickname=inviter.nickname,
                    referral_code=inviter.referral_code,
                    invited_at=invitee.invited_at,
                )
        except IntegrityError:
            raise ConflictError("用户已绑定上级")

        logger.info(f"User {invitee_id} bound to inviter {result.inviter_id}")
        return result

    def get_inviter(self, invitee_id: int) -> Optional[InviterInfo]:
        with self.database.transaction() as session:
            user_repo = UserRepository(session)
            invitee = user_repo.get_model(invitee_id)
            if invitee is None:
                raise NotFoundError("用户不存在")
            if invitee.inviter_id is None:
                return None
            inviter = user_repo.get_model(invitee.inviter_id)
            return InviterInfo(
                inviter_id=inviter.id,
                username=inviter.username,
                nickname=inviter.nickname,
                referral_code=inviter.referral_code,
                invited_at=invitee.invited_at,
            )

    def list_invitees(
        self, inviter_id: int, limit: Optional[int] = None, offset: int = 0
    ) -> PaginatedResponse[InviteeInfo]:
        limit = PaginationLimits.clamp(PaginationLimits.COMMISSIONS, limit)
        with self.database.transaction() as session:
            items, total = ReferralRepository(session).list_invitees(inviter_id, limit, offset)
        return PaginatedResponse[InviteeInfo].of(items, total, limit, offset)

    def get_invite_stats(self, inviter_id: int) -> InviteStats:
        with self.database.transaction() as session:
            user = UserRepository(session).get_model(inviter_id)
            if user is None:
                raise NotFoundError("用户不存在")
            invite_count = ReferralRepository(session).count_invitees(inviter_id)
            processing, paid, _ = PayoutRepository(session).get_amounts(inviter_id)
            return InviteStats(
                invite_count=invite_count,
                commission_balance=user.commission_balance,
                commission_pending_balance=user.commission_pending_balance,
                total_commission_earned=user.total_commission_earned,
                payout_processing_amount=processing,
                payout_paid_amount=paid,
            )

    def get_referral_dashboard(self, user_id: int) -> ReferralDashboard:
        """초대 현황 대시보드 - 코드, 통계, 최근 피초대자, 상위 초대자, 출금 계좌"""
        return ReferralDashboard(
            referral_code=self.get_user_code(user_id),
            stats=self.get_invite_stats(user_id),
            commission_summary=self.commission_service.get_commission_summary(user_id),
            invitees=self.list_invitees(user_id, DASHBOARD_INVITEE_LIMIT, 0).items,
            inviter=self.get_inviter(user_id),
            payout_setting=self.payout_service.get_payout_setting(user_id),
        )
