import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledgerapi.config import Settings
from ledgerapi.core.exceptions import (
    ConflictError,
    InsufficientBalanceError,
    NotFoundError,
    ValidationError,
)
from ledgerapi.database.connection import Database
from ledgerapi.models.referral import CommissionEventType, CommissionStatus
from ledgerapi.repositories.referral_repository import CommissionRepository
from ledgerapi.repositories.system_setting_repository import SystemSettingRepository
from ledgerapi.repositories.user_repository import UserRepository
from ledgerapi.schemas.pagination import PaginatedResponse, PaginationLimits
from ledgerapi.schemas.referral import (
    CommissionConfig,
    CommissionCreate,
    CommissionResponse,
    CommissionSummary,
)
from ledgerapi.utils.timezone_utils import get_utc_now

logger = logging.getLogger(__name__)

COMMISSION_CONFIG_KEY = "referral_commission"
CENT = Decimal("0.01")

# commission_balance 에 포함되는 상태. approved -> paid 는 잔액 이동 없음
SPENDABLE_STATUSES = {CommissionStatus.APPROVED.value, CommissionStatus.PAID.value}
# settled_at 을 기록하는 상태
SETTLEMENT_STATUSES = {CommissionStatus.APPROVED.value, CommissionStatus.PAID.value}


def compute_commission_deltas(
    old_status: str, new_status: str, amount: Decimal
) -> Tuple[Decimal, Decimal]:
    """
    상태 전이 간선에 따른 (commission_balance 변동, commission_pending_balance 변동)

    - 출금 가능 집합 진입 +amount, 이탈 -amount
    - pending 이탈 -amount, pending 진입 +amount
    """
    balance_delta = Decimal("0")
    if new_status in SPENDABLE_STATUSES and old_status not in SPENDABLE_STATUSES:
        balance_delta = amount
    elif old_status in SPENDABLE_STATUSES and new_status not in SPENDABLE_STATUSES:
        balance_delta = -amount

    pending = CommissionStatus.PENDING.value
    pending_delta = Decimal("0")
    if old_status == pending and new_status != pending:
        pending_delta = -amount
    elif old_status != pending and new_status == pending:
        pending_delta = amount
    return balance_delta, pending_delta


class CommissionService:
    """추천 수수료 원장 서비스"""

    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.settings = settings

    def has_commission_record(self, order_id: str) -> bool:
        with self.database.transaction() as session:
            return CommissionRepository(session).exists_for_order(order_id)

    def create_commission_record(
        self, request: CommissionCreate, tx: Optional[Session] = None
    ) -> CommissionResponse:
        """
        pending 수수료 생성 + 초대자 total_commission_earned / commission_pending_balance 증가

        order_id 유니크 인덱스 위반 시 ConflictError
        """
        amount = Decimal(request.commission_amount).quantize(CENT, rounding=ROUND_HALF_UP)
        try:
            with self.database.transaction(tx) as session:
                inviter = UserRepository(session).lock_by_id(request.inviter_id)
                if inviter is None:
                    raise NotFoundError("邀请人不存在")

                commission = CommissionRepository(session).create(
                    inviter_id=request.inviter_id,
                    invitee_id=request.invitee_id,
                    order_id=request.order_id,
                    order_amount=request.order_amount,
                    commission_amount=amount,
                    commission_rate=request.commission_rate,
                    event_type=request.event_type.value,
                    status=CommissionStatus.PENDING.value,
                )
                inviter.total_commission_earned = Decimal(inviter.total_commission_earned) + amount
                inviter.commission_pending_balance = (
                    Decimal(inviter.commission_pending_balance) + amount
                )
                session.flush()
                result = CommissionResponse.model_validate(commission)
        except IntegrityError:
            logger.warning(f"Duplicate commission for order {request.order_id}")
            raise ConflictError("该订单已生成佣金记录", details={"order_id": request.order_id})

        logger.info(
            f"Commission {result.id} created: inviter {request.inviter_id}, "
            f"order {request.order_id}, amount {amount}"
        )
        return result

    def update_commission_status(
        self,
        commission_id: int,
        new_status: str,
        review_notes: Optional[str] = None,
    ) -> CommissionResponse:
        if new_status not in {s.value for s in CommissionStatus}:
            raise ValidationError("无效的佣金状态")

        with self.database.transaction() as session:
            commission_repo = CommissionRepository(session)
            commission = commission_repo.lock_by_id(commission_id)
            if commission is None:
                raise NotFoundError("佣金记录不存在")

            old_status = commission.status
            amount = Decimal(commission.commission_amount)
            balance_delta, pending_delta = compute_commission_deltas(old_status, new_status, amount)

            if balance_delta or pending_delta:
                inviter = UserRepository(session).lock_by_id(commission.inviter_id)
                new_balance = Decimal(inviter.commission_balance) + balance_delta
                new_pending = Decimal(inviter.commission_pending_balance) + pending_delta
                if new_balance < 0 or new_pending < 0:
                    # 이미 출금 신청으로 예약된 금액은 되돌릴 수 없음
                    raise InsufficientBalanceError(
                        "佣金余额不足，无法变更状态",
                        details={
                            "commission_balance": str(inviter.commission_balance),
                            "required": str(-balance_delta),
                        },
                    )
                inviter.commission_balance = new_balance
                inviter.commission_pending_balance = new_pending

            now = get_utc_now()
            if new_status in SETTLEMENT_STATUSES:
                commission.settled_at = commission.settled_at or now
            elif new_status == CommissionStatus.PENDING.value:
                commission.settled_at = None

            if new_status == CommissionStatus.PAID.value:
                commission.paid_at = commission.paid_at or now
            elif new_status == CommissionStatus.PENDING.value:
                commission.paid_at = None

            commission.status = new_status
            if review_notes is not None:
                commission.review_notes = review_notes
            session.flush()
            result = CommissionResponse.model_validate(commission)

        logger.info(
            f"Commission {commission_id} {old_status} -> {new_status} "
            f"(balance {balance_delta:+}, pending {pending_delta:+})"
        )
        return result

    def get_commission_config(self) -> CommissionConfig:
        defaults = CommissionConfig(
            enabled=self.settings.REFERRAL_COMMISSION_ENABLED,
            first_rate=self.settings.REFERRAL_FIRST_RATE,
            renewal_rate=self.settings.REFERRAL_RENEWAL_RATE,
        )
        with self.database.transaction() as session:
            stored = SystemSettingRepository(session).get_value(COMMISSION_CONFIG_KEY)
        if not stored:
            return defaults
        return CommissionConfig(**{**defaults.model_dump(), **stored})

    def update_commission_config(
        self, config: CommissionConfig, operator_id: Optional[int] = None
    ) -> CommissionConfig:
        with self.database.transaction() as session:
            SystemSettingRepository(session).upsert(
                COMMISSION_CONFIG_KEY, config.model_dump(), description="邀请分佣配置"
            )
        logger.info(f"Commission config updated by {operator_id}: {config.model_dump()}")
        return config

    def settle_order_commission(
        self,
        invitee_id: int,
        order_id: str,
        order_amount: Decimal,
    ) -> Optional[CommissionResponse]:
        """
        주문 결제 완료 시 초대자 수수료 정산

        비활성 설정 / 초대자 없음 / 0 수수료 / 이미 정산된 주문은 None
        """
        config = self.get_commission_config()
        if not config.enabled:
            return None

        order_amount = Decimal(str(order_amount))
        if order_amount <= 0:
            return None

        with self.database.transaction() as session:
            invitee = UserRepository(session).get_model(invitee_id)
            if invitee is None or invitee.inviter_id is None:
                return None
            inviter_id = invitee.inviter_id

            commission_repo = CommissionRepository(session)
            if commission_repo.exists_for_order(order_id):
                logger.info(f"Order {order_id} already has a commission, skipped")
                return None

            if commission_repo.exists_for_invitee(invitee_id):
                event_type = CommissionEventType.RENEWAL
                rate = config.renewal_rate
            else:
                event_type = CommissionEventType.FIRST_RECHARGE
                rate = config.first_rate

            rate = Decimal(str(rate))
            commission_amount = (order_amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)
            if rate <= 0 or commission_amount <= 0:
                return None

            return self.create_commission_record(
                CommissionCreate(
                    inviter_id=inviter_id,
                    invitee_id=invitee_id,
                    order_id=order_id,
                    order_amount=order_amount,
                    commission_amount=commission_amount,
                    commission_rate=rate,
                    event_type=event_type,
                ),
                tx=session,
            )

    def get_commission_records(
        self,
        inviter_id: Optional[int] = None,
        invitee_id: Optional[int] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> PaginatedResponse[CommissionResponse]:
        limit = PaginationLimits.clamp(PaginationLimits.COMMISSIONS, limit)
        with self.database.transaction() as session:
            items, total = CommissionRepository(session).list_commissions(
                limit, offset, inviter_id=inviter_id, invitee_id=invitee_id, status=status
            )
        return PaginatedResponse[CommissionResponse].of(items, total, limit, offset)

    def get_commission_summary(self, inviter_id: int) -> CommissionSummary:
        with self.database.transaction() as session:
            return CommissionRepository(session).get_summary(inviter_id)
