import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from ledgerapi.core.exceptions import (
    BusinessLogicError,
    InsufficientBalanceError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
)
from ledgerapi.database.connection import Database
from ledgerapi.models.referral import PayoutMethod, PayoutStatus
from ledgerapi.repositories.referral_repository import (
    PayoutRepository,
    PayoutSettingRepository,
)
from ledgerapi.repositories.user_repository import UserRepository
from ledgerapi.schemas.pagination import PaginatedResponse, PaginationLimits
from ledgerapi.schemas.referral import (
    PayoutCreate,
    PayoutResponse,
    PayoutSettingResponse,
    PayoutSettingUpdate,
    PayoutSummary,
)
from ledgerapi.utils.timezone_utils import get_utc_now

logger = logging.getLogger(__name__)

PENDING = PayoutStatus.PENDING.value
APPROVED = PayoutStatus.APPROVED.value
REJECTED = PayoutStatus.REJECTED.value
PAID = PayoutStatus.PAID.value

# (현재 상태, 새 상태) -> 환불 여부
PAYOUT_TRANSITIONS = {
    (PENDING, APPROVED): False,
    (PENDING, REJECTED): True,
    (APPROVED, PAID): False,
    (APPROVED, REJECTED): True,
}


def _transition_error(current: str, new: str) -> str:
    if current == PAID:
        return "已打款的提现申请不可修改"
    if current == REJECTED:
        return "已驳回的提现申请不可再次处理"
    if current == new:
        return "状态未发生变化"
    if current == APPROVED and new == PENDING:
        return "已审批的提现申请不可重新置为待审批"
    if new == PAID:
        return "请先审批通过再标记打款"
    return "无效的状态变更"


def _normalize_method(method: Optional[str]) -> Optional[str]:
    if method is None:
        return None
    value = method.value if isinstance(method, PayoutMethod) else str(method).strip().lower()
    if value not in {m.value for m in PayoutMethod}:
        raise ValidationError("提现方式仅支持支付宝或USDT")
    return value


class PayoutService:
    """
    수수료 출금 신청 워크플로

    신청 시점에 commission_balance 에서 금액을 예약(차감)하고,
    반려 시 환불한다. paid / rejected 는 종결 상태.
    """

    def __init__(self, database: Database):
        self.database = database

    def create_payout_request(self, user_id: int, request: PayoutCreate) -> PayoutResponse:
        try:
            amount = Decimal(str(request.amount)).quantize(Decimal("0.01"))
        except InvalidOperation:
            raise ValidationError("提现金额必须大于0")
        if amount <= 0:
            raise ValidationError("提现金额必须大于0")

        method = _normalize_method(request.method)
        account = (request.account or "").strip() or None
        account_name = request.account_name
        extra: Dict[str, Any] = {}
        if request.usdt_network:
            extra["usdt_network"] = request.usdt_network

        with self.database.transaction() as session:
            user = UserRepository(session).lock_by_id(user_id)
            if user is None:
                raise NotFoundError("用户不存在")

            balance = Decimal(user.commission_balance)
            if amount > balance:
                logger.warning(
                    f"Payout rejected for user {user_id}: amount {amount} > balance {balance}"
                )
                raise InsufficientBalanceError(
                    "可提现余额不足",
                    details={"commission_balance": str(balance), "amount": str(amount)},
                )

            if not method or not account:
                setting = PayoutSettingRepository(session).get_model(user_id)
                if setting is None:
                    raise BusinessLogicError("PAYOUT_001", "请先配置提现账号")
                method = method or setting.method
                account = account or setting.account
                account_name = account_name or setting.account_name
                if not extra and setting.extra:
                    extra = dict(setting.extra)

            if not method or not account:
                raise ValidationError("提现方式或账号不能为空")

            payout = PayoutRepository(session).create(
                user_id=user_id,
                amount=amount,
                method=method,
                account=account,
                account_name=account_name,
                extra=extra,
                status=PENDING,
                requested_notes=request.notes,
            )
            # 예약: 승인 전이라도 즉시 차감
            user.commission_balance = balance - amount
            session.flush()
            result = PayoutResponse.model_validate(payout)

        logger.info(f"Payout request {result.id} created for user {user_id}: {amount} via {method}")
        return result

    def update_payout_request_status(
        self,
        request_id: int,
        new_status: str,
        reviewer_id: Optional[int],
        review_notes: Optional[str] = None,
    ) -> PayoutResponse:
        if new_status not in {s.value for s in PayoutStatus}:
            raise ValidationError("无效的提现状态")

        with self.database.transaction() as session:
            payout = PayoutRepository(session).lock_by_id(request_id)
            if payout is None:
                raise NotFoundError("提现申请不存在")

            current = payout.status
            if (current, new_status) not in PAYOUT_TRANSITIONS:
                logger.warning(f"Payout {request_id}: disallowed transition {current} -> {new_status}")
                raise InvalidStatusTransitionError(
                    _transition_error(current, new_status),
                    details={"from": current, "to": new_status},
                )

            if PAYOUT_TRANSITIONS[(current, new_status)]:
                user = UserRepository(session).lock_by_id(payout.user_id)
                user.commission_balance = Decimal(user.commission_balance) + Decimal(payout.amount)

            now = get_utc_now()
            if new_status == PAID:
                payout.paid_at = now
            payout.status = new_status
            payout.reviewed_by = reviewer_id
            payout.reviewed_at = now
            if review_notes:
                payout.review_notes = review_notes
            session.flush()
            result = PayoutResponse.model_validate(payout)

        logger.info(f"Payout {request_id} {current} -> {new_status} by reviewer {reviewer_id}")
        return result

    def get_payout_setting(self, user_id: int) -> Optional[PayoutSettingResponse]:
        with self.database.transaction() as session:
            repo = PayoutSettingRepository(session)
            return repo._to_schema(repo.get_model(user_id))

    def upsert_payout_setting(
        self,
        user_id: int,
        request: PayoutSettingUpdate,
        updated_by: Optional[int] = None,
    ) -> PayoutSettingResponse:
        method = _normalize_method(request.method)
        account = request.account.strip()
        if not account:
            raise ValidationError("请输入提现账号")

        extra: Dict[str, Any] = {}
        if method == PayoutMethod.USDT.value and request.usdt_network:
            extra["usdt_network"] = request.usdt_network.strip().upper()

        with self.database.transaction() as session:
            repo = PayoutSettingRepository(session)
            setting = repo.get_model(user_id)
            if setting is None:
                setting = repo.create(
                    user_id=user_id,
                    method=method,
                    account=account,
                    account_name=request.account_name,
                    extra=extra,
                    updated_by=updated_by,
                )
            else:
                setting.method = method
                setting.account = account
                setting.account_name = request.account_name
                setting.extra = extra
                setting.updated_by = updated_by
                session.flush()
            result = repo._to_schema(setting)

        logger.info(f"Payout setting updated for user {user_id} ({method})")
        return result

    def get_payout_requests(
        self,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        method: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> PaginatedResponse[PayoutResponse]:
        limit = PaginationLimits.clamp(PaginationLimits.PAYOUTS, limit)
        with self.database.transaction() as session:
            items, total = PayoutRepository(session).list_requests(
                limit, offset, user_id=user_id, status=status, method=method
            )
        return PaginatedResponse[PayoutResponse].of(items, total, limit, offset)

    def get_payout_summary(self, user_id: int) -> PayoutSummary:
        with self.database.transaction() as session:
            user = UserRepository(session).get_model(user_id)
            if user is None:
                raise NotFoundError("用户不存在")
            processing, paid, rejected = PayoutRepository(session).get_amounts(user_id)
            balance = Decimal(user.commission_balance)
        return PayoutSummary(
            commission_balance=balance,
            processing_amount=processing,
            paid_amount=paid,
            rejected_amount=rejected,
        )
