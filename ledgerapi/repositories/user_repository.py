from typing import List, Optional

from sqlalchemy.orm import Session

from ledgerapi.models.user import User as UserModel
from ledgerapi.repositories.base import BaseRepository
from ledgerapi.schemas.user import User as UserSchema


class UserRepository(BaseRepository[UserModel, UserSchema]):
    """사용자 리포지토리 - 잔액 갱신 전 잠금 조회 제공"""

    def __init__(self, db: Session):
        super().__init__(UserModel, UserSchema, db)

    def lock_many(self, user_ids: List[int]) -> List[UserModel]:
        """여러 사용자를 id 오름차순으로 잠금 (교착 상태 방지)"""
        return (
            self.db.query(UserModel)
            .filter(UserModel.id.in_(user_ids))
            .order_by(UserModel.id.asc())
            .with_for_update()
            .populate_existing()
            .all()
        )

    def get_by_referral_code(self, code: str) -> Optional[UserModel]:
        return (
            self.db.query(UserModel)
            .filter(UserModel.referral_code == code)
            .first()
        )

    def referral_code_exists(self, code: str) -> bool:
        return (
            self.db.query(UserModel.id)
            .filter(UserModel.referral_code == code)
            .first()
            is not None
        )
