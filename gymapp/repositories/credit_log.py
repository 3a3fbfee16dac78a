from typing import List, Optional

from sqlalchemy.orm import Session

from gymapp.models.credit_log import CreditLog, CreditLogReason
from gymapp.repositories.base import BaseRepository


class CreditLogRepository(BaseRepository[CreditLog, dict, dict]):
    def add_entry(
        self,
        db: Session,
        *,
        user_id: int,
        amount: int,
        new_balance: int,
        reason: CreditLogReason,
        class_type_id: Optional[int] = None,
        admin_id: Optional[int] = None,
        details: Optional[str] = None
    ) -> CreditLog:
        entry = CreditLog(
            user_id=user_id,
            admin_id=admin_id,
            amount=amount,
            class_type_id=class_type_id,
            new_balance=new_balance,
            reason=reason,
            details=details,
        )
        db.add(entry)
        return entry

    def get_by_user(self, db: Session, *, user_id: int, skip: int = 0, limit: int = 100) -> List[CreditLog]:
        return (
            db.query(CreditLog)
            .filter(CreditLog.user_id == user_id)
            .order_by(CreditLog.created_at.desc(), CreditLog.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )


credit_log_repository = CreditLogRepository(CreditLog)
