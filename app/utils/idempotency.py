from typing import List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import CreditTransaction, CreditTransactionType, ReferralCredit


async def check_idempotency(
    db: AsyncSession,
    user_id: str,
    applied_to_type: str,
    applied_to_id: str,
) -> Tuple[bool, List[Tuple[CreditTransaction, str]]]:
    """
    Перевіряє, чи кредити вже застосовано до цієї бізнес-транзакції
    Повертає:
        (is_duplicate: bool, [(used_transaction, credit_type), ...])
    У списку лише чинні (не повернуті) списання.
    is_duplicate == True - apply_credits уже виконували і жодне списання
    не поверталось: повторний виклик не списує кредити вдруге.
    Якщо частину списань повернули (refund), is_duplicate == False,
    і apply_credits докриває лише повернуту частину.
    """
    result = await db.execute(
        select(CreditTransaction, ReferralCredit.credit_type)
        .join(ReferralCredit, CreditTransaction.credit_id == ReferralCredit.id)
        .where(
            CreditTransaction.user_id == user_id,
            CreditTransaction.transaction_type == CreditTransactionType.USED,
            CreditTransaction.applied_to_type == applied_to_type,
            CreditTransaction.applied_to_id == applied_to_id,
        )
        .order_by(CreditTransaction.id)
    )
    rows = result.all()

    active = [(tx, credit_type) for tx, credit_type in rows if tx.refunded_at is None]
    has_refunds = len(active) < len(rows)

    return bool(active) and not has_refunds, active
