from decimal import Decimal

from app.models import CreditTransaction
from app.schemas.transactions import CreditTransactionOut


def serialize_transaction(
    tx: CreditTransaction, credit_type: str, credit_amount: Decimal
) -> CreditTransactionOut:
    tx_dict = {
        "id": tx.id,
        "credit_id": tx.credit_id,
        "transaction_type": tx.transaction_type.value,
        "amount": tx.amount,
        "applied_to_type": tx.applied_to_type,
        "applied_to_id": tx.applied_to_id,
        "description": tx.description,
        "refunded_at": tx.refunded_at,
        "created_at": tx.created_at,
        "credit_type": credit_type,
        "credit_amount": credit_amount,
    }

    return CreditTransactionOut.model_validate(tx_dict)
