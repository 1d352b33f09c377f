from typing import Union

from fastapi import APIRouter, status, Depends, Query

from app.core.dependencies import get_current_user, get_credit_service
from app.schemas.base import OperationFailed
from app.schemas.credits import BalanceSummaryResponse
from app.schemas.transactions import TransactionHistoryResponse
from app.services.credit_ledger import ReferralCreditService


# API для фронтенду (зовнішні користувачі)
public_router = APIRouter(prefix="/api/v1", tags=["Public API"])


PUBLIC_RESPONSES = {
    401: {
        "description": "Unauthorized.",
        "content": {
            "application/json": {
                "example": {"detail": "Not authenticated."}
            },
        },
    },
    403: {
        "description": "Forbidden.",
        "content": {
            "application/json": {
                "example": {"detail": "Invalid user token."}
            },
        },
    },
    500: {
        "description": "Internal Server Error.",
        "content": {
            "application/json": {
                "example": {"detail": "Internal Server Error."}
            }
        },
    },
}


@public_router.get(
    "/credits/summary",
    summary="Баланс referral кредитів користувача",
    description="Доступ для user з token. Headers: Authorization: Bearer {user_token}, X-User-Id",
    response_model=Union[BalanceSummaryResponse, OperationFailed],
    status_code=status.HTTP_200_OK,
    responses=PUBLIC_RESPONSES,
)
async def user_credits_summary(
    user_id: str = Depends(get_current_user),
    credit_service: ReferralCreditService = Depends(get_credit_service)
):
    return await credit_service.get_balance_summary(user_id)


@public_router.get(
    "/credits/transactions",
    summary="Історія кредитних транзакцій користувача",
    description="Доступ для user з token. Headers: Authorization: Bearer {user_token}, X-User-Id",
    response_model=Union[TransactionHistoryResponse, OperationFailed],
    status_code=status.HTTP_200_OK,
    responses=PUBLIC_RESPONSES,
)
async def list_user_credit_transactions(
    limit: int = Query(50, ge=1, le=100),
    user_id: str = Depends(get_current_user),
    credit_service: ReferralCreditService = Depends(get_credit_service)
):
    return await credit_service.get_transaction_history(user_id, limit=limit)
