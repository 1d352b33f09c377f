from typing import Union

from fastapi import APIRouter, Depends, Query, status

from app.core.dependencies import (
    access_internal, get_credit_service, get_fraud_service
)
from app.schemas.base import OperationFailed
from app.schemas.credits import (
    AvailableCreditsResponse, CreditsApplyRequest, CreditsApplyResponse,
    CreditsRefundRequest, CreditsRefundResponse
)
from app.schemas.fraud import FraudCheckRequest, ComprehensiveCheckResponse
from app.schemas.transactions import TransactionHistoryResponse
from app.services.credit_ledger import ReferralCreditService
from app.services.fraud_scorer import ReferralFraudService


# Internal API (billing flow, referral tracking)
internal_router = APIRouter(prefix="/api/internal", tags=["Internal API"])


INTERNAL_RESPONSES = {
    403: {
        "description": "Forbidden.",
        "content": {
            "application/json": {
                "example": {"detail": "Invalid service token."}
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


@internal_router.get(
    "/credits/available/{user_id}",
    dependencies=[Depends(access_internal)],
    summary="Доступні кредити користувача (найраніше згоряння - першим)",
    description="Лише внутрішній доступ. Headers: X-Service-Token",
    response_model=Union[AvailableCreditsResponse, OperationFailed],
    status_code=status.HTTP_200_OK,
    responses=INTERNAL_RESPONSES,
)
async def user_available_credits(
    user_id: str,
    credit_service: ReferralCreditService = Depends(get_credit_service)
):
    return await credit_service.get_available_credits(user_id)


@internal_router.post(
    "/credits/apply",
    dependencies=[Depends(access_internal)],
    summary="Списання кредитів у рахунок платежу: atomic операція",
    description=(
        "Лише внутрішній доступ. Headers: X-Service-Token. "
        "Повторний виклик з тим самим transaction_type/transaction_id "
        "повертає попередній результат."
    ),
    response_model=Union[CreditsApplyResponse, OperationFailed],
    status_code=status.HTTP_200_OK,
    responses=INTERNAL_RESPONSES,
)
async def user_credits_apply(
    payload: CreditsApplyRequest,
    credit_service: ReferralCreditService = Depends(get_credit_service)
):
    return await credit_service.apply_credits(
        user_id=payload.user_id,
        transaction_amount=payload.transaction_amount,
        transaction_type=payload.transaction_type,
        transaction_id=payload.transaction_id,
    )


@internal_router.post(
    "/credits/refund",
    dependencies=[Depends(access_internal)],
    summary="Повернення списаного кредиту (скасований платіж)",
    description="Лише внутрішній доступ. Headers: X-Service-Token",
    response_model=Union[CreditsRefundResponse, OperationFailed],
    status_code=status.HTTP_200_OK,
    responses=INTERNAL_RESPONSES,
)
async def user_credits_refund(
    payload: CreditsRefundRequest,
    credit_service: ReferralCreditService = Depends(get_credit_service)
):
    return await credit_service.refund_credit(payload.transaction_id)


@internal_router.get(
    "/credits/history/{user_id}",
    dependencies=[Depends(access_internal)],
    summary="Історія кредитних транзакцій користувача",
    description="Лише внутрішній доступ. Headers: X-Service-Token",
    response_model=Union[TransactionHistoryResponse, OperationFailed],
    status_code=status.HTTP_200_OK,
    responses=INTERNAL_RESPONSES,
)
async def user_credits_history(
    user_id: str,
    limit: int = Query(50, ge=1, le=500),
    credit_service: ReferralCreditService = Depends(get_credit_service)
):
    return await credit_service.get_transaction_history(user_id, limit=limit)


@internal_router.post(
    "/fraud/check",
    dependencies=[Depends(access_internal)],
    summary="Комплексна fraud перевірка referral конверсії",
    description="Лише внутрішній доступ. Headers: X-Service-Token",
    response_model=Union[ComprehensiveCheckResponse, OperationFailed],
    status_code=status.HTTP_200_OK,
    responses=INTERNAL_RESPONSES,
)
async def referral_fraud_check(
    payload: FraudCheckRequest,
    fraud_service: ReferralFraudService = Depends(get_fraud_service)
):
    return await fraud_service.comprehensive_fraud_check(payload)
