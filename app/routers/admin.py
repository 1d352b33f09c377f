from typing import Union

from fastapi import APIRouter, Depends, Query, status

from app.core.dependencies import (
    access_admin, get_credit_service, get_fraud_service
)
from app.schemas.base import OperationFailed
from app.schemas.credits import CreditsExpireResponse, ExpirationWarningsResponse
from app.schemas.fraud import (
    FlaggedConversionsResponse, FraudResolveRequest, FraudResolveResponse,
    BlockUserRequest, BlockUserResponse
)
from app.services.credit_ledger import ReferralCreditService
from app.services.fraud_scorer import ReferralFraudService

import logging

logger = logging.getLogger("[ADMIN]")


# Admin API
admin_router = APIRouter(prefix="/api/admin", tags=["Admin API"])


ADMIN_RESPONSES = {
    403: {
        "description": "Forbidden.",
        "content": {
            "application/json": {
                "example": {"detail": "Invalid admin token."}
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


@admin_router.post(
    "/credits/expire",
    dependencies=[Depends(access_admin)],
    summary="Згоряння прострочених кредитів (ручний запуск cron job)",
    description="Доступ лише для адміністратора. Headers: X-Admin-Token",
    response_model=Union[CreditsExpireResponse, OperationFailed],
    status_code=status.HTTP_200_OK,
    responses=ADMIN_RESPONSES,
)
async def expire_credits(
    credit_service: ReferralCreditService = Depends(get_credit_service)
):
    result = await credit_service.auto_expire_credits()
    if result.success:
        logger.info("Manual expiry sweep: %s credits expired", result.expired_count)
    return result


@admin_router.get(
    "/credits/expiring",
    dependencies=[Depends(access_admin)],
    summary="Кредити, що скоро згорять: дані для попереджень",
    description="Доступ лише для адміністратора. Headers: X-Admin-Token",
    response_model=Union[ExpirationWarningsResponse, OperationFailed],
    status_code=status.HTTP_200_OK,
    responses=ADMIN_RESPONSES,
)
async def expiring_credits_warnings(
    days: int = Query(7, ge=1, le=365),
    credit_service: ReferralCreditService = Depends(get_credit_service)
):
    return await credit_service.send_expiration_warnings(days_before_expiry=days)


@admin_router.get(
    "/fraud/flagged",
    dependencies=[Depends(access_admin)],
    summary="Конверсії, що потребують ручної перевірки",
    description="Доступ лише для адміністратора. Headers: X-Admin-Token",
    response_model=Union[FlaggedConversionsResponse, OperationFailed],
    status_code=status.HTTP_200_OK,
    responses=ADMIN_RESPONSES,
)
async def list_flagged_conversions(
    fraud_service: ReferralFraudService = Depends(get_fraud_service)
):
    return await fraud_service.get_flagged_conversions()


@admin_router.post(
    "/fraud/checks/{check_id}/resolve",
    dependencies=[Depends(access_admin)],
    summary="Рішення по fraud перевірці (один раз)",
    description="Доступ лише для адміністратора. Headers: X-Admin-Token",
    response_model=Union[FraudResolveResponse, OperationFailed],
    status_code=status.HTTP_200_OK,
    responses=ADMIN_RESPONSES,
)
async def resolve_fraud_check(
    check_id: int,
    payload: FraudResolveRequest,
    fraud_service: ReferralFraudService = Depends(get_fraud_service)
):
    return await fraud_service.resolve_fraud_check(
        check_id,
        resolution=payload.resolution,
        reviewer_id=payload.reviewer_id,
        notes=payload.notes,
    )


@admin_router.post(
    "/fraud/block",
    dependencies=[Depends(access_admin)],
    summary="Блокування користувача у referral програмі",
    description="Доступ лише для адміністратора. Headers: X-Admin-Token",
    response_model=Union[BlockUserResponse, OperationFailed],
    status_code=status.HTTP_200_OK,
    responses=ADMIN_RESPONSES,
)
async def block_referral_user(
    payload: BlockUserRequest,
    fraud_service: ReferralFraudService = Depends(get_fraud_service)
):
    return await fraud_service.block_user(payload.user_id, payload.reason)
