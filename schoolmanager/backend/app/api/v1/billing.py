# backend/app/api/v1/billing.py
from fastapi import APIRouter, Depends, Request, Response

from app.api.dependencies import get_billing_gateway, require_role
from app.core.constants import WEBHOOK_SIGNATURE_HEADER, UserRole
from app.core.logging import logger
from app.db.models.user import IdentityAccount
from app.middleware.rate_limit import sensitive_rate_limit
from app.schemas.billing import InitiateRequest, InitiateResponse, VerifyRequest, VerifyResponse
from app.services.billing_gateway import BillingGateway

router = APIRouter()


@router.post("/initiate", response_model=InitiateResponse, dependencies=[Depends(sensitive_rate_limit)])
async def initiate_checkout(
    body: InitiateRequest,
    account: IdentityAccount = Depends(require_role(UserRole.TENANT_ADMIN)),
    gateway: BillingGateway = Depends(get_billing_gateway),
):
    """Start a Paystack checkout for the caller's tenant"""
    result = await gateway.initiate(
        tenant_id=account.tenant_id,
        actor_id=account.id,
        actor_email=account.email,
        amount=body.amount,
        currency=body.currency,
        metadata=body.metadata,
        plan=body.plan.value if body.plan else None,
        reference=body.reference,
    )
    return InitiateResponse(authorization_url=result.authorization_url, reference=result.reference)


@router.post("/verify", response_model=VerifyResponse, dependencies=[Depends(sensitive_rate_limit)])
async def verify_payment(
    body: VerifyRequest,
    account: IdentityAccount = Depends(require_role(UserRole.TENANT_ADMIN, UserRole.SUPER_ADMIN)),
    gateway: BillingGateway = Depends(get_billing_gateway),
):
    """Pull the definitive status of a reference from Paystack and apply it"""
    tenant_scope = None if account.role == UserRole.SUPER_ADMIN.value else account.tenant_id
    status = await gateway.verify_by_pull(
        body.reference,
        tenant_id=tenant_scope,
        actor_id=account.id,
        actor_role=account.role,
    )
    return VerifyResponse(status=status, reference=body.reference)


@router.post("/webhook")
async def paystack_webhook(request: Request, gateway: BillingGateway = Depends(get_billing_gateway)):
    """Handle Paystack webhooks. Status code only, no body."""
    # Signature is over the raw bytes, so read them before any parsing
    body = await request.body()
    signature = request.headers.get(WEBHOOK_SIGNATURE_HEADER)

    try:
        status_code = await gateway.receive_webhook(body, signature)
    except Exception as e:
        # non-2xx makes Paystack redeliver
        logger.error(f"Webhook processing failed: {e}", exc_info=True)
        return Response(status_code=500)

    return Response(status_code=status_code)
