# backend/app/services/billing_gateway.py
"""
Billing reconciliation against Paystack.

The gateway reports a transaction's outcome twice, through channels that are
neither ordered nor exactly-once: the caller pulling ``/transaction/verify``
and Paystack pushing a signed webhook. Both feed ``apply_gateway_status``,
which locks the PaymentRecord, resolves the move through
PAYMENT_TRANSITIONS and writes the payment and tenant billing change in one
transaction. Replays therefore land on an equal status and do nothing, and
late or out-of-order signals that the table does not allow are ignored.
"""
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.audit_log import AuditLogger, AuditEventType
from app.core.config import settings
from app.core.constants import (
    BILLING_ON_INITIATE,
    GATEWAY_STATUS_MAP,
    PAID_PLANS,
    PAYMENT_TRANSITIONS,
    TENANT_BILLING_EFFECTS,
    WEBHOOK_EVENT_MAP,
    BillingStatus,
    PaymentStatus,
    PlanType,
    ReconciliationSource,
    TenantStatus,
    UserRole,
)
from app.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from app.core.hashing import verify_webhook_signature
from app.db.repositories.payment_repository import PaymentRepository
from app.db.repositories.tenant_repository import TenantRepository
from app.services.paystack_client import PaystackClient

logger = logging.getLogger(__name__)

FAILURE_STATUSES = frozenset({PaymentStatus.FAILED, PaymentStatus.ABANDONED, PaymentStatus.PAST_DUE})


@dataclass
class InitiateResult:
    authorization_url: Optional[str]
    reference: str


@dataclass
class ApplyOutcome:
    reference: str
    status: Optional[str]  # stored status after the call, None for an unknown reference
    tenant_id: Optional[str] = None
    previous_status: Optional[str] = None
    applied: bool = False
    reason: str = "applied"
    billing_status: Optional[str] = None


def map_gateway_status(raw: Optional[str]) -> Optional[PaymentStatus]:
    """Map a Paystack transaction status onto ours, None if unrecognised"""
    return GATEWAY_STATUS_MAP.get(str(raw or "").strip().lower())


def resolve_payment_transition(current: PaymentStatus, incoming: PaymentStatus) -> Tuple[Optional[PaymentStatus], str]:
    """
    Decide what an incoming status does to a payment in ``current``.

    Returns (target, reason); target is None when nothing should be written.
    A failure signal on a paid reference moves it to past_due rather than
    failed, so success is never overwritten by another terminal status.
    """
    target = incoming
    if incoming == PaymentStatus.FAILED and current in (PaymentStatus.SUCCESS, PaymentStatus.PAST_DUE):
        target = PaymentStatus.PAST_DUE

    if target == current:
        return None, "duplicate"
    if target not in PAYMENT_TRANSITIONS[current]:
        return None, "invalid_transition"
    return target, "applied"


def generate_reference(tenant_id: str) -> str:
    return f"sch_{tenant_id[:8]}_{uuid.uuid4().hex[:12]}"


def _parse_timestamp(value: Any) -> datetime:
    """Paystack ISO timestamp to naive UTC; now when absent or malformed"""
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
        except ValueError:
            logger.debug(f"Unparseable gateway timestamp: {value}")
    return datetime.utcnow()


def _minor_units(value: Any) -> int:
    """Gateway amount in minor units; 0 when missing or not a number"""
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        logger.debug(f"Unparseable gateway amount: {value!r}")
        return 0


def _event_metadata(data: Dict[str, Any]) -> Dict[str, Any]:
    metadata = data.get("metadata") or {}
    # Paystack hands back metadata as a JSON string when it was sent as one
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except ValueError:
            return {}
    return metadata if isinstance(metadata, dict) else {}


class BillingGateway:
    """Initiates checkouts and reconciles their outcome into tenant billing"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        paystack: PaystackClient,
        audit: AuditLogger,
        webhook_secret: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.paystack = paystack
        self.audit = audit
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.webhook_secret

    async def initiate(
        self,
        tenant_id: str,
        actor_id: str,
        actor_email: str,
        amount: int,
        currency: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        plan: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> InitiateResult:
        """
        Start a checkout for a tenant

        The gateway is called before anything is written. If it fails nothing
        is persisted; if the write after it fails the checkout simply expires
        unpaid at the gateway.

        Raises:
            ValidationError: non-positive amount or unknown plan
            NotFoundError: tenant does not exist
            ConflictError: reference belongs to another tenant or is settled
            ExternalGatewayError: Paystack failed or timed out
        """
        if amount is None or amount <= 0:
            raise ValidationError("amount must be a positive integer in minor units")
        if plan is not None:
            try:
                plan_type = PlanType(plan)
            except ValueError:
                raise ValidationError(f"Invalid plan: {plan}")
            if plan_type not in PAID_PLANS:
                raise ValidationError(f"Plan {plan} is not billable")
        currency = (currency or settings.DEFAULT_CURRENCY).upper()

        async with self.session_factory() as session:
            tenant = await TenantRepository(session).get_by_id(tenant_id)
            if tenant is None:
                raise NotFoundError("Tenant not found")

            if reference:
                existing = await PaymentRepository(session).get_by_reference(reference)
                if existing is not None:
                    if existing.tenant_id != tenant_id:
                        raise ConflictError("Reference already in use")
                    if existing.status != PaymentStatus.PENDING.value:
                        raise ConflictError(f"Reference already settled ({existing.status})")
                    logger.info(f"Reusing pending checkout {reference}", extra={"reference": reference})
                    return InitiateResult(authorization_url=existing.authorization_url, reference=reference)

        reference = reference or generate_reference(tenant_id)
        gateway_metadata = dict(metadata or {})
        gateway_metadata.update({"tenantId": tenant_id, "adminUid": actor_id, "reference": reference})
        if plan:
            gateway_metadata["plan"] = plan

        checkout = await self.paystack.initialize_transaction(
            email=actor_email,
            amount=amount,
            currency=currency,
            reference=reference,
            metadata=gateway_metadata,
        )

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    tenant = await TenantRepository(session).get_by_id(tenant_id, for_update=True)
                    if tenant is None:
                        raise NotFoundError("Tenant not found")
                    await PaymentRepository(session).create({
                        "reference": reference,
                        "tenant_id": tenant_id,
                        "amount": amount,
                        "currency": currency,
                        "plan": plan,
                        "status": PaymentStatus.PENDING.value,
                        "authorization_url": checkout.get("authorization_url"),
                        "initiated_by": actor_id,
                    })
                    previous = BillingStatus(tenant.billing_status)
                    tenant.billing_status = BILLING_ON_INITIATE[previous].value
                    tenant.billing_reference = reference
        except IntegrityError:
            raise ConflictError("Reference already in use")

        logger.info(
            f"Checkout initiated for tenant {tenant_id}",
            extra={"tenant_id": tenant_id, "reference": reference},
        )
        await self.audit.append(
            AuditEventType.BILLING_INITIATED,
            tenant_id=tenant_id,
            actor_id=actor_id,
            actor_role=UserRole.TENANT_ADMIN.value,
            entity_id=reference,
            metadata={"amount": amount, "currency": currency, "plan": plan},
        )
        return InitiateResult(authorization_url=checkout.get("authorization_url"), reference=reference)

    async def verify_by_pull(
        self,
        reference: str,
        tenant_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
    ) -> str:
        """
        Ask Paystack for the definitive status of a reference and apply it.

        ``tenant_id`` limits the caller to their own tenant's references;
        None means any tenant (super admin). Returns the stored status.
        """
        async with self.session_factory() as session:
            record = await PaymentRepository(session).get_by_reference(reference)
            if record is None:
                raise NotFoundError("Payment not found")
            if tenant_id is not None and record.tenant_id != tenant_id:
                raise PermissionDeniedError("Payment belongs to another tenant")
            owner = record.tenant_id

        data = await self.paystack.verify_transaction(reference)
        status = map_gateway_status(data.get("status"))
        if status is None:
            logger.warning(
                f"Unrecognised gateway status '{data.get('status')}', treating as pending",
                extra={"reference": reference},
            )
            status = PaymentStatus.PENDING

        outcome = await self.apply_gateway_status(
            reference,
            status,
            data,
            ReconciliationSource.PULL,
            tenant_hint=owner,
            actor_id=actor_id,
            actor_role=actor_role,
        )
        return outcome.status

    async def receive_webhook(self, raw_body: bytes, signature: Optional[str]) -> int:
        """
        Authenticate and apply a Paystack webhook. Returns the HTTP status.

        Only an authentication failure is reported as an error (401). Anything
        authentic that we cannot or need not act on is acknowledged with 200
        so the gateway stops redelivering it.
        """
        if not verify_webhook_signature(self.webhook_secret, raw_body, signature):
            reason = "secret_not_configured" if not self.webhook_secret else "signature_mismatch"
            logger.warning(f"Webhook rejected: {reason}")
            await self.audit.append(
                AuditEventType.BILLING_WEBHOOK_REJECTED,
                actor_role="system",
                metadata={"reason": reason, "signature_present": bool(signature)},
            )
            return 401

        try:
            event = json.loads(raw_body)
        except ValueError:
            logger.warning("Webhook body is not valid JSON, acknowledged")
            return 200
        if not isinstance(event, dict):
            return 200

        data = event.get("data") if isinstance(event.get("data"), dict) else {}
        metadata = _event_metadata(data)
        tenant_id = metadata.get("tenantId")
        reference = data.get("reference") or metadata.get("reference")
        event_name = event.get("event")

        if not tenant_id:
            logger.info(f"Webhook {event_name} without tenantId, acknowledged")
            return 200
        if not reference:
            logger.info(f"Webhook {event_name} without reference, acknowledged", extra={"tenant_id": tenant_id})
            return 200

        status = WEBHOOK_EVENT_MAP.get(event_name)
        if status is None:
            logger.info(f"Unhandled webhook event {event_name}", extra={"reference": reference})
            return 200

        await self.apply_gateway_status(
            reference,
            status,
            data,
            ReconciliationSource.PUSH,
            tenant_hint=tenant_id,
            event=event_name,
        )
        return 200

    async def apply_gateway_status(
        self,
        reference: str,
        status: PaymentStatus,
        payload: Dict[str, Any],
        source: ReconciliationSource,
        tenant_hint: Optional[str] = None,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
        event: Optional[str] = None,
    ) -> ApplyOutcome:
        """Reconcile one gateway signal into the payment and its tenant"""
        try:
            outcome = await self._apply_once(reference, status, payload, source, tenant_hint, event)
        except (IntegrityError, StaleDataError):
            # a concurrent delivery created or updated the record first
            logger.info(f"Concurrent payment write for {reference}, retrying", extra={"reference": reference})
            outcome = await self._apply_once(reference, status, payload, source, tenant_hint, event)

        await self._audit_outcome(outcome, status, source, actor_id, actor_role, event)
        return outcome

    async def _apply_once(
        self,
        reference: str,
        status: PaymentStatus,
        payload: Dict[str, Any],
        source: ReconciliationSource,
        tenant_hint: Optional[str],
        event: Optional[str],
    ) -> ApplyOutcome:
        async with self.session_factory() as session:
            async with session.begin():
                payments = PaymentRepository(session)
                tenants = TenantRepository(session)

                record = await payments.get_by_reference(reference, for_update=True)
                if record is None:
                    if source != ReconciliationSource.PUSH or not tenant_hint:
                        logger.warning(f"Gateway status for unknown reference {reference}", extra={"reference": reference})
                        return ApplyOutcome(reference=reference, status=None, reason="unknown_reference")
                    if await tenants.get_by_id(tenant_hint) is None:
                        logger.warning(
                            f"Webhook for unknown tenant {tenant_hint}",
                            extra={"reference": reference, "tenant_id": tenant_hint},
                        )
                        return ApplyOutcome(reference=reference, status=None, reason="unknown_tenant")
                    record = await payments.create({
                        "reference": reference,
                        "tenant_id": tenant_hint,
                        "amount": _minor_units(payload.get("amount")),
                        "currency": (payload.get("currency") or settings.DEFAULT_CURRENCY).upper(),
                        "status": PaymentStatus.PENDING.value,
                    })
                elif tenant_hint and tenant_hint != record.tenant_id:
                    logger.warning(
                        f"Tenant hint {tenant_hint} does not own {reference}, using stored tenant",
                        extra={"reference": reference, "tenant_id": record.tenant_id},
                    )

                current = PaymentStatus(record.status)
                target, reason = resolve_payment_transition(current, status)
                outcome = ApplyOutcome(
                    reference=reference,
                    status=record.status,
                    tenant_id=record.tenant_id,
                    previous_status=current.value,
                    reason=reason,
                )
                if target is None:
                    return outcome

                now = datetime.utcnow()
                record.status = target.value
                record.gateway_response_code = payload.get("status")
                record.gateway_message = payload.get("gateway_response") or payload.get("message")
                record.channel = payload.get("channel") or record.channel
                record.last_event = event or record.last_event
                record.last_source = source.value
                if source == ReconciliationSource.PULL:
                    record.verified_at = now
                if target == PaymentStatus.SUCCESS:
                    record.paid_at = _parse_timestamp(payload.get("paid_at") or payload.get("paidAt"))

                outcome.status = target.value
                outcome.applied = True

                tenant = await tenants.get_by_id(record.tenant_id, for_update=True)
                if tenant is None:
                    return outcome

                billing = BillingStatus(tenant.billing_status)
                new_billing = TENANT_BILLING_EFFECTS.get((billing, target))
                if new_billing is None:
                    logger.info(
                        f"No tenant billing effect for ({billing.value}, {target.value})",
                        extra={"tenant_id": tenant.id, "reference": reference},
                    )
                    outcome.billing_status = billing.value
                    return outcome

                tenant.billing_status = new_billing.value
                tenant.billing_reference = reference
                if target == PaymentStatus.SUCCESS:
                    tenant.status = TenantStatus.ACTIVE.value
                    tenant.billing_last_payment_at = record.paid_at
                    customer = payload.get("customer") or {}
                    if isinstance(customer, dict) and customer.get("customer_code"):
                        tenant.billing_customer_ref = customer["customer_code"]
                    if record.plan:
                        tenant.plan = record.plan
                outcome.billing_status = new_billing.value
                return outcome

    async def _audit_outcome(
        self,
        outcome: ApplyOutcome,
        incoming: PaymentStatus,
        source: ReconciliationSource,
        actor_id: Optional[str],
        actor_role: Optional[str],
        event: Optional[str],
    ) -> None:
        if outcome.reason == "duplicate":
            logger.info(f"Duplicate {source.value} for {outcome.reference}: {incoming.value}", extra={"reference": outcome.reference})
            return

        metadata = {
            "source": source.value,
            "incoming": incoming.value,
            "previous": outcome.previous_status,
            "status": outcome.status,
            "billing_status": outcome.billing_status,
            "event": event,
        }
        if not outcome.applied:
            logger.info(
                f"Ignored {source.value} transition {outcome.previous_status} -> {incoming.value}: {outcome.reason}",
                extra={"reference": outcome.reference},
            )
            metadata["reason"] = outcome.reason
            event_type = AuditEventType.BILLING_TRANSITION_IGNORED
        elif outcome.status == PaymentStatus.SUCCESS.value:
            event_type = AuditEventType.BILLING_PAYMENT_SUCCEEDED
        elif PaymentStatus(outcome.status) in FAILURE_STATUSES:
            event_type = AuditEventType.BILLING_PAYMENT_FAILED
        else:
            return

        await self.audit.append(
            event_type,
            tenant_id=outcome.tenant_id,
            actor_id=actor_id,
            actor_role=actor_role or "system",
            entity_id=outcome.reference,
            metadata=metadata,
        )
