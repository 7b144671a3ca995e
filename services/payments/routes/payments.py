"""Rutas de reconciliación de pagos y webhooks de providers"""
import json
import logging

from fastapi import APIRouter, HTTPException, Request, status

from app.core.config import settings
from shared.utils.rate_limiter import limiter, RATE_LIMITS
from services.checkout.services.payment_selector import available_providers
from services.payments.models.payment import (
    ConfirmPaymentRequest,
    MarkPaidResult,
    OrderPaymentResponse,
    PaymentSource,
    ProvidersResponse,
)
from services.payments.services import stripe_service
from services.payments.services.paystack_service import (
    order_id_from_transaction,
    verify_webhook_signature,
)
from services.payments.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_reconciliation_service() -> ReconciliationService:
    return ReconciliationService()


@router.post("/orders/{order_id}/payment/confirm", response_model=MarkPaidResult)
@limiter.limit(RATE_LIMITS["confirm"])
async def confirm_payment(
    request: Request,  # Necesario para rate limiter
    order_id: str,
    body: ConfirmPaymentRequest,
):
    """
    Confirmación redundante desde el cliente tras el éxito del provider.

    Idempotente: repetirla retorna already_paid.
    """
    service = get_reconciliation_service()
    try:
        return await service.mark_order_paid(
            order_id,
            body.paymentIntentId,
            provider=body.provider,
            source=PaymentSource.CLIENT,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Error confirmando pago de orden {order_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error al confirmar el pago",
        )


@router.get("/orders/{order_id}/payment", response_model=OrderPaymentResponse)
@limiter.limit(RATE_LIMITS["default"])
async def get_order_payment(request: Request, order_id: str):
    service = get_reconciliation_service()
    try:
        record = await service.get_payment_record(order_id)
    except Exception as e:
        logger.error(f"Error leyendo pago de orden {order_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error al consultar el pago",
        )

    if record is None:
        return OrderPaymentResponse(order_id=order_id, status="pending")
    return OrderPaymentResponse(order_id=order_id, status=record.status, payment=record)


@router.get("/payments/providers", response_model=ProvidersResponse)
@limiter.limit(RATE_LIMITS["default"])
async def list_providers(request: Request):
    """Providers con clave pública configurada"""
    providers = [p.value for p in available_providers(settings)]
    return ProvidersResponse(
        providers=providers,
        default=providers[0] if len(providers) == 1 else None,
    )


@router.post("/webhooks/stripe")
@limiter.limit(RATE_LIMITS["webhook"])
async def stripe_webhook(request: Request):
    """
    Webhook de Stripe. No requiere autenticación (Stripe firma el payload).
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature") or ""

    try:
        event = stripe_service.construct_event(payload, signature)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if event["type"] != "payment_intent.succeeded":
        logger.debug(f"Evento Stripe ignorado: {event['type']}")
        return {"status": "ignored"}

    intent = event["data"]["object"]
    order_id = stripe_service.order_id_from_intent(intent)
    if not order_id:
        logger.warning(f"Intent {intent.get('id')} sin orderId en metadata")
        return {"status": "ignored"}

    return await _mark_from_webhook(order_id, intent["id"], "stripe")


@router.post("/webhooks/paystack")
@limiter.limit(RATE_LIMITS["webhook"])
async def paystack_webhook(request: Request):
    """
    Webhook de Paystack. La firma es HMAC-SHA512 del body crudo.
    """
    payload = await request.body()
    signature = request.headers.get("x-paystack-signature")

    if not verify_webhook_signature(payload, signature):
        logger.warning("Webhook Paystack con firma inválida")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Firma de webhook inválida")

    try:
        event = json.loads(payload)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payload inválido")
    if not isinstance(event, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payload inválido")

    if event.get("event") != "charge.success":
        logger.debug(f"Evento Paystack ignorado: {event.get('event')}")
        return {"status": "ignored"}

    data = event.get("data") or {}
    reference = data.get("reference")
    order_id = order_id_from_transaction(data)
    if not reference or not order_id:
        logger.warning(f"Webhook Paystack sin reference u orden: {reference}")
        return {"status": "ignored"}

    return await _mark_from_webhook(order_id, reference, "paystack")


async def _mark_from_webhook(order_id: str, payment_intent_id: str, provider: str):
    service = get_reconciliation_service()
    try:
        result = await service.mark_order_paid(
            order_id,
            payment_intent_id,
            provider=provider,
            source=PaymentSource.WEBHOOK,
        )
    except Exception as e:
        logger.error(f"Error procesando webhook {provider} de orden {order_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error procesando webhook",
        )
    return {"status": "ok", "result": result.status.value}
