"""Integración server-side con Stripe (SDK oficial)"""
import logging
from typing import Any, Dict

import stripe

from app.core.config import settings

logger = logging.getLogger(__name__)


def require_stripe():
    """Módulo stripe con la clave secreta configurada"""
    if not settings.STRIPE_SECRET_KEY:
        raise ValueError(
            "STRIPE_SECRET_KEY no configurado. "
            "Por favor, configura esta variable en tu archivo .env."
        )
    stripe.api_key = settings.STRIPE_SECRET_KEY
    return stripe


def retrieve_intent(payment_intent_id: str) -> Dict[str, Any]:
    require_stripe()
    intent = stripe.PaymentIntent.retrieve(payment_intent_id)
    return {
        "id": intent["id"],
        "status": intent["status"],
        "metadata": dict(intent.get("metadata") or {}),
    }


def verify_intent(payment_intent_id: str, order_id: str) -> bool:
    """
    El intent debe estar succeeded y pertenecer a la orden (metadata.orderId).
    Un error del SDK cuenta como no verificado.
    """
    try:
        intent = retrieve_intent(payment_intent_id)
    except stripe.StripeError as e:
        logger.warning(f"No se pudo consultar intent {payment_intent_id}: {e}")
        return False

    if intent["status"] != "succeeded":
        logger.info(f"Intent {payment_intent_id} en estado {intent['status']}")
        return False

    metadata_order = intent["metadata"].get("orderId") or intent["metadata"].get("order_id")
    if metadata_order and str(metadata_order) != str(order_id):
        logger.warning(f"Intent {payment_intent_id} pertenece a orden {metadata_order}, no a {order_id}")
        return False
    return True


def construct_event(payload: bytes, sig_header: str):
    """
    Valida la firma del webhook.

    Raises:
        ValueError: firma inválida o payload mal formado
    """
    try:
        return stripe.Webhook.construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Firma de webhook Stripe inválida: {e}")
        raise ValueError("Firma de webhook inválida") from e


def order_id_from_intent(intent: Dict[str, Any]) -> str:
    metadata = intent.get("metadata") or {}
    return str(metadata.get("orderId") or metadata.get("order_id") or "")
