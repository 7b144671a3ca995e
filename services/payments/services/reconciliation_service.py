"""
Reconciliación de pagos: marcar una orden como pagada de forma idempotente.

Llega por dos caminos (confirmación redundante del cliente y webhooks del
provider) y ambos pasan por mark_order_paid bajo un lock por orden.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from app.core.config import settings
from shared.cache.redis_client import (
    DistributedLock,
    cache_delete,
    cache_get,
    cache_set,
    cache_set_if_absent,
)
from services.payments.models.payment import (
    MarkPaidResult,
    MarkPaidStatus,
    PaymentRecord,
    PaymentSource,
)
from services.payments.services import stripe_service
from services.payments.services.paystack_service import PaystackService

logger = logging.getLogger(__name__)

Verifier = Callable[[str, str], Awaitable[bool]]


def intent_key(payment_intent_id: str) -> str:
    return f"payments:intent:{payment_intent_id}"


def order_key(order_id: str) -> str:
    return f"payments:order:{order_id}"


def infer_provider(payment_intent_id: str) -> str:
    """Los intents de Stripe empiezan con pi_; el resto se trata como reference de Paystack"""
    return "stripe" if payment_intent_id.startswith("pi_") else "paystack"


async def _verify_stripe(payment_intent_id: str, order_id: str) -> bool:
    # SDK síncrono: fuera del event loop
    return await asyncio.to_thread(stripe_service.verify_intent, payment_intent_id, order_id)


async def _verify_paystack(reference: str, order_id: str) -> bool:
    return await PaystackService().verify_reference(reference, order_id)


class ReconciliationService:
    def __init__(
        self,
        stripe_verifier: Optional[Verifier] = None,
        paystack_verifier: Optional[Verifier] = None,
        ttl: Optional[int] = None,
    ):
        self.verifiers = {
            "stripe": stripe_verifier or _verify_stripe,
            "paystack": paystack_verifier or _verify_paystack,
        }
        self.ttl = ttl or settings.PAYMENT_LEDGER_TTL_SECONDS

    async def get_payment_record(self, order_id: str) -> Optional[PaymentRecord]:
        data = await cache_get(order_key(order_id))
        if not isinstance(data, dict):
            return None
        return PaymentRecord(**data)

    async def mark_order_paid(
        self,
        order_id: str,
        payment_intent_id: str,
        provider: Optional[str] = None,
        source: PaymentSource = PaymentSource.CLIENT,
    ) -> MarkPaidResult:
        """
        Marca la orden como pagada.

        - already_paid: la orden ya estaba pagada con este mismo intent
        - newly_paid: primera reconciliación exitosa
        - rejected: intent de otra orden, orden pagada con otro intent,
          o el provider no confirmó el pago

        Raises:
            ValueError: order_id o payment_intent_id vacíos, provider desconocido
        """
        if not order_id or not payment_intent_id:
            raise ValueError("order_id y paymentIntentId son requeridos")

        provider = provider or infer_provider(payment_intent_id)
        if provider not in self.verifiers:
            raise ValueError(f"Provider no soportado: {provider}")

        def result(status: MarkPaidStatus, reason: Optional[str] = None) -> MarkPaidResult:
            return MarkPaidResult(
                status=status,
                order_id=order_id,
                payment_intent_id=payment_intent_id,
                reason=reason,
            )

        async with DistributedLock(f"order:payment:{order_id}"):
            record = await self.get_payment_record(order_id)
            if record is not None:
                if record.payment_intent_id == payment_intent_id:
                    logger.info(f"Orden {order_id} ya pagada con {payment_intent_id} ({source.value})")
                    return result(MarkPaidStatus.ALREADY_PAID)
                logger.warning(
                    f"Orden {order_id} ya pagada con {record.payment_intent_id}, "
                    f"se rechaza {payment_intent_id}"
                )
                return result(MarkPaidStatus.REJECTED, "La orden ya fue pagada con otro pago")

            # Reclamar el intent para esta orden antes de verificar
            claimed = await cache_set_if_absent(intent_key(payment_intent_id), order_id, expire=self.ttl)
            if not claimed:
                owner = await cache_get(intent_key(payment_intent_id))
                if str(owner) != str(order_id):
                    logger.warning(f"Intent {payment_intent_id} ya asociado a orden {owner}")
                    return result(MarkPaidStatus.REJECTED, "El pago pertenece a otra orden")

            if source == PaymentSource.CLIENT:
                verified = await self.verifiers[provider](payment_intent_id, order_id)
                if not verified:
                    await cache_delete(intent_key(payment_intent_id))
                    return result(MarkPaidStatus.REJECTED, "El provider no confirmó el pago")

            record = PaymentRecord(
                order_id=order_id,
                provider=provider,
                payment_intent_id=payment_intent_id,
                source=source,
                paid_at=datetime.now(timezone.utc),
            )
            await cache_set(order_key(order_id), record.model_dump(mode="json"), expire=self.ttl)

        logger.info(f"Orden {order_id} pagada con {provider} ({payment_intent_id}, {source.value})")
        return result(MarkPaidStatus.NEWLY_PAID)
