"""
Flujos de pago por provider.

Stripe usa una hoja de pago embebida; Paystack redirige a una página
hospedada. Ambos terminan en el mismo handler de éxito.
"""
import logging
from typing import Awaitable, Callable, Optional, Protocol, Union

from pydantic import BaseModel

from services.checkout.exceptions import PaymentProviderError
from services.checkout.models.checkout import (
    CardPaymentOutcome,
    PaymentIntentRef,
    PaymentProvider,
)

logger = logging.getLogger(__name__)

SuccessHandler = Callable[[str, str], Awaitable[None]]


class CardSheetResult(BaseModel):
    outcome: CardPaymentOutcome
    error: Optional[str] = None


class CardPaymentSheet(Protocol):
    """Hoja de pago embebida del SDK de tarjetas"""

    async def init(self, client_secret: str) -> Optional[str]:
        """Retorna un mensaje de error o None si quedó lista"""
        ...

    async def present(self) -> CardSheetResult:
        ...


UrlOpener = Callable[[str], Union[bool, Awaitable[bool]]]


class StripeCardFlow:
    def __init__(self, sheet: CardPaymentSheet, on_success: SuccessHandler):
        self.sheet = sheet
        self.on_success = on_success
        self.intent: Optional[PaymentIntentRef] = None

    async def prepare(self, intent: PaymentIntentRef):
        if intent.provider != PaymentProvider.STRIPE or not intent.client_secret:
            raise PaymentProviderError("No se pudo preparar el pago con tarjeta")

        error = await self.sheet.init(intent.client_secret)
        if error:
            raise PaymentProviderError(error)
        self.intent = intent

    async def submit(self) -> CardPaymentOutcome:
        """
        Presenta la hoja de pago.

        Cancelado no es error: no se notifica nada y la orden sigue pendiente.

        Raises:
            PaymentProviderError: hoja no preparada o pago rechazado
        """
        if self.intent is None:
            raise PaymentProviderError("El pago no está listo")

        result = await self.sheet.present()

        if result.outcome == CardPaymentOutcome.CANCELLED:
            logger.info(f"Pago con tarjeta cancelado para orden {self.intent.order_id}")
            return result.outcome

        if result.outcome == CardPaymentOutcome.FAILED:
            raise PaymentProviderError(result.error or "El pago fue rechazado")

        await self.on_success(self.intent.order_id, self.intent.confirmation_id)
        return result.outcome


class PaystackRedirectFlow:
    def __init__(self, opener: UrlOpener, on_success: SuccessHandler):
        self.opener = opener
        self.on_success = on_success
        self.intent: Optional[PaymentIntentRef] = None

    async def open(self, intent: PaymentIntentRef):
        if intent.provider != PaymentProvider.PAYSTACK or not intent.authorization_url:
            raise PaymentProviderError("No se recibió la URL de pago")

        opened = self.opener(intent.authorization_url)
        if not isinstance(opened, bool):
            opened = await opened
        if not opened:
            raise PaymentProviderError("No se pudo abrir la página de pago")
        self.intent = intent

    async def confirm_completed(self):
        """El usuario indica que terminó el pago en la página hospedada"""
        if self.intent is None:
            raise PaymentProviderError("Primero abre la página de pago")
        await self.on_success(self.intent.order_id, self.intent.confirmation_id)
