"""Validación de códigos promocionales contra el servicio de promociones"""
import logging
from typing import Mapping

from services.checkout.clients.order_api import OrderApiClient
from services.checkout.exceptions import CheckoutError, CheckoutInputError
from services.checkout.models.checkout import OrderAmounts, PromoApplication

logger = logging.getLogger(__name__)

INVALID_PROMO_MESSAGE = "Código promocional inválido"


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class PromoCodeValidator:
    """Valida un código para el carrito actual; no reintenta"""

    def __init__(self, api: OrderApiClient):
        self.api = api

    async def validate(
        self,
        code: str,
        event_id: str,
        selections: Mapping[str, int],
        amounts: OrderAmounts,
    ) -> PromoApplication:
        """
        Retorna el PromoApplication si el código es válido y otorga descuento.

        Raises:
            CheckoutInputError: código vacío o carrito sin tickets (sin llamada de red)
            CheckoutError: rechazo del servidor o fallo de red
        """
        normalized = normalize_code(code)
        if not normalized:
            raise CheckoutInputError("Ingresa un código promocional")

        if amounts.total_before_discount_cents <= 0:
            raise CheckoutInputError("Selecciona tickets antes de aplicar un código promocional")

        result = await self.api.validate_promo(
            code=normalized,
            event_id=event_id,
            ticket_type_ids=list(selections.keys()),
            order_amount_cents=amounts.total_before_discount_cents,
        )

        if result.valid and result.discount_amount_cents > 0:
            logger.info(f"Código {normalized} aplicado: descuento {result.discount_amount_cents}")
            return PromoApplication(code=normalized, discount_cents=result.discount_amount_cents)

        raise CheckoutError(result.message or INVALID_PROMO_MESSAGE)
