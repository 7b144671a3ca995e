"""Reporte de pago exitoso y polling del estado de la orden"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from app.core.config import settings
from services.checkout.clients.order_api import OrderApiClient
from services.checkout.exceptions import CheckoutError
from services.checkout.models.checkout import Order, PollResult

logger = logging.getLogger(__name__)


class ConfirmationService:
    def __init__(
        self,
        api: OrderApiClient,
        interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api = api
        self.interval = interval if interval is not None else settings.POLL_INTERVAL_SECONDS
        self.max_attempts = max_attempts if max_attempts is not None else settings.POLL_MAX_ATTEMPTS
        self.sleep = sleep

    async def report_payment(self, order_id: str, payment_intent_id: Optional[str]) -> bool:
        """
        Informa al backend que el provider reportó éxito.

        Un fallo se registra y no se propaga: webhook y polling terminan
        de reconciliar la orden.
        """
        if not payment_intent_id:
            logger.warning(f"Pago exitoso sin id de intent para orden {order_id}")
            return False
        try:
            await self.api.confirm_payment(order_id, payment_intent_id)
            return True
        except CheckoutError as e:
            logger.warning(f"No se pudo confirmar pago de orden {order_id}: {e.message}")
            return False

    async def poll_order_status(self, order_id: str, order: Optional[Order] = None) -> PollResult:
        """
        Re-lee la orden cada `interval` segundos mientras esté pendiente.

        Se detiene al ver paid, al primer error o tras `max_attempts` consultas.
        """
        if order is not None and order.is_paid:
            return PollResult(order=order, attempts=0, paid=True)

        attempts = 0
        while attempts < self.max_attempts:
            await self.sleep(self.interval)
            attempts += 1
            try:
                order = await self.api.get_order(order_id)
            except CheckoutError as e:
                logger.warning(f"Polling de orden {order_id} detenido: {e.message}")
                break
            if order.is_paid:
                return PollResult(order=order, attempts=attempts, paid=True)

        return PollResult(order=order, attempts=attempts, paid=False)
