"""Selección de provider de pago e inicialización del intent"""
import logging
from typing import List, Optional

from app.core.config import Settings, settings
from services.checkout.clients.order_api import OrderApiClient
from services.checkout.exceptions import CheckoutError
from services.checkout.models.checkout import (
    InitiationState,
    PaymentIntentRef,
    PaymentProvider,
)

logger = logging.getLogger(__name__)


def available_providers(config: Settings = settings) -> List[PaymentProvider]:
    """Un provider está disponible solo si su clave pública está configurada"""
    providers = []
    if config.STRIPE_PUBLISHABLE_KEY:
        providers.append(PaymentProvider.STRIPE)
    if config.PAYSTACK_PUBLIC_KEY:
        providers.append(PaymentProvider.PAYSTACK)
    return providers


class PaymentProviderSelector:
    """
    Un provider activo a la vez. Cada cambio de selección pasa por
    resetting -> initializing -> ready | error y nunca reutiliza el intent
    del provider anterior.
    """

    def __init__(
        self,
        api: OrderApiClient,
        order_id: str,
        return_url: str,
        cancel_url: str,
        providers: Optional[List[PaymentProvider]] = None,
    ):
        self.api = api
        self.order_id = order_id
        self.return_url = return_url
        self.cancel_url = cancel_url
        self.available = list(providers) if providers is not None else available_providers()

        # Auto-selección solo cuando hay exactamente un provider
        self.selected: Optional[PaymentProvider] = self.available[0] if len(self.available) == 1 else None
        self.state = InitiationState.IDLE
        self.intent: Optional[PaymentIntentRef] = None
        self.error: Optional[str] = None
        self._generation = 0

    @property
    def is_ready(self) -> bool:
        return self.state == InitiationState.READY and self.intent is not None

    async def initialize(self) -> Optional[PaymentIntentRef]:
        """Inicializa el provider auto-seleccionado, si existe"""
        if self.selected is None:
            if not self.available:
                self._fail("No hay métodos de pago configurados")
            return None
        return await self.select(self.selected)

    async def select(self, provider: PaymentProvider) -> Optional[PaymentIntentRef]:
        if provider not in self.available:
            self._fail(f"Método de pago no disponible: {provider.value}")
            return None

        self.selected = provider
        self._generation += 1
        generation = self._generation

        self.state = InitiationState.RESETTING
        self.intent = None
        self.error = None

        self.state = InitiationState.INITIALIZING
        try:
            intent = await self.api.initiate_payment(
                self.order_id,
                provider,
                return_url=self.return_url,
                cancel_url=self.cancel_url,
            )
        except CheckoutError as e:
            if generation != self._generation:
                return None
            logger.error(f"Error iniciando pago {provider.value} para orden {self.order_id}: {e.message}")
            self._fail(e.message)
            return None

        # Respuesta de una selección ya reemplazada
        if generation != self._generation:
            logger.debug(f"Descartando intent obsoleto de {provider.value}")
            return None

        missing = (
            provider == PaymentProvider.STRIPE and not intent.client_secret
        ) or (
            provider == PaymentProvider.PAYSTACK and not intent.authorization_url
        )
        if missing:
            self._fail("El servidor no retornó los datos para iniciar el pago")
            return None

        self.intent = intent
        self.state = InitiationState.READY
        return intent

    def _fail(self, message: str):
        self.intent = None
        self.error = message
        self.state = InitiationState.ERROR
