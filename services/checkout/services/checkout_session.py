"""
Sesión de checkout: selección -> pago -> confirmación.

Todo el estado del flujo vive en este objeto (selecciones, promo, hold,
orden creada, provider activo) para que cada transición sea explícita y
testeable sin UI.
"""
import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Dict, List, Optional

from app.core.config import settings
from services.checkout.clients.order_api import OrderApiClient
from services.checkout.exceptions import CheckoutError
from services.checkout.models.checkout import (
    CheckoutStage,
    Notice,
    Order,
    OrderAmounts,
    PaymentProvider,
    PollResult,
    PromoApplication,
    TicketType,
)
from services.checkout.services.amount_calculator import compute_amounts, total_due_cents
from services.checkout.services.confirmation_service import ConfirmationService
from services.checkout.services.hold_timer import HoldTimer, watch_hold
from services.checkout.services.payment_flows import (
    CardPaymentSheet,
    PaystackRedirectFlow,
    StripeCardFlow,
    UrlOpener,
)
from services.checkout.services.payment_selector import PaymentProviderSelector
from services.checkout.services.promo_service import PromoCodeValidator

logger = logging.getLogger(__name__)

HOLD_EXPIRED_MESSAGE = "Tu reserva expiró. Selecciona tus tickets nuevamente."
PROMO_CLEARED_MESSAGE = "El código promocional se quitó porque cambiaste tu selección"


class CheckoutSession:
    def __init__(
        self,
        event_id: str,
        api: OrderApiClient,
        catalog: Optional[List[TicketType]] = None,
        hold: Optional[HoldTimer] = None,
        confirmation: Optional[ConfirmationService] = None,
        providers: Optional[List[PaymentProvider]] = None,
        app_base_url: Optional[str] = None,
    ):
        self.event_id = event_id
        self.api = api
        self.catalog: List[TicketType] = [t for t in (catalog or []) if t.is_active]
        self.hold = hold or HoldTimer()
        self.confirmation = confirmation or ConfirmationService(api)
        self.providers = providers
        self.app_base_url = (app_base_url or settings.APP_BASE_URL).rstrip("/")
        self.promo_validator = PromoCodeValidator(api)

        self.stage = CheckoutStage.SELECTION
        self.navigation: str = self.selection_path()
        self.event: Dict = {}
        self.selections: Dict[str, int] = {}
        self.promo: Optional[PromoApplication] = None
        self.notices: List[Notice] = []

        self.order_id: Optional[str] = None
        self.order: Optional[Order] = None
        self.creating_order = False
        self.validating_promo = False
        self.idempotency_key: Optional[str] = None

        self.selector: Optional[PaymentProviderSelector] = None
        self.card_flow: Optional[StripeCardFlow] = None
        self.redirect_flow: Optional[PaystackRedirectFlow] = None
        self.hold_task: Optional[asyncio.Task] = None

    # Rutas

    def selection_path(self) -> str:
        return f"/events/{self.event_id}/checkout"

    def payment_path(self, order_id: str) -> str:
        return f"/events/{self.event_id}/checkout/payment?orderId={order_id}"

    def confirmation_path(self, order_id: str) -> str:
        return f"/events/{self.event_id}/checkout/confirmation?orderId={order_id}"

    def free_confirmation_path(self, order_id: str) -> str:
        # Órdenes gratuitas o ya pagadas: confirmación global, fuera del checkout del evento
        return f"/confirmation?orderId={order_id}"

    def _navigate(self, stage: CheckoutStage, path: str):
        self.stage = stage
        self.navigation = path

    def _notify(self, notice: Notice) -> Notice:
        self.notices.append(notice)
        return notice

    # Selección

    async def load(self):
        """Carga evento y catálogo; solo los ticket types activos son seleccionables"""
        self.event = await self.api.get_event(self.event_id)
        ticket_types = await self.api.get_ticket_types(self.event_id)
        self.catalog = [t for t in ticket_types if t.is_active]

    @property
    def amounts(self) -> OrderAmounts:
        return compute_amounts(self.selections, self.catalog)

    @property
    def discount_cents(self) -> int:
        return self.promo.discount_cents if self.promo else 0

    @property
    def total_due_cents(self) -> int:
        return total_due_cents(self.amounts, self.discount_cents)

    def set_quantity(self, ticket_type_id: str, quantity: int) -> Optional[Notice]:
        """
        Cambia la cantidad de un ticket type. Cantidad 0 elimina la selección.

        Cualquier cambio invalida el promo aplicado (el descuento se calculó
        para el carrito anterior) y la idempotency key de la orden.
        """
        if quantity < 0:
            return self._notify(Notice.error("La cantidad no puede ser negativa"))

        previous = self.selections.get(ticket_type_id, 0)
        if previous == quantity:
            return None

        if quantity == 0:
            self.selections.pop(ticket_type_id, None)
        else:
            self.selections[ticket_type_id] = quantity

        self.idempotency_key = None

        if self.selections:
            self.hold.start()
        else:
            self.hold.reset()
            self.stop_hold_watch()

        if self.promo is not None:
            self.promo = None
            return self._notify(Notice.info(PROMO_CLEARED_MESSAGE))
        return None

    async def apply_promo(self, code: str) -> Notice:
        """Un rechazo no quita el promo ya aplicado"""
        snapshot = dict(self.selections)
        self.validating_promo = True
        try:
            promo = await self.promo_validator.validate(
                code, self.event_id, snapshot, self.amounts
            )
        except CheckoutError as e:
            return self._notify(Notice.error(e.message))
        finally:
            self.validating_promo = False

        # El descuento se calculó para un carrito que ya no existe
        if self.selections != snapshot:
            logger.info(f"Descartando código {promo.code}: la selección cambió durante la validación")
            return self._notify(Notice.info(PROMO_CLEARED_MESSAGE))

        self.promo = promo
        return self._notify(Notice.success(f"Código {promo.code} aplicado"))

    def remove_promo(self) -> Notice:
        self.promo = None
        return self._notify(Notice.info("Código promocional eliminado"))

    # Hold

    def start_hold_watch(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> Optional[asyncio.Task]:
        """
        Lanza la task que dispara on_hold_expired al vencer el deadline.
        Requiere un hold corriendo; una segunda llamada reutiliza la task.
        """
        if self.hold_task is not None and not self.hold_task.done():
            return self.hold_task
        if not self.selections:
            return None
        self.hold.start()
        self.hold_task = asyncio.create_task(watch_hold(self.hold, self._expire_from_watch, sleep=sleep))
        return self.hold_task

    def stop_hold_watch(self):
        if self.hold_task is not None and not self.hold_task.done():
            self.hold_task.cancel()
        self.hold_task = None

    def _expire_from_watch(self):
        # La task termina sola; no debe cancelarse a sí misma
        self.hold_task = None
        self.on_hold_expired()

    def check_hold(self) -> bool:
        """Llamar periódicamente; al expirar limpia la sesión"""
        if self.hold.check():
            self.on_hold_expired()
            return True
        return False

    def on_hold_expired(self):
        """
        Limpia la selección y vuelve a la etapa de selección. No se llama al
        servidor: una orden ya creada queda pendiente.
        """
        logger.info(f"Hold expirado en checkout de evento {self.event_id}")
        self.selections = {}
        self.promo = None
        self.idempotency_key = None
        self.hold.reset()
        self.stop_hold_watch()
        self.selector = None
        self.card_flow = None
        self.redirect_flow = None
        self._navigate(CheckoutStage.SELECTION, self.selection_path())
        self._notify(Notice.error(HOLD_EXPIRED_MESSAGE))

    # Orden

    async def create_order(self) -> Optional[Notice]:
        if self.creating_order:
            return None

        if not self.selections:
            return self._notify(Notice.error("Selecciona al menos un ticket"))

        items = [
            {"ticketTypeId": ticket_type_id, "quantity": quantity}
            for ticket_type_id, quantity in self.selections.items()
            if quantity > 0
        ]
        # Misma key para reintentos sobre la misma selección
        if self.idempotency_key is None:
            self.idempotency_key = uuid.uuid4().hex

        self.creating_order = True
        try:
            order = await self.api.create_order(
                self.event_id, items, idempotency_key=self.idempotency_key
            )
        except CheckoutError as e:
            logger.error(f"Error creando orden para evento {self.event_id}: {e.message}")
            return self._notify(Notice.error(e.message))
        finally:
            self.creating_order = False

        self.order = order
        self.order_id = order.id
        logger.info(f"Orden {order.id} creada para evento {self.event_id}")
        self._navigate(CheckoutStage.PAYMENT, self.payment_path(order.id))
        return None

    # Pago

    async def begin_payment(self) -> Optional[Notice]:
        """
        Entra a la etapa de pago. Una orden gratuita va directo a confirmación
        sin iniciar pago con ningún provider.
        """
        if not self.order_id:
            return self._notify(Notice.error("No hay una orden para pagar"))

        try:
            self.order = await self.api.get_order(self.order_id)
        except CheckoutError as e:
            return self._notify(Notice.error(e.message))

        if self.order.is_paid or self.order.is_free:
            self._navigate(CheckoutStage.CONFIRMATION, self.free_confirmation_path(self.order_id))
            return None

        self.selector = PaymentProviderSelector(
            self.api,
            self.order_id,
            return_url=f"{self.app_base_url}{self.confirmation_path(self.order_id)}",
            cancel_url=f"{self.app_base_url}{self.payment_path(self.order_id)}",
            providers=self.providers,
        )
        await self.selector.initialize()
        if self.selector.error:
            return self._notify(Notice.error(self.selector.error))
        return None

    async def select_provider(self, provider: PaymentProvider) -> Optional[Notice]:
        if self.selector is None:
            return self._notify(Notice.error("El pago no está listo"))
        self.card_flow = None
        self.redirect_flow = None
        await self.selector.select(provider)
        if self.selector.error:
            return self._notify(Notice.error(self.selector.error))
        return None

    async def handle_payment_success(self, order_id: str, payment_intent_id: Optional[str]):
        """Punto único de éxito para ambos providers"""
        await self.confirmation.report_payment(order_id, payment_intent_id)
        self.hold.reset()
        self.stop_hold_watch()
        self._navigate(CheckoutStage.CONFIRMATION, self.confirmation_path(order_id))

    async def pay_with_card(self, sheet: CardPaymentSheet) -> Optional[Notice]:
        if self.selector is None or not self.selector.is_ready:
            return self._notify(Notice.error("El pago no está listo"))
        if self.selector.selected != PaymentProvider.STRIPE:
            return self._notify(Notice.error("Selecciona pago con tarjeta"))

        self.card_flow = StripeCardFlow(sheet, self.handle_payment_success)
        try:
            await self.card_flow.prepare(self.selector.intent)
            await self.card_flow.submit()
        except CheckoutError as e:
            return self._notify(Notice.error(e.message))
        return None

    async def open_redirect(self, opener: UrlOpener) -> Optional[Notice]:
        if self.selector is None or not self.selector.is_ready:
            return self._notify(Notice.error("El pago no está listo"))
        if self.selector.selected != PaymentProvider.PAYSTACK:
            return self._notify(Notice.error("Selecciona pago con Paystack"))

        self.redirect_flow = PaystackRedirectFlow(opener, self.handle_payment_success)
        try:
            await self.redirect_flow.open(self.selector.intent)
        except CheckoutError as e:
            return self._notify(Notice.error(e.message))
        return None

    async def confirm_redirect_completed(self) -> Optional[Notice]:
        if self.redirect_flow is None:
            return self._notify(Notice.error("Primero abre la página de pago"))
        try:
            await self.redirect_flow.confirm_completed()
        except CheckoutError as e:
            return self._notify(Notice.error(e.message))
        return None

    # Confirmación

    async def load_confirmation(self, order_id: Optional[str] = None) -> PollResult:
        """Lee la orden y hace polling acotado mientras siga pendiente"""
        order_id = order_id or self.order_id
        try:
            order = await self.api.get_order(order_id)
        except CheckoutError as e:
            self._notify(Notice.error(e.message))
            return PollResult(order=None, attempts=0, paid=False)

        if order.status != "pending":
            self.order = order
            return PollResult(order=order, attempts=0, paid=order.is_paid)

        result = await self.confirmation.poll_order_status(order_id, order)
        self.order = result.order
        return result
