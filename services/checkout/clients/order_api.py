"""Cliente async (httpx) del backend de eventos/órdenes/promociones"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from services.checkout.exceptions import OrderApiError
from services.checkout.models.checkout import (
    Order,
    PaymentIntentRef,
    PaymentProvider,
    PromoValidation,
    TicketType,
)

logger = logging.getLogger(__name__)

INVALID_RESPONSE_MESSAGE = "Respuesta inválida del servidor"


class OrderApiClient:
    """
    Wrapper del REST backend consumido por el checkout.

    El usuario actual es un colaborador externo: solo se propaga su token
    como Bearer si se entrega.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        auth_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, json=json, headers=self._headers(headers))
        except httpx.TimeoutException as e:
            logger.error(f"Timeout en {method} {path}: {e}")
            raise OrderApiError("El servidor tardó demasiado en responder. Intenta nuevamente.") from e
        except httpx.RequestError as e:
            logger.error(f"Error de conexión en {method} {path}: {e}")
            raise OrderApiError("No se pudo conectar con el servidor.") from e

        if response.status_code >= 400:
            raise OrderApiError(self._error_message(response), status_code=response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            # 2xx con body no JSON (p.ej. un proxy respondiendo "OK")
            logger.error(f"Respuesta no JSON en {method} {path}: {response.text[:200]}")
            raise OrderApiError(INVALID_RESPONSE_MESSAGE, status_code=response.status_code) from e

    async def _request_object(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Como _request, pero exige un objeto JSON"""
        data = await self._request(method, path, **kwargs)
        if not isinstance(data, dict):
            logger.error(f"Se esperaba un objeto JSON en {method} {path}, llegó {type(data).__name__}")
            raise OrderApiError(INVALID_RESPONSE_MESSAGE)
        return data

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Mensaje del servidor si existe (message puede ser lista en validaciones)"""
        try:
            data = response.json()
        except ValueError:
            data = {}
        message = None
        if isinstance(data, dict):
            message = data.get("message") or data.get("error") or data.get("detail")
        if isinstance(message, list):
            message = ", ".join(str(m) for m in message)
        return message or f"Error del servidor ({response.status_code})"

    async def get_event(self, event_id: str) -> Dict[str, Any]:
        return await self._request_object("GET", f"/events/{event_id}")

    async def get_ticket_types(self, event_id: str) -> List[TicketType]:
        data = await self._request("GET", f"/events/{event_id}/ticket-types")
        if isinstance(data, dict):
            data = data.get("items") or data.get("data") or []
        if not isinstance(data, list):
            raise OrderApiError(INVALID_RESPONSE_MESSAGE)
        return [TicketType.from_api(row) for row in data if isinstance(row, dict)]

    async def validate_promo(
        self,
        code: str,
        event_id: str,
        ticket_type_ids: List[str],
        order_amount_cents: int,
    ) -> PromoValidation:
        data = await self._request_object(
            "POST",
            "/promotions/validate",
            json={
                "code": code,
                "eventId": event_id,
                "ticketTypeIds": ticket_type_ids,
                "orderAmount": order_amount_cents,
            },
        )
        return PromoValidation.from_api(data)

    async def create_order(
        self,
        event_id: str,
        items: List[Dict[str, Any]],
        idempotency_key: Optional[str] = None,
    ) -> Order:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        data = await self._request_object(
            "POST",
            "/orders",
            json={"eventId": event_id, "items": items},
            headers=headers,
        )
        return Order.from_api(data)

    async def get_order(self, order_id: str) -> Order:
        data = await self._request_object("GET", f"/orders/{order_id}")
        return Order.from_api(data)

    async def initiate_payment(
        self,
        order_id: str,
        provider: PaymentProvider,
        return_url: str,
        cancel_url: str,
    ) -> PaymentIntentRef:
        data = await self._request_object(
            "POST",
            f"/orders/{order_id}/payment",
            json={"provider": provider.value, "returnUrl": return_url, "cancelUrl": cancel_url},
        )
        return PaymentIntentRef.from_api(order_id, provider, data or {})

    async def confirm_payment(self, order_id: str, payment_intent_id: str) -> Dict[str, Any]:
        return await self._request_object(
            "POST",
            f"/orders/{order_id}/payment/confirm",
            json={"paymentIntentId": payment_intent_id},
        )
