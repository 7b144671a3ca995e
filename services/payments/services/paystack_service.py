"""Servicio de integración con Paystack - Async con httpx"""
import hashlib
import hmac
import logging
from typing import Dict, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


class PaystackService:
    """Verificación de transacciones y firmas de webhook de Paystack"""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key or settings.PAYSTACK_SECRET_KEY
        self.base_url = (base_url or settings.PAYSTACK_BASE_URL).rstrip("/")
        self._transport = transport

        if not self.secret_key:
            raise ValueError(
                "PAYSTACK_SECRET_KEY no configurado. "
                "Por favor, configura esta variable en tu archivo .env."
            )

    async def verify_transaction(self, reference: str) -> Dict:
        """
        Consultar estado de una transacción (ASYNC)

        Returns:
            dict con status, reference, amount y metadata
        """
        headers = {
            "Authorization": f"Bearer {self.secret_key}",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                timeout=settings.HTTP_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = await client.get(
                    f"{self.base_url}/transaction/verify/{reference}",
                    headers=headers,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Timeout verificando transacción Paystack {reference}")
            raise ValueError("Timeout al conectar con Paystack") from e
        except httpx.RequestError as e:
            logger.error(f"Error de conexión con Paystack: {e}")
            raise ValueError(f"Error de conexión con Paystack: {e}") from e

        if response.status_code != 200:
            logger.warning(f"Paystack verify {reference}: HTTP {response.status_code}")
            raise ValueError(f"Paystack respondió {response.status_code} al verificar {reference}")

        try:
            body = response.json()
        except ValueError as e:
            logger.warning(f"Paystack verify {reference}: respuesta no JSON")
            raise ValueError(f"Respuesta inválida de Paystack al verificar {reference}") from e

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict):
            raise ValueError(f"Respuesta inválida de Paystack al verificar {reference}")
        return {
            "status": data.get("status"),
            "reference": data.get("reference") or reference,
            "amount": data.get("amount"),
            "metadata": data.get("metadata") or {},
        }

    async def verify_reference(self, reference: str, order_id: str) -> bool:
        """True si la transacción está en success y no pertenece a otra orden"""
        try:
            transaction = await self.verify_transaction(reference)
        except ValueError as e:
            logger.warning(f"No se pudo verificar {reference}: {e}")
            return False

        if transaction["status"] != "success":
            logger.info(f"Transacción {reference} en estado {transaction['status']}")
            return False

        metadata_order = order_id_from_transaction(transaction)
        if metadata_order and metadata_order != str(order_id):
            logger.warning(f"Transacción {reference} pertenece a orden {metadata_order}, no a {order_id}")
            return False
        return True


def compute_signature(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode(), payload, hashlib.sha512).hexdigest()


def verify_webhook_signature(payload: bytes, signature: Optional[str], secret: Optional[str] = None) -> bool:
    """HMAC-SHA512 del body crudo contra el header x-paystack-signature"""
    secret = secret or settings.paystack_webhook_secret
    if not signature or not secret:
        return False
    return hmac.compare_digest(compute_signature(payload, secret), signature)


def order_id_from_transaction(data: Dict) -> str:
    """Orden desde metadata, o desde una reference con forma order_<id>"""
    metadata = data.get("metadata") or {}
    if isinstance(metadata, dict):
        order_id = metadata.get("orderId") or metadata.get("order_id")
        if order_id:
            return str(order_id)
    reference = data.get("reference") or ""
    if reference.startswith("order_"):
        return reference[len("order_"):]
    return ""
