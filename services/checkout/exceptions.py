"""Errores del flujo de checkout"""
from typing import Optional


class CheckoutError(Exception):
    """Error base con mensaje apto para mostrar al usuario"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CheckoutInputError(CheckoutError):
    """Entrada inválida del usuario: se resuelve localmente, sin llamadas de red"""


class OrderApiError(CheckoutError):
    """Fallo de red o respuesta de error del backend de órdenes"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PaymentProviderError(CheckoutError):
    """Fallo al inicializar o completar el pago con el provider"""
