"""Modelos Pydantic del flujo de checkout (lado cliente)"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel


def _first(raw: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Primer valor no nulo entre varias claves (el backend mezcla camelCase y snake_case)"""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return default


def _to_cents(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class PaymentProvider(str, Enum):
    STRIPE = "stripe"
    PAYSTACK = "paystack"


class CheckoutStage(str, Enum):
    SELECTION = "selection"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"


class HoldState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    EXPIRED = "expired"


class InitiationState(str, Enum):
    IDLE = "idle"
    RESETTING = "resetting"
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"


class CardPaymentOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    FAILED = "failed"


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


class Notice(BaseModel):
    """Mensaje para el usuario (toast/alert)"""
    level: NoticeLevel
    message: str

    @classmethod
    def error(cls, message: str) -> "Notice":
        return cls(level=NoticeLevel.ERROR, message=message)

    @classmethod
    def info(cls, message: str) -> "Notice":
        return cls(level=NoticeLevel.INFO, message=message)

    @classmethod
    def success(cls, message: str) -> "Notice":
        return cls(level=NoticeLevel.SUCCESS, message=message)


class TicketType(BaseModel):
    id: str
    name: str = ""
    price_cents: int = 0
    fee_cents: int = 0
    quantity_available: int = 0
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "TicketType":
        return cls(
            id=str(raw.get("id") or ""),
            name=raw.get("name") or "",
            price_cents=_to_cents(_first(raw, "priceCents", "price_cents", default=0)),
            fee_cents=_to_cents(_first(raw, "feeCents", "fee_cents", default=0)),
            quantity_available=_to_cents(_first(raw, "quantityAvailable", "available", "capacity", default=0)),
            status=raw.get("status") or "active",
        )


class OrderAmounts(BaseModel):
    subtotal_cents: int = 0
    fees_cents: int = 0
    total_before_discount_cents: int = 0


class OrderItem(BaseModel):
    ticket_type_id: str
    quantity: int
    unit_price_cents: int = 0


class Order(BaseModel):
    id: str
    event_id: Optional[str] = None
    items: List[OrderItem] = []
    subtotal_cents: int = 0
    fees_cents: int = 0
    discount_cents: int = 0
    tax_cents: int = 0
    total_cents: int = 0
    currency: str = "USD"
    status: str = "pending"

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"

    @property
    def is_free(self) -> bool:
        return self.total_cents == 0

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Order":
        items = [
            OrderItem(
                ticket_type_id=str(_first(item, "ticketTypeId", "ticket_type_id", default="")),
                quantity=_to_cents(item.get("quantity")),
                unit_price_cents=_to_cents(_first(item, "unitPriceCents", "unit_price_cents", default=0)),
            )
            for item in (raw.get("items") or [])
            if isinstance(item, dict)
        ]
        return cls(
            id=str(raw.get("id") or ""),
            event_id=_first(raw, "eventId", "event_id"),
            items=items,
            subtotal_cents=_to_cents(_first(raw, "subtotalCents", "subtotal_cents", default=0)),
            fees_cents=_to_cents(_first(raw, "feesCents", "fees_cents", default=0)),
            discount_cents=_to_cents(_first(raw, "discountCents", "discount_cents", default=0)),
            tax_cents=_to_cents(_first(raw, "taxCents", "tax_cents", default=0)),
            total_cents=_to_cents(_first(raw, "totalCents", "total_cents", "totalAmountCents", default=0)),
            currency=raw.get("currency") or "USD",
            status=raw.get("status") or "pending",
        )


class PromoValidation(BaseModel):
    valid: bool = False
    discount_amount_cents: int = 0
    message: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "PromoValidation":
        valid = raw.get("valid")
        if valid is None:
            valid = raw.get("isValid", False)
        discount = raw.get("discountAmount")
        return cls(
            valid=bool(valid),
            discount_amount_cents=int(discount) if isinstance(discount, (int, float)) else 0,
            message=raw.get("message"),
        )


class PromoApplication(BaseModel):
    code: str
    discount_cents: int


class PaymentIntentRef(BaseModel):
    """Handle opaco del provider para una orden y un provider concretos"""
    order_id: str
    provider: PaymentProvider
    client_secret: Optional[str] = None
    payment_intent_id: Optional[str] = None
    reference: Optional[str] = None
    authorization_url: Optional[str] = None

    @property
    def confirmation_id(self) -> Optional[str]:
        """Id a reportar al confirmar: intent de Stripe o reference de Paystack"""
        if self.payment_intent_id:
            return self.payment_intent_id
        if self.provider == PaymentProvider.STRIPE and self.client_secret:
            # client_secret de Stripe: "pi_xxx_secret_yyy"
            return self.client_secret.split("_secret_")[0]
        return self.reference

    @classmethod
    def from_api(cls, order_id: str, provider: PaymentProvider, raw: Dict[str, Any]) -> "PaymentIntentRef":
        return cls(
            order_id=order_id,
            provider=provider,
            client_secret=_first(raw, "clientSecret", "client_secret"),
            payment_intent_id=_first(raw, "paymentIntentId", "payment_intent_id", "providerIntent"),
            reference=raw.get("reference"),
            authorization_url=_first(raw, "authorizationUrl", "authorization_url"),
        )


class PollResult(BaseModel):
    order: Optional[Order] = None
    attempts: int = 0
    paid: bool = False
