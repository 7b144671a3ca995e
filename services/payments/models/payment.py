"""Modelos Pydantic del ledger de pagos"""
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from enum import Enum


class PaymentSource(str, Enum):
    CLIENT = "client"
    WEBHOOK = "webhook"


class MarkPaidStatus(str, Enum):
    ALREADY_PAID = "already_paid"
    NEWLY_PAID = "newly_paid"
    REJECTED = "rejected"


class PaymentRecord(BaseModel):
    order_id: str
    provider: str  # stripe | paystack
    payment_intent_id: str
    status: str = "paid"
    source: PaymentSource
    paid_at: datetime


class MarkPaidResult(BaseModel):
    status: MarkPaidStatus
    order_id: str
    payment_intent_id: str
    reason: Optional[str] = None  # solo en rejected


class ConfirmPaymentRequest(BaseModel):
    paymentIntentId: str
    provider: Optional[str] = None  # se infiere del id si no viene


class OrderPaymentResponse(BaseModel):
    order_id: str
    status: str  # pending | paid
    payment: Optional[PaymentRecord] = None


class ProvidersResponse(BaseModel):
    providers: List[str]
    default: Optional[str] = None  # solo si hay exactamente uno
