"""Cálculo de montos de la orden (puro, enteros en unidades menores)"""
from typing import Iterable, Mapping

from services.checkout.models.checkout import OrderAmounts, TicketType


def compute_amounts(
    selections: Mapping[str, int],
    catalog: Iterable[TicketType],
) -> OrderAmounts:
    """
    Subtotal y fees a partir de las selecciones y el catálogo.

    Un id que no está en el catálogo aporta cero (referencia obsoleta, no error).
    """
    by_id = {ticket_type.id: ticket_type for ticket_type in catalog}
    subtotal_cents = 0
    fees_cents = 0

    for ticket_type_id, quantity in selections.items():
        if quantity <= 0:
            continue
        ticket_type = by_id.get(ticket_type_id)
        if ticket_type is None:
            continue
        subtotal_cents += ticket_type.price_cents * quantity
        fees_cents += ticket_type.fee_cents * quantity

    return OrderAmounts(
        subtotal_cents=subtotal_cents,
        fees_cents=fees_cents,
        total_before_discount_cents=subtotal_cents + fees_cents,
    )


def total_due_cents(amounts: OrderAmounts, discount_cents: int = 0) -> int:
    """Total a cobrar; el descuento nunca lo deja negativo"""
    return max(amounts.subtotal_cents + amounts.fees_cents - discount_cents, 0)


def cents_to_units(cents: int) -> float:
    """Unidades mayores para mostrar (10400 -> 104.0)"""
    return cents / 100
