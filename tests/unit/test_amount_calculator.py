from services.checkout.models.checkout import OrderAmounts
from services.checkout.services.amount_calculator import (
    cents_to_units,
    compute_amounts,
    total_due_cents,
)


def test_compute_amounts_single_type(catalog):
    amounts = compute_amounts({"GA": 2}, catalog)

    assert amounts.subtotal_cents == 10000
    assert amounts.fees_cents == 400
    assert amounts.total_before_discount_cents == 10400


def test_compute_amounts_multiple_types(catalog):
    amounts = compute_amounts({"GA": 1, "VIP": 2}, catalog)

    assert amounts.subtotal_cents == 5000 + 30000
    assert amounts.fees_cents == 200 + 1000


def test_unknown_ticket_type_contributes_zero(catalog):
    amounts = compute_amounts({"GA": 1, "ghost": 5}, catalog)

    assert amounts.total_before_discount_cents == 5200


def test_zero_and_negative_quantities_ignored(catalog):
    amounts = compute_amounts({"GA": 0, "VIP": -1}, catalog)

    assert amounts == OrderAmounts()


def test_discount_and_display_units(catalog):
    amounts = compute_amounts({"GA": 2}, catalog)
    total = total_due_cents(amounts, 2000)

    assert total == 8400
    assert cents_to_units(2000) == 20.0
    assert cents_to_units(total) == 84.0


def test_total_never_negative(catalog):
    amounts = compute_amounts({"GA": 1}, catalog)

    assert total_due_cents(amounts, 999999) == 0
