import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from services.checkout.exceptions import OrderApiError
from services.checkout.models.checkout import (
    CheckoutStage,
    HoldState,
    NoticeLevel,
    PromoValidation,
    TicketType,
)
from services.checkout.services.checkout_session import (
    HOLD_EXPIRED_MESSAGE,
    PROMO_CLEARED_MESSAGE,
    CheckoutSession,
)
from services.checkout.services.hold_timer import HoldTimer


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_session(api, catalog, **kwargs):
    return CheckoutSession("evt-1", api, catalog=catalog, **kwargs)


def test_only_active_ticket_types_are_offered(api, catalog):
    session = make_session(api, catalog)

    assert [t.id for t in session.catalog] == ["GA", "VIP"]


async def test_load_fetches_event_and_catalog(api):
    api.get_event.return_value = {"id": "evt-1", "name": "Concierto"}
    api.get_ticket_types.return_value = [
        TicketType(id="GA", price_cents=5000),
        TicketType(id="X", status="inactive"),
    ]
    session = CheckoutSession("evt-1", api)

    await session.load()

    assert session.event["name"] == "Concierto"
    assert [t.id for t in session.catalog] == ["GA"]


def test_quantity_zero_removes_selection_and_resets_hold(api, catalog):
    session = make_session(api, catalog)

    session.set_quantity("GA", 2)
    assert session.hold.state == HoldState.RUNNING

    session.set_quantity("GA", 0)
    assert session.selections == {}
    assert session.hold.state == HoldState.IDLE


async def test_apply_promo_and_totals(api, catalog):
    api.validate_promo.return_value = PromoValidation(valid=True, discount_amount_cents=2000)
    session = make_session(api, catalog)
    session.set_quantity("GA", 2)

    notice = await session.apply_promo("save20")

    assert notice.level == NoticeLevel.SUCCESS
    assert session.amounts.total_before_discount_cents == 10400
    assert session.discount_cents == 2000
    assert session.total_due_cents == 8400


async def test_selection_change_clears_promo(api, catalog):
    api.validate_promo.return_value = PromoValidation(valid=True, discount_amount_cents=2000)
    session = make_session(api, catalog)
    session.set_quantity("GA", 2)
    await session.apply_promo("SAVE20")

    notice = session.set_quantity("GA", 3)

    assert session.promo is None
    assert notice.level == NoticeLevel.INFO
    assert notice.message == PROMO_CLEARED_MESSAGE


async def test_rejected_promo_surfaces_error(api, catalog):
    api.validate_promo.return_value = PromoValidation(valid=False, message="Código expirado")
    session = make_session(api, catalog)
    session.set_quantity("GA", 1)

    notice = await session.apply_promo("OLD")

    assert notice.level == NoticeLevel.ERROR
    assert notice.message == "Código expirado"
    assert session.promo is None
    assert session.validating_promo is False


async def test_rejected_second_code_keeps_applied_promo(api, catalog):
    api.validate_promo.side_effect = [
        PromoValidation(valid=True, discount_amount_cents=2000),
        PromoValidation(valid=False, message="Código expirado"),
    ]
    session = make_session(api, catalog)
    session.set_quantity("GA", 2)
    await session.apply_promo("SAVE20")

    notice = await session.apply_promo("BAD")

    assert notice.level == NoticeLevel.ERROR
    assert session.promo.code == "SAVE20"
    assert session.discount_cents == 2000


async def test_promo_reply_for_previous_cart_is_discarded(api, catalog):
    release = asyncio.Event()

    async def slow_validate(**kwargs):
        await release.wait()
        return PromoValidation(valid=True, discount_amount_cents=2000)

    api.validate_promo.side_effect = slow_validate
    session = make_session(api, catalog)
    session.set_quantity("GA", 2)

    pending = asyncio.create_task(session.apply_promo("SAVE20"))
    await asyncio.sleep(0)
    session.set_quantity("GA", 1)
    release.set()
    notice = await pending

    assert notice.level == NoticeLevel.INFO
    assert session.promo is None
    assert session.discount_cents == 0
    assert session.total_due_cents == 5200


async def test_hold_watch_expires_session(api, catalog):
    clock = FakeClock()
    session = make_session(api, catalog, hold=HoldTimer(clock=clock))
    session.set_quantity("GA", 2)

    async def fake_sleep(seconds):
        clock.advance(seconds=seconds)

    task = session.start_hold_watch(sleep=fake_sleep)
    assert await task is True

    assert session.selections == {}
    assert session.stage == CheckoutStage.SELECTION
    assert session.hold_task is None
    assert session.notices[-1].message == HOLD_EXPIRED_MESSAGE


async def test_clearing_selection_cancels_hold_watch(api, catalog):
    session = make_session(api, catalog)
    session.set_quantity("GA", 1)
    task = session.start_hold_watch()

    assert session.start_hold_watch() is task

    session.set_quantity("GA", 0)
    with pytest.raises(asyncio.CancelledError):
        await task
    assert session.hold_task is None
    assert session.hold.state == HoldState.IDLE


async def test_hold_watch_needs_selection(api, catalog):
    session = make_session(api, catalog)

    assert session.start_hold_watch() is None


async def test_create_order_without_selection(api, catalog):
    session = make_session(api, catalog)

    notice = await session.create_order()

    assert notice.message == "Selecciona al menos un ticket"
    api.create_order.assert_not_called()


async def test_create_order_navigates_to_payment(api, catalog, order_factory):
    api.create_order.return_value = order_factory("ord-9")
    session = make_session(api, catalog)
    session.set_quantity("GA", 2)

    notice = await session.create_order()

    assert notice is None
    assert session.stage == CheckoutStage.PAYMENT
    assert session.navigation == "/events/evt-1/checkout/payment?orderId=ord-9"
    api.create_order.assert_awaited_once_with(
        "evt-1",
        [{"ticketTypeId": "GA", "quantity": 2}],
        idempotency_key=session.idempotency_key,
    )


async def test_retry_reuses_idempotency_key(api, catalog, order_factory):
    api.create_order.side_effect = [OrderApiError("Sin stock"), order_factory()]
    session = make_session(api, catalog)
    session.set_quantity("GA", 2)

    failed = await session.create_order()
    assert failed.message == "Sin stock"
    assert session.stage == CheckoutStage.SELECTION
    assert session.selections == {"GA": 2}
    assert session.hold.state == HoldState.RUNNING

    await session.create_order()

    keys = [call.kwargs["idempotency_key"] for call in api.create_order.await_args_list]
    assert keys[0] == keys[1]


async def test_selection_change_renews_idempotency_key(api, catalog):
    api.create_order.side_effect = OrderApiError("Sin stock")
    session = make_session(api, catalog)
    session.set_quantity("GA", 2)
    await session.create_order()
    first_key = session.idempotency_key

    session.set_quantity("GA", 1)
    await session.create_order()

    assert session.idempotency_key != first_key


async def test_busy_flag_rejects_second_submit(api, catalog):
    session = make_session(api, catalog)
    session.set_quantity("GA", 1)
    session.creating_order = True

    assert await session.create_order() is None
    api.create_order.assert_not_called()


def test_hold_expiry_clears_session(api, catalog):
    session = make_session(api, catalog)
    session.set_quantity("GA", 2)
    session.stage = CheckoutStage.PAYMENT

    session.on_hold_expired()

    assert session.selections == {}
    assert session.promo is None
    assert session.stage == CheckoutStage.SELECTION
    assert session.hold.state == HoldState.IDLE
    assert session.notices[-1].message == HOLD_EXPIRED_MESSAGE
    assert api.method_calls == []


async def test_free_order_skips_payment_initiation(api, catalog, order_factory):
    api.get_order.return_value = order_factory("X", total_cents=0)
    session = make_session(api, catalog, providers=[])
    session.order_id = "X"

    notice = await session.begin_payment()

    assert notice is None
    assert session.stage == CheckoutStage.CONFIRMATION
    assert session.navigation == "/confirmation?orderId=X"
    api.initiate_payment.assert_not_called()
