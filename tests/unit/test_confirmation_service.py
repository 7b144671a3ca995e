from unittest.mock import AsyncMock

from services.checkout.exceptions import OrderApiError
from services.checkout.services.confirmation_service import ConfirmationService


def make_service(api, **kwargs):
    sleep = AsyncMock()
    return ConfirmationService(api, interval=2.0, max_attempts=10, sleep=sleep, **kwargs), sleep


async def test_report_payment_failure_is_swallowed(api):
    api.confirm_payment.side_effect = OrderApiError("caído")
    service, _ = make_service(api)

    assert await service.report_payment("ord-1", "pi_1") is False
    api.confirm_payment.assert_awaited_once_with("ord-1", "pi_1")


async def test_report_payment_without_id_skips_call(api):
    service, _ = make_service(api)

    assert await service.report_payment("ord-1", None) is False
    api.confirm_payment.assert_not_called()


async def test_poll_is_bounded_to_ten_requests(api, order_factory):
    api.get_order.return_value = order_factory(status="pending")
    service, sleep = make_service(api)

    result = await service.poll_order_status("ord-1", order_factory(status="pending"))

    assert result.paid is False
    assert result.attempts == 10
    assert api.get_order.await_count == 10
    sleep.assert_awaited_with(2.0)


async def test_poll_stops_when_paid(api, order_factory):
    api.get_order.side_effect = [
        order_factory(status="pending"),
        order_factory(status="pending"),
        order_factory(status="paid"),
    ]
    service, _ = make_service(api)

    result = await service.poll_order_status("ord-1")

    assert result.paid is True
    assert result.attempts == 3
    assert result.order.status == "paid"


async def test_poll_stops_on_first_error(api, order_factory):
    api.get_order.side_effect = [order_factory(status="pending"), OrderApiError("caído")]
    service, _ = make_service(api)

    result = await service.poll_order_status("ord-1")

    assert result.paid is False
    assert result.attempts == 2
    assert api.get_order.await_count == 2


async def test_paid_order_is_not_polled(api, order_factory):
    service, sleep = make_service(api)

    result = await service.poll_order_status("ord-1", order_factory(status="paid"))

    assert result.paid is True
    api.get_order.assert_not_called()
    sleep.assert_not_called()
