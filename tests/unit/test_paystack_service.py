import httpx
import pytest

from services.payments.services.paystack_service import (
    PaystackService,
    compute_signature,
    order_id_from_transaction,
    verify_webhook_signature,
)


def make_service(handler):
    return PaystackService(
        secret_key="sk_test",
        base_url="https://paystack.test",
        transport=httpx.MockTransport(handler),
    )


async def test_verify_reference_success():
    def handler(request):
        assert request.url.path == "/transaction/verify/ref_1"
        assert request.headers["Authorization"] == "Bearer sk_test"
        return httpx.Response(
            200, json={"status": True, "data": {"status": "success", "reference": "ref_1", "metadata": {"orderId": "ord-1"}}}
        )

    assert await make_service(handler).verify_reference("ref_1", "ord-1") is True


async def test_verify_reference_for_other_order():
    def handler(request):
        return httpx.Response(200, json={"data": {"status": "success", "metadata": {"orderId": "ord-2"}}})

    assert await make_service(handler).verify_reference("ref_1", "ord-1") is False


async def test_verify_reference_abandoned():
    def handler(request):
        return httpx.Response(200, json={"data": {"status": "abandoned"}})

    assert await make_service(handler).verify_reference("ref_1", "ord-1") is False


async def test_verify_reference_http_error():
    def handler(request):
        return httpx.Response(404, json={"status": False, "message": "Transaction reference not found"})

    assert await make_service(handler).verify_reference("ref_1", "ord-1") is False


def test_missing_secret_key(monkeypatch):
    from app.core.config import settings

    monkeypatch.setattr(settings, "PAYSTACK_SECRET_KEY", "")
    with pytest.raises(ValueError):
        PaystackService()


def test_webhook_signature():
    payload = b'{"event":"charge.success"}'
    signature = compute_signature(payload, "whsec")

    assert verify_webhook_signature(payload, signature, secret="whsec") is True
    assert verify_webhook_signature(payload, "bad", secret="whsec") is False
    assert verify_webhook_signature(payload, None, secret="whsec") is False
    assert verify_webhook_signature(b'{"event":"other"}', signature, secret="whsec") is False


def test_order_id_from_transaction():
    assert order_id_from_transaction({"metadata": {"order_id": 42}}) == "42"
    assert order_id_from_transaction({"reference": "order_ord-7"}) == "ord-7"
    assert order_id_from_transaction({"reference": "T123", "metadata": ""}) == ""


async def test_verify_reference_non_json_body():
    def handler(request):
        return httpx.Response(200, text="<html>gateway</html>")

    service = make_service(handler)
    with pytest.raises(ValueError):
        await service.verify_transaction("ref_1")
    assert await service.verify_reference("ref_1", "ord-1") is False
