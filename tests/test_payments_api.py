import asyncio

import httpx
import pytest
import pytest_asyncio

import src.api.endpoints.payments as payments_endpoints
from src.api.main import app
from src.integrations.clients.mocks.payments import MockPaystackClient
from src.integrations.contracts.errors import InitializationError
from src.utils.payment_config_loader import GatewayConfig

PREFIX = "/api/v1/payments"

OPEN_BODY = {
    "order_id": "123",
    "amount_minor_units": 250000,
    "currency": "NGN",
    "channel": "card",
    "customer": {"email": "jane@example.com", "phone": "+2348000000000", "first_name": "Jane", "last_name": "Demo"},
}


@pytest_asyncio.fixture
async def client(gateway, payment_config):
    payments_endpoints.configure(gateway=gateway, config=payment_config)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    await payments_endpoints.close_all_checkouts()
    payments_endpoints.configure()


async def _wait_for(client, checkout_id, *states):
    for _ in range(100):
        body = (await client.get(f"{PREFIX}/sessions/{checkout_id}")).json()
        if body["state"] in states:
            return body
        await asyncio.sleep(0.01)
    raise AssertionError(f"checkout {checkout_id} never reached {states}: {body['state']}")


class SlowGateway(MockPaystackClient):
    """Mock gateway whose initialize call takes ``delay`` seconds."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = 0.0

    async def initialize_payment(self, request):
        await asyncio.sleep(self.delay)
        return await super().initialize_payment(request)


def _live_pumps():
    return [
        task for task in asyncio.all_tasks()
        if getattr(task.get_coro(), "__name__", "") == "_pump" and not task.done()
    ]


async def _open(client, **overrides):
    response = await client.post(f"{PREFIX}/sessions", json={**OPEN_BODY, **overrides})
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.asyncio
async def test_open_mounts_surface_with_gateway_reference(client):
    body = await _open(client)

    assert body["state"] == "awaiting_completion"
    assert body["session"]["reference"] == "errand_123_999"
    assert body["surface"]["platform"] == "mobile"
    assert body["surface"]["authorization_url"].startswith("https://checkout.paystack.com/")
    assert "errand_123_999" in body["surface"]["injected_script"]
    assert body["outcomes"] == []


@pytest.mark.asyncio
async def test_close_page_navigation_ends_in_success(client, gateway):
    checkout_id = (await _open(client))["checkout_id"]

    response = await client.post(f"{PREFIX}/sessions/{checkout_id}/navigation", json={"url": "https://paystack.co/close"})
    assert response.status_code == 200
    assert response.json()["classification"]["kind"] == "success"
    assert response.json()["classification"]["rule"] == "gateway_close_page"

    body = await _wait_for(client, checkout_id, "success")
    assert body["outcomes"] == [{"kind": "success", "value": "errand_123_999"}]
    assert gateway.verify_calls == ["errand_123_999"]


@pytest.mark.asyncio
async def test_cancel_message_returns_to_idle(client, gateway):
    checkout_id = (await _open(client))["checkout_id"]

    response = await client.post(f"{PREFIX}/sessions/{checkout_id}/message", json={"data": {"event": "cancelled"}})

    body = response.json()
    assert body["state"] == "idle"
    assert body["outcomes"] == [{"kind": "cancelled", "value": None}]
    assert gateway.verify_calls == []


@pytest.mark.asyncio
async def test_ignored_navigation_keeps_waiting(client):
    checkout_id = (await _open(client))["checkout_id"]

    response = await client.post(
        f"{PREFIX}/sessions/{checkout_id}/navigation", json={"url": "https://checkout.paystack.com/abc/otp"}
    )

    assert response.json()["classification"]["kind"] == "ignore"
    assert response.json()["state"] == "awaiting_completion"


@pytest.mark.asyncio
async def test_load_error_fails_session(client):
    checkout_id = (await _open(client))["checkout_id"]

    response = await client.post(f"{PREFIX}/sessions/{checkout_id}/http-error", json={"status_code": 502})

    body = response.json()
    assert body["state"] == "failure"
    assert body["outcomes"] == [{"kind": "error", "value": "Payment service unavailable"}]


@pytest.mark.asyncio
async def test_invalid_amount_is_rejected(client, gateway):
    response = await client.post(f"{PREFIX}/sessions", json={**OPEN_BODY, "amount_minor_units": 0})

    assert response.status_code == 422
    assert "amount must be greater than zero" in response.json()["detail"]["errors"]
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_init_failure_then_retry(client, gateway):
    gateway.configure(initialize_error=InitializationError("Invalid upload preset", status_code=400))
    body = await _open(client)
    assert body["state"] == "failure"
    assert body["outcomes"] == [{"kind": "error", "value": "Invalid upload preset"}]

    gateway.configure(initialize_error=None)
    response = await client.post(f"{PREFIX}/sessions/{body['checkout_id']}/retry")

    assert response.status_code == 200
    assert response.json()["state"] == "awaiting_completion"


@pytest.mark.asyncio
async def test_reset_requires_terminal_state(client):
    checkout_id = (await _open(client))["checkout_id"]

    response = await client.post(f"{PREFIX}/sessions/{checkout_id}/reset")

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_close_then_signal_is_not_found(client):
    checkout_id = (await _open(client))["checkout_id"]

    closed = await client.post(f"{PREFIX}/sessions/{checkout_id}/close")
    assert closed.json()["state"] == "idle"
    assert closed.json()["outcomes"] == []

    response = await client.post(f"{PREFIX}/sessions/{checkout_id}/navigation", json={"url": "https://paystack.co/close"})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_web_checkout_uses_popup_confirmation(client):
    body = await _open(client, platform="web")
    assert body["surface"]["platform"] == "web"

    response = await client.post(f"{PREFIX}/sessions/{body['checkout_id']}/confirm")
    assert response.json()["classification"]["source"] == "user"

    final = await _wait_for(client, body["checkout_id"], "success")
    assert final["outcomes"] == [{"kind": "success", "value": "errand_123_999"}]


@pytest.mark.asyncio
async def test_popup_actions_are_rejected_for_mobile(client):
    checkout_id = (await _open(client))["checkout_id"]

    response = await client.post(f"{PREFIX}/sessions/{checkout_id}/confirm")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_checkout_is_404(client):
    response = await client.get(f"{PREFIX}/sessions/does-not-exist")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_paystack_callback_acknowledges_redirect(client):
    response = await client.get(f"{PREFIX}/paystack/callback", params={"trxref": "T1", "reference": "T1"})

    assert response.json() == {"received": True, "reference": "T1"}


@pytest.mark.asyncio
async def test_health_reports_gateway_mode(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["gateway"]["mode"] == "auto"


@pytest.mark.asyncio
async def test_closed_checkouts_are_released(client):
    for _ in range(20):
        checkout_id = (await _open(client))["checkout_id"]
        response = await client.post(f"{PREFIX}/sessions/{checkout_id}/close")
        assert response.status_code == 200

    assert payments_endpoints._checkouts == {}
    assert _live_pumps() == []


@pytest.mark.asyncio
async def test_finished_checkouts_expire_on_next_open(client, monkeypatch):
    monkeypatch.setattr(payments_endpoints, "FINISHED_RETENTION_SECONDS", 0)
    cancelled_id = (await _open(client))["checkout_id"]
    await client.post(f"{PREFIX}/sessions/{cancelled_id}/message", json={"data": {"event": "cancelled"}})
    waiting_id = (await _open(client))["checkout_id"]

    next_id = (await _open(client))["checkout_id"]

    assert (await client.get(f"{PREFIX}/sessions/{cancelled_id}")).status_code == 404
    assert set(payments_endpoints._checkouts) == {waiting_id, next_id}


@pytest.mark.asyncio
async def test_finished_checkout_stays_readable_within_retention(client):
    checkout_id = (await _open(client))["checkout_id"]
    await client.post(f"{PREFIX}/sessions/{checkout_id}/message", json={"data": {"event": "cancelled"}})

    await _open(client)

    body = (await client.get(f"{PREFIX}/sessions/{checkout_id}")).json()
    assert body["outcomes"] == [{"kind": "cancelled", "value": None}]


@pytest_asyncio.fixture
async def slow_client(payment_config, monkeypatch):
    monkeypatch.setattr(payments_endpoints, "INIT_WAIT_GRACE_SECONDS", 0)
    gateway = SlowGateway(reference="errand_123_999")
    config = payment_config.model_copy(update={"gateway": GatewayConfig(timeout_seconds=0.05)})
    payments_endpoints.configure(gateway=gateway, config=config)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c, gateway
    await payments_endpoints.close_all_checkouts()
    payments_endpoints.configure()


@pytest.mark.asyncio
async def test_gateway_that_never_answers_is_gateway_timeout(slow_client):
    client, gateway = slow_client
    gateway.delay = 1.0

    response = await client.post(f"{PREFIX}/sessions", json=OPEN_BODY)

    assert response.status_code == 504
    assert response.json()["detail"]["message"] == "Payment gateway did not respond in time"
    assert payments_endpoints._checkouts == {}
    assert _live_pumps() == []


@pytest.mark.asyncio
async def test_retry_that_times_out_releases_checkout(slow_client):
    client, gateway = slow_client
    gateway.configure(initialize_error=InitializationError("Gateway down", status_code=503))
    checkout_id = (await _open(client))["checkout_id"]

    gateway.configure(initialize_error=None)
    gateway.delay = 1.0
    response = await client.post(f"{PREFIX}/sessions/{checkout_id}/retry")

    assert response.status_code == 504
    assert (await client.get(f"{PREFIX}/sessions/{checkout_id}")).status_code == 404
