# tests/test_whatsapp_service.py
import logging

import httpx
import pytest

from dentalclinic.services import whatsapp_service as whatsapp_module
from dentalclinic.services.whatsapp_service import WhatsAppService

_RealAsyncClient = httpx.AsyncClient


@pytest.fixture
def webhook(monkeypatch):
    """A webhook-backed service whose HTTP calls go to ``responses`` instead of the network."""
    requests = []
    responses = []

    def handler(request):
        requests.append(request)
        return responses.pop(0)

    monkeypatch.setattr(
        whatsapp_module.httpx, "AsyncClient",
        lambda **kwargs: _RealAsyncClient(transport=httpx.MockTransport(handler), **kwargs),
    )
    service = WhatsAppService()
    service.backend = "webhook"
    service.webhook_url = "http://n8n.test/webhook/whatsapp"
    return service, requests, responses


async def test_webhook_returns_message_id(webhook):
    service, requests, responses = webhook
    responses.append(httpx.Response(200, json={"messageId": "wamid.123"}))

    result = await service.send_message("5511987654321", "Olá")

    assert result == {"success": True, "message_id": "wamid.123"}
    assert requests[0].url == "http://n8n.test/webhook/whatsapp"


async def test_webhook_non_json_body_is_logged(webhook, caplog):
    service, _, responses = webhook
    responses.append(httpx.Response(200, text="Workflow was started"))
    caplog.set_level(logging.DEBUG, logger="dentalclinic.services.whatsapp_service")

    result = await service.send_message("5511987654321", "Olá")

    assert result["success"] is True
    assert result["message_id"].startswith("n8n_")
    assert "was not JSON" in caplog.text


async def test_webhook_http_error(webhook):
    service, _, responses = webhook
    responses.append(httpx.Response(500))

    result = await service.send_message("5511987654321", "Olá")

    assert result == {"success": False, "error": "Webhook returned HTTP 500"}
