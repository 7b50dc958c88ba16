"""Tests for the email provider client and the best-effort senders."""

import asyncio

import httpx
import pytest

from storefront import notifications
from storefront.clients import email_client


@pytest.fixture
def provider(monkeypatch):
    """Route the client to a scripted provider and record the requests it receives."""
    requests = []
    responses = []
    real_client = httpx.AsyncClient

    def handler(request):
        requests.append(request)
        return responses.pop(0) if responses else httpx.Response(200, json={"id": "msg_1"})

    transport = httpx.MockTransport(handler)
    monkeypatch.setattr(email_client.httpx, "AsyncClient",
                        lambda **kwargs: real_client(transport=transport, **kwargs))
    monkeypatch.setattr(email_client, "EMAIL_API_KEY", "re_test_key")
    monkeypatch.setattr(email_client, "RETRY_DELAY", 0)
    return requests, responses


def send(subject="Hello"):
    return asyncio.run(email_client.send_email(["jane@example.com"], subject, "<p>Hi</p>"))


def test_sends_with_bearer_key(provider):
    requests, _ = provider
    assert send() is True
    assert len(requests) == 1
    assert requests[0].headers["Authorization"] == "Bearer re_test_key"


def test_retries_server_errors(provider):
    requests, responses = provider
    responses.append(httpx.Response(503, text="unavailable"))
    assert send() is True
    assert len(requests) == 2


def test_gives_up_after_max_attempts(provider):
    requests, responses = provider
    responses.extend([httpx.Response(500), httpx.Response(502)])
    assert send() is False
    assert len(requests) == email_client.EMAIL_MAX_ATTEMPTS


def test_client_errors_not_retried(provider):
    requests, responses = provider
    responses.append(httpx.Response(422, json={"message": "invalid to"}))
    assert send() is False
    assert len(requests) == 1


def test_missing_key_skips_sending(provider, monkeypatch):
    requests, _ = provider
    monkeypatch.setattr(email_client, "EMAIL_API_KEY", "")
    assert send() is False
    assert requests == []


def test_status_email_swallows_provider_exceptions(monkeypatch):
    async def broken_send_email(*args, **kwargs):
        raise RuntimeError("provider down")

    monkeypatch.setattr(email_client, "send_email", broken_send_email)
    result = asyncio.run(notifications.send_order_status_update(
        "jane@example.com", "Jane Doe", "CHK-TEST-0001", "SHIPPED", "TRK1"
    ))
    assert result is False


def test_status_email_content(sent_emails):
    asyncio.run(notifications.send_order_status_update(
        "jane@example.com", "Jane Doe", "CHK-TEST-0001", "SHIPPED", "TRK1"
    ))
    assert len(sent_emails) == 1
    assert "CHK-TEST-0001" in sent_emails[0]["subject"]
    assert "TRK1" in sent_emails[0]["html"]
