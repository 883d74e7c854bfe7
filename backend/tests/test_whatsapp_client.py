import json

import httpx
import pytest

from budget_app.domain.entities import OutcomeStatus
from budget_app.errors import WhatsAppAPIError
from budget_app.pipeline.notifications import MessageTemplates, Notifier
from budget_app.whatsapp import client as client_module
from budget_app.whatsapp.client import WhatsAppClient

BASE_URL = "https://graph.example.test/v18.0"


def _client(handler, access_token="token-123"):
    return WhatsAppClient(
        access_token=access_token,
        phone_number_id="phone-id-1",
        base_url=BASE_URL,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_fetch_media_resolves_url_then_downloads():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/v18.0/media-42":
            return httpx.Response(200, json={"url": "https://cdn.example.test/media-42.jpg"})
        return httpx.Response(200, content=b"jpeg-bytes", headers={"content-type": "image/jpeg; charset=binary"})

    media = _client(handler).fetch_media("media-42")

    assert media.content == b"jpeg-bytes"
    assert media.mime_type == "image/jpeg"
    assert [str(request.url) for request in requests] == [
        f"{BASE_URL}/media-42",
        "https://cdn.example.test/media-42.jpg",
    ]
    assert all(request.headers["Authorization"] == "Bearer token-123" for request in requests)


def test_fetch_media_without_url_raises():
    client = _client(lambda request: httpx.Response(200, json={"id": "media-42"}))

    with pytest.raises(WhatsAppAPIError):
        client.fetch_media("media-42")


def test_send_text_posts_message_payload():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"messages": [{"id": "wamid.out.1"}]})

    message_id = _client(handler).send_text("97517773326", "hello")

    assert message_id == "wamid.out.1"
    assert captured["url"] == f"{BASE_URL}/phone-id-1/messages"
    assert captured["body"] == {
        "messaging_product": "whatsapp",
        "to": "97517773326",
        "type": "text",
        "text": {"body": "hello"},
    }


def test_api_error_carries_status_and_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "Invalid OAuth access token."}})

    with pytest.raises(WhatsAppAPIError) as excinfo:
        _client(handler).send_text("97517773326", "hello")

    assert excinfo.value.status_code == 401
    assert "Invalid OAuth access token." in str(excinfo.value)


def test_network_error_is_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(WhatsAppAPIError):
        _client(handler).fetch_media("media-42")


def test_missing_access_token_raises_before_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(WhatsAppAPIError):
        _client(handler, access_token=None).send_text("97517773326", "hello")


def test_from_settings_uses_patched_http_client(monkeypatch):
    from budget_app.config import Settings

    seen = {}

    def fake_build(timeout):
        seen["timeout"] = timeout
        return httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})))

    monkeypatch.setattr(client_module, "_build_httpx_client", fake_build)
    settings = Settings(
        WHATSAPP_ACCESS_TOKEN="abc",
        WHATSAPP_PHONE_NUMBER_ID="phone-id-1",
        whatsapp_timeout_seconds=5,
    )

    client = WhatsAppClient.from_settings(settings)

    assert seen["timeout"] == 5
    assert client.phone_number_id == "phone-id-1"
    assert client.send_text("97517773326", "hello") is None


def test_notifier_reports_send_failure_without_raising():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream down")

    notifier = Notifier(_client(handler), MessageTemplates())

    outcome = notifier.send("97517773326", "hello")

    assert outcome.status is OutcomeStatus.FAILED
    assert isinstance(outcome.error, WhatsAppAPIError)


def test_notifier_success_returns_message_id():
    notifier = Notifier(_client(lambda request: httpx.Response(200, json={"messages": [{"id": "wamid.9"}]})))

    outcome = notifier.send("97517773326", "hello")

    assert outcome.ok
    assert outcome.value == "wamid.9"


def test_amounts_are_formatted_without_trailing_zero_cents():
    templates = MessageTemplates("Nu.")

    assert templates._amount(150.0) == "Nu.150"
    assert templates._amount(99.5) == "Nu.99.50"
    assert templates._amount(1_000_000.0) == "Nu.1000000"


def test_send_text_with_non_json_success_body_raises_api_error():
    client = _client(lambda request: httpx.Response(200, text="OK"))

    with pytest.raises(WhatsAppAPIError):
        client.send_text("97517773326", "hello")


def test_fetch_media_with_non_json_metadata_raises_api_error():
    client = _client(lambda request: httpx.Response(200, text="OK"))

    with pytest.raises(WhatsAppAPIError):
        client.fetch_media("media-42")


def test_notifier_non_json_success_body_is_a_failed_outcome():
    notifier = Notifier(_client(lambda request: httpx.Response(200, text="OK")))

    outcome = notifier.send("97517773326", "hello")

    assert outcome.status is OutcomeStatus.FAILED
    assert isinstance(outcome.error, WhatsAppAPIError)
