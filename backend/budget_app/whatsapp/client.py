"""Thin client for the WhatsApp Cloud API."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ..config import Settings, get_settings
from ..errors import WhatsAppAPIError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MediaContent:
    content: bytes
    mime_type: str


def _build_httpx_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return "Unknown error"


def _json(response: httpx.Response) -> object:
    try:
        return response.json()
    except ValueError as exc:
        raise WhatsAppAPIError(
            f"Non-JSON response from {response.request.url}: {exc}",
            status_code=response.status_code,
        ) from exc


class WhatsAppClient:
    def __init__(
        self,
        *,
        access_token: str | None,
        phone_number_id: str | None,
        base_url: str = "https://graph.facebook.com/v18.0",
        timeout: float = 20.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.base_url = base_url.rstrip("/")
        self._client = client or _build_httpx_client(timeout)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> WhatsAppClient:
        settings = settings or get_settings()
        return cls(
            access_token=settings.whatsapp_access_token,
            phone_number_id=settings.whatsapp_phone_number_id,
            base_url=settings.whatsapp_api_base_url,
            timeout=settings.whatsapp_timeout_seconds,
        )

    def _headers(self) -> dict[str, str]:
        if not self.access_token:
            raise WhatsAppAPIError("WHATSAPP_ACCESS_TOKEN is not configured.")
        return {"Authorization": f"Bearer {self.access_token}"}

    def _request(self, method: str, url: str, **kwargs: object) -> httpx.Response:
        try:
            response = self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            raise WhatsAppAPIError(f"{method} {url} failed: {exc}") from exc
        if response.is_error:
            raise WhatsAppAPIError(
                f"WhatsApp API error: {_error_message(response)}",
                status_code=response.status_code,
            )
        return response

    def fetch_media(self, media_id: str) -> MediaContent:
        """Resolve a media id to its download URL, then download the bytes."""
        meta = _json(self._request("GET", f"{self.base_url}/{media_id}"))
        url = meta.get("url") if isinstance(meta, dict) else None
        if not url:
            raise WhatsAppAPIError(f"No download URL returned for media {media_id}")
        logger.info("Downloading media %s", media_id)

        response = self._request("GET", url)
        mime_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip() or "image/jpeg"
        logger.info("Downloaded media %s (%d bytes, %s)", media_id, len(response.content), mime_type)
        return MediaContent(content=response.content, mime_type=mime_type)

    def send_text(self, to: str, body: str) -> str | None:
        """Send a plain text message and return the transport message id."""
        if not self.phone_number_id:
            raise WhatsAppAPIError("WHATSAPP_PHONE_NUMBER_ID is not configured.")
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }
        result = _json(self._request("POST", f"{self.base_url}/{self.phone_number_id}/messages", json=payload))
        messages = result.get("messages") if isinstance(result, dict) else None
        return messages[0].get("id") if messages else None

    def close(self) -> None:
        self._client.close()
