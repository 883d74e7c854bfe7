from __future__ import annotations

from datetime import timedelta

from ..config import Settings, get_settings
from ..db import SessionLocal
from ..whatsapp.client import WhatsAppClient
from .dedup import build_message_store
from .engines import build_engine
from .identity import PhoneNumberResolver
from .notifications import MessageTemplates, Notifier
from .recognition import TransactionRecognizer
from .webhook import WebhookHandler


def build_recognizer(settings: Settings | None = None) -> TransactionRecognizer:
    return TransactionRecognizer(build_engine(settings or get_settings()))


def build_webhook_handler(settings: Settings | None = None) -> WebhookHandler:
    settings = settings or get_settings()
    client = WhatsAppClient.from_settings(settings)
    return WebhookHandler(
        session_factory=SessionLocal,
        notifier=Notifier(client, MessageTemplates(settings.currency_symbol)),
        media_source=client,
        recognizer=build_recognizer(settings),
        resolver=PhoneNumberResolver.from_settings(settings),
        message_store=build_message_store(settings),
        duplicate_window=timedelta(hours=settings.duplicate_window_hours),
        duplicate_scan_limit=settings.duplicate_scan_limit,
        image_window_seconds=settings.image_dedup_window_seconds,
    )
