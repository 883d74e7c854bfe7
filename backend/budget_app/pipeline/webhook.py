"""Inbound WhatsApp webhook processing.

One webhook call may carry several entries, each with several change records,
each with several messages. Every message is claimed in the processed-message
store before any work happens, then routed by kind. A failure while handling
one message is logged and never affects its siblings or the HTTP response.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Protocol

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..domain.entities import ExtractedTransaction
from ..errors import LedgerWriteError, TransactionValidationError, TransportParseError, WhatsAppAPIError
from ..whatsapp.client import MediaContent
from ..whatsapp.payloads import (
    WHATSAPP_OBJECT,
    ChangeValue,
    ImageMessage,
    OtherMessage,
    TextMessage,
    WebhookPayload,
)
from .categories import ensure_category
from .dedup import ProcessedMessageStore
from .duplicates import is_duplicate
from .identity import PhoneNumberResolver
from .ledger import commit_transaction
from .notifications import Notifier
from .recognition import TransactionRecognizer

logger = logging.getLogger(__name__)


class MediaSource(Protocol):
    def fetch_media(self, media_id: str) -> MediaContent:
        ...


class ImageResult(str, Enum):
    SUPPRESSED = "suppressed"
    UNREGISTERED = "unregistered"
    NO_IMAGE = "no_image"
    EXTRACTION_FAILED = "extraction_failed"
    DUPLICATE = "duplicate"
    SAVED = "saved"


@dataclass
class WebhookSummary:
    ignored: bool = False
    processed: int = 0
    redelivered: int = 0
    statuses: int = 0
    failed: int = 0


class WebhookHandler:
    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        notifier: Notifier,
        media_source: MediaSource,
        recognizer: TransactionRecognizer,
        resolver: PhoneNumberResolver,
        message_store: ProcessedMessageStore,
        duplicate_window: timedelta = timedelta(hours=24),
        duplicate_scan_limit: int = 10,
        image_window_seconds: int = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.session_factory = session_factory
        self.notifier = notifier
        self.templates = notifier.templates
        self.media_source = media_source
        self.recognizer = recognizer
        self.resolver = resolver
        self.message_store = message_store
        self.duplicate_window = duplicate_window
        self.duplicate_scan_limit = duplicate_scan_limit
        self.image_window_seconds = image_window_seconds
        self._clock = clock

    def handle(self, body: object) -> WebhookSummary:
        """Process a decoded webhook body.

        Raises :class:`TransportParseError` when a WhatsApp envelope does not
        match the expected shape. Bodies for other objects are ignored.
        """
        summary = WebhookSummary()
        if not isinstance(body, dict) or body.get("object") != WHATSAPP_OBJECT:
            logger.info("Ignoring webhook for object %r", body.get("object") if isinstance(body, dict) else None)
            summary.ignored = True
            return summary

        try:
            payload = WebhookPayload.model_validate(body)
        except ValidationError as exc:
            raise TransportParseError(f"Malformed WhatsApp webhook payload: {exc}") from exc

        for entry in payload.entry:
            for change in entry.changes:
                if change.field != "messages":
                    logger.info("Skipping change field %r", change.field)
                    continue
                value = change.value
                if not value.messages:
                    if value.statuses:
                        summary.statuses += len(value.statuses)
                        logger.info("Status update received: %s", value.statuses[0].status)
                    else:
                        logger.info("Change record without messages or statuses in entry %s", entry.id)
                    continue
                for message in value.messages:
                    self._dispatch(message, value, summary)
        return summary

    def _dispatch(
        self,
        message: ImageMessage | TextMessage | OtherMessage,
        value: ChangeValue,
        summary: WebhookSummary,
    ) -> None:
        address = value.sender_address(message)
        try:
            if message.id and not self.message_store.claim(message.id):
                logger.info("Message %s already processed, skipping", message.id)
                summary.redelivered += 1
                return

            if not address:
                logger.warning("Message %s has no sender address", message.id)
                return

            if isinstance(message, ImageMessage):
                self.process_image(message, address)
            elif isinstance(message, TextMessage):
                self.process_text(message, address)
            else:
                logger.info("Unsupported message type %r from %s", message.type, address)
                self.notifier.send(address, self.templates.unsupported_message())
        except Exception:  # noqa: BLE001
            summary.failed += 1
            logger.exception("Failed to process message %s from %s", message.id, address)
        else:
            summary.processed += 1

    def image_window_key(self, address: str) -> str:
        bucket = int(self._clock()) // self.image_window_seconds
        return f"{address}-image-{bucket}"

    def process_image(self, message: ImageMessage, address: str) -> ImageResult:
        if not self.message_store.claim(self.image_window_key(address)):
            logger.info("Recent image from %s already in progress, skipping", address)
            return ImageResult.SUPPRESSED

        with self.session_factory() as db:
            account = self.resolver.resolve(db, address)
            if account is None:
                self.notifier.send(address, self.templates.registration_needed(address))
                return ImageResult.UNREGISTERED

            logger.info("Processing image %s for account %s", message.id, account.id)
            self.notifier.send(address, self.templates.processing_started())

            image_id = message.image_reference()
            if not image_id:
                logger.warning("No image reference in message %s", message.id)
                self.notifier.send(address, self.templates.image_not_found())
                return ImageResult.NO_IMAGE

            try:
                media = self.media_source.fetch_media(image_id)
            except WhatsAppAPIError:
                self.notifier.send(address, self.templates.processing_error())
                raise

            outcome = self.recognizer.extract(media.content, media.mime_type or message.mime_type() or "image/jpeg")
            candidate = outcome.value
            if candidate is None or not candidate.is_usable:
                logger.info("Extraction %s for message %s", outcome.status.value, message.id)
                self.notifier.send(address, self.templates.extraction_failed())
                return ImageResult.EXTRACTION_FAILED

            if is_duplicate(
                db,
                account.id,
                candidate,
                window=self.duplicate_window,
                limit=self.duplicate_scan_limit,
            ):
                logger.info("Duplicate transaction for account %s, not saving", account.id)
                self.notifier.send(address, self.templates.duplicate(candidate))
                return ImageResult.DUPLICATE

            self._save(db, account.id, candidate, address)

        self.notifier.send(address, self.templates.success(candidate))
        return ImageResult.SAVED

    def _save(self, db: Session, account_id: int, candidate: ExtractedTransaction, address: str) -> int:
        ensure_category(db, account_id, candidate.category, candidate.type)
        try:
            return commit_transaction(db, account_id, candidate)
        except (TransactionValidationError, LedgerWriteError):
            self.notifier.send(address, self.templates.save_failed())
            raise

    def process_text(self, message: TextMessage, address: str) -> None:
        text = message.body.strip().lower()
        logger.info("Text message from %s: %r", address, text)

        if not text:
            reply = self.templates.unrecognised_command()
        elif "help" in text:
            reply = self.templates.help()
        elif "status" in text:
            with self.session_factory() as db:
                account = self.resolver.resolve(db, address)
            reply = (
                self.templates.status_registered(account)
                if account is not None
                else self.templates.status_unregistered(address)
            )
        elif "test" in text:
            reply = self.templates.test_reply(address, text)
        else:
            reply = self.templates.unrecognised_command()
        self.notifier.send(address, reply)
