"""Pydantic models for the WhatsApp webhook envelope.

Messages form a tagged union on ``type``. Kinds the pipeline does not handle
land in :class:`OtherMessage` rather than failing validation.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

WHATSAPP_OBJECT = "whatsapp_business_account"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Contact(_Payload):
    wa_id: str | None = None


class MediaRef(_Payload):
    id: str | None = None
    mime_type: str | None = None


class TextBody(_Payload):
    body: str | None = None


class _Message(_Payload):
    id: str | None = None
    from_: str | None = Field(default=None, alias="from")
    timestamp: str | int | None = None


class ImageMessage(_Message):
    type: Literal["image"] = "image"
    image: MediaRef | str | None = None
    media: MediaRef | None = None

    def image_reference(self) -> str | None:
        if isinstance(self.image, MediaRef) and self.image.id:
            return self.image.id
        if isinstance(self.image, str) and self.image:
            return self.image
        if self.media is not None and self.media.id:
            return self.media.id
        return None

    def mime_type(self) -> str | None:
        if isinstance(self.image, MediaRef):
            return self.image.mime_type
        return None


class TextMessage(_Message):
    type: Literal["text"] = "text"
    text: TextBody | None = None

    @property
    def body(self) -> str:
        return (self.text.body or "") if self.text else ""


class OtherMessage(_Message):
    type: str | None = None


def _message_kind(value: Any) -> str:
    kind = value.get("type") if isinstance(value, dict) else getattr(value, "type", None)
    return kind if kind in ("image", "text") else "other"


InboundMessage = Annotated[
    Union[
        Annotated[ImageMessage, Tag("image")],
        Annotated[TextMessage, Tag("text")],
        Annotated[OtherMessage, Tag("other")],
    ],
    Discriminator(_message_kind),
]


class Status(_Payload):
    id: str | None = None
    status: str | None = None
    recipient_id: str | None = None


class ChangeValue(_Payload):
    messages: list[InboundMessage] = Field(default_factory=list)
    statuses: list[Status] = Field(default_factory=list)
    contacts: list[Contact] = Field(default_factory=list)

    def sender_address(self, message: ImageMessage | TextMessage | OtherMessage) -> str | None:
        """Return the message's ``from`` address.

        A contact's ``wa_id`` is only taken when it agrees with ``from``, so
        contacts describing another party never redirect replies.
        """
        for contact in self.contacts:
            if contact.wa_id and contact.wa_id == message.from_:
                return contact.wa_id
        return message.from_


class Change(_Payload):
    field: str | None = None
    value: ChangeValue = Field(default_factory=ChangeValue)


class Entry(_Payload):
    id: str | None = None
    changes: list[Change] = Field(default_factory=list)


class WebhookPayload(_Payload):
    object: str | None = None
    entry: list[Entry] = Field(default_factory=list)
