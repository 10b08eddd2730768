"""Inbound Chatwoot webhook payload shapes.

Only the fields the service reads are modelled; everything else Chatwoot
sends is ignored.
"""

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict


def _as_str(value: Any) -> Any:
    # Chatwoot sends numeric ids; stored linkage keys are strings.
    return str(value) if isinstance(value, int) and not isinstance(value, bool) else value


StrId = Annotated[str | None, BeforeValidator(_as_str)]


class WebhookModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Sender(WebhookModel):
    id: StrId = None
    type: str | None = None
    name: str | None = None


class Contact(WebhookModel):
    identifier: StrId = None


class ContactMessageEvent(WebhookModel):
    """Generic chat-message shape: the contact identifier names the app user."""

    event: str | None = None
    message_type: str | None = None
    content: str | None = None
    sender: Sender | None = None
    contact: Contact | None = None


class Message(WebhookModel):
    id: StrId = None
    content: str | None = None
    message_type: str | None = None


class Conversation(WebhookModel):
    id: StrId = None


class ConversationMessageEvent(WebhookModel):
    """Ticketing shape with nested `message` / `conversation` / `sender` objects."""

    event: str | None = None
    message_type: str | None = None
    content: str | None = None
    message: Message | None = None
    conversation: Conversation | None = None
    sender: Sender | None = None

    @property
    def effective_message_type(self) -> str | None:
        if self.message is not None and self.message.message_type is not None:
            return self.message.message_type
        return self.message_type

    @property
    def effective_content(self) -> str | None:
        if self.message is not None and self.message.content is not None:
            return self.message.content
        return self.content
