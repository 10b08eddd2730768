"""Chat webhook handling.

Filters inbound Chatwoot events down to end-user messages, then either pushes
them to the user's devices (contact shape) or records them against the linked
consultation (conversation shape).
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from pushrelay.common.devices import active_tokens_for_user, deactivate_tokens
from pushrelay.common.errors import DatastoreError, InvalidPayload, NotFound
from pushrelay.common.logging import logger, user_id_ctx
from pushrelay.common.metrics import (
    device_tokens_deactivated_total,
    push_messages_sent_total,
    webhook_events_total,
)
from pushrelay.common.push import PushGatewayClient, PushMessage, unregistered_tokens
from pushrelay.services.chat_webhook.models import Consultation, ConsultationMessage, Profile
from pushrelay.services.chat_webhook.schemas import ContactMessageEvent, ConversationMessageEvent


MESSAGE_CREATED = "message_created"
INCOMING = "incoming"
AGENT_SENDER_TYPE = "agent"
FALLBACK_AUTHOR_ROLES = ("admin", "author")

PUSH_TITLE = "💬 New message"
PUSH_FALLBACK_BODY = "You have a new message in the chat"
PUSH_CHANNEL_ID = "chat"


def resolve_author(db, consultation: Consultation, sender_type: str | None) -> tuple[str, str]:
    """Pick `(user_id, message_type)` for a message on `consultation`.

    Agent messages go to the assigned consultant, else to the first admin or
    author profile by id, else to the consultation user as a system message.
    Anything else is the consultation user's own message.
    """

    if (sender_type or "").lower() != AGENT_SENDER_TYPE:
        return consultation.user_id, "user"
    if consultation.consultant_id:
        return consultation.consultant_id, "consultant"
    try:
        staff_id = db.execute(
            select(Profile.id)
            .where(Profile.role.in_(FALLBACK_AUTHOR_ROLES))
            .order_by(Profile.id)
            .limit(1)
        ).scalar_one_or_none()
    except SQLAlchemyError as exc:
        raise DatastoreError("Error fetching staff profile", details=str(exc)) from exc
    if staff_id is not None:
        return staff_id, "consultant"
    return consultation.user_id, "system"


class ChatWebhookService:
    """Turns accepted chat events into push notifications or consultation messages."""

    def __init__(
        self,
        session_factory,
        gateway: PushGatewayClient,
        payload_format: str = "contact",
        end_user_sender_types: set[str] | None = None,
        service_name: str = "chatwoot-webhook",
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.payload_format = payload_format
        self.end_user_sender_types = end_user_sender_types or {"user", "contact"}
        self.service_name = service_name

    def _in_session(self, step, *args):
        with self.session_factory() as db:
            return step(db, *args)

    def _parse(self, payload: Any) -> BaseModel:
        model = ContactMessageEvent if self.payload_format == "contact" else ConversationMessageEvent
        if not isinstance(payload, dict):
            raise InvalidPayload("Webhook body must be a JSON object")
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise InvalidPayload("Invalid webhook payload", details=str(exc)) from exc

    def _skip_reason(self, event: str | None, message_type: str | None, sender_type: str | None) -> str | None:
        if event != MESSAGE_CREATED or message_type != INCOMING:
            logger.info("event_ignored event=%s message_type=%s", event, message_type)
            return "Event ignored"
        if (sender_type or "").lower() not in self.end_user_sender_types:
            logger.info("event_ignored sender_type=%s", sender_type)
            return "Not from user"
        return None

    async def handle_event(self, payload: Any) -> dict:
        """Process one webhook body and return the JSON result (without duration)."""

        parsed = self._parse(payload)
        if isinstance(parsed, ContactMessageEvent):
            message_type = parsed.message_type
        else:
            message_type = parsed.effective_message_type
        sender_type = parsed.sender.type if parsed.sender else None

        reason = self._skip_reason(parsed.event, message_type, sender_type)
        if reason:
            webhook_events_total.labels(service=self.service_name, outcome="ignored").inc()
            return {"ok": True, "message": reason}

        if isinstance(parsed, ContactMessageEvent):
            return await self.push_to_contact(parsed)
        return await run_in_threadpool(self.record_conversation_message, parsed)

    async def push_to_contact(self, event: ContactMessageEvent) -> dict:
        """Send the message content to every active device of the contact's user."""

        user_id = event.contact.identifier if event.contact else None
        if not user_id:
            logger.error("missing user identifier")
            raise InvalidPayload("Missing user identifier")
        user_id_ctx.set(user_id)

        tokens = await run_in_threadpool(self._in_session, active_tokens_for_user, user_id)
        if not tokens:
            logger.warning("no_active_tokens user_id=%s", user_id)
            webhook_events_total.labels(service=self.service_name, outcome="no_tokens").inc()
            return {"ok": True, "message": "No active tokens"}

        timestamp = datetime.now(timezone.utc).isoformat()
        messages = [
            PushMessage(
                to=token,
                title=PUSH_TITLE,
                body=event.content or PUSH_FALLBACK_BODY,
                data={"type": "chat_message", "userId": user_id, "timestamp": timestamp},
                priority="high",
                channel_id=PUSH_CHANNEL_ID,
            )
            for token in tokens
        ]
        logger.info("push_sending user_id=%s tokens=%s", user_id, len(messages))
        tickets = await self.gateway.send(messages)
        push_messages_sent_total.labels(service=self.service_name).inc(len(messages))

        invalid = unregistered_tokens(messages, tickets)
        deactivated = 0
        if invalid:
            try:
                deactivated = await run_in_threadpool(self._in_session, deactivate_tokens, invalid)
                device_tokens_deactivated_total.labels(service=self.service_name).inc(deactivated)
            except DatastoreError as exc:
                logger.error("token_deactivation_failed tokens=%s error=%s", invalid, exc.details)

        webhook_events_total.labels(service=self.service_name, outcome="pushed").inc()
        return {"ok": True, "sent": len(tokens), "invalidTokens": len(invalid)}

    def record_conversation_message(self, event: ConversationMessageEvent) -> dict:
        """Append the message to the consultation linked to the conversation."""

        conversation_id = event.conversation.id if event.conversation else None
        if not conversation_id:
            raise InvalidPayload("Missing conversation id")

        with self.session_factory() as db:
            try:
                consultation = db.execute(
                    select(Consultation).where(Consultation.chatwoot_conversation_id == conversation_id)
                ).scalars().first()
            except SQLAlchemyError as exc:
                raise DatastoreError("Error fetching consultation", details=str(exc)) from exc
            if consultation is None:
                logger.warning("consultation_not_found conversation_id=%s", conversation_id)
                webhook_events_total.labels(service=self.service_name, outcome="not_found").inc()
                raise NotFound("Consultation not found")

            author_id, message_type = resolve_author(db, consultation, event.sender.type if event.sender else None)
            user_id_ctx.set(author_id)
            message = ConsultationMessage(
                consultation_id=consultation.id,
                user_id=author_id,
                content=event.effective_content or "",
                message_type=message_type,
                is_read=False,
            )
            try:
                db.add(message)
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                raise DatastoreError("Error saving consultation message", details=str(exc)) from exc

        logger.info(
            "consultation_message_saved consultation_id=%s message_id=%s message_type=%s",
            consultation.id,
            message.id,
            message_type,
        )
        webhook_events_total.labels(service=self.service_name, outcome="recorded").inc()
        return {
            "ok": True,
            "consultation_id": consultation.id,
            "message_id": message.id,
            "message_type": message_type,
        }
