"""Notification queue processing.

One call to `process_pending` claims a batch of due rows, fans them out to
every active device of their users in throttled gateway chunks, deactivates
tokens the gateway reports unregistered, and finalizes the batch as sent.

The claim is a select followed by a bulk update, not a locking transaction:
two overlapping cycles can pick up the same pending rows.
"""

import asyncio
from collections import defaultdict
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from pushrelay.common.devices import active_tokens_by_user, deactivate_tokens
from pushrelay.common.errors import DatastoreError, PushGatewayError
from pushrelay.common.logging import logger
from pushrelay.common.metrics import (
    device_tokens_deactivated_total,
    push_chunks_failed_total,
    push_messages_sent_total,
    queue_cycle_duration_seconds,
    queue_entries_processed_total,
)
from pushrelay.common.push import PushGatewayClient, PushMessage, chunked, unregistered_tokens
from pushrelay.services.queue_processor.models import (
    STATUS_PENDING,
    STATUS_PROCESSING,
    STATUS_SENT,
    QueueEntry,
    priority_rank,
)


BATCH_SIZE = 500
CHUNK_SIZE = 100
CHUNK_DELAY_SECONDS = 0.1


def group_by_user(entries: list[QueueEntry]) -> dict[str, list[QueueEntry]]:
    """Partition entries by recipient, keeping first-seen user and entry order."""

    grouped: dict[str, list[QueueEntry]] = defaultdict(list)
    for entry in entries:
        grouped[entry.user_id].append(entry)
    return dict(grouped)


def build_messages(
    by_user: dict[str, list[QueueEntry]], tokens_by_user: dict[str, list[str]]
) -> list[PushMessage]:
    """One message per (entry, token) pair; users without tokens contribute none."""

    messages = []
    for user_id, entries in by_user.items():
        tokens = tokens_by_user.get(user_id, [])
        if not tokens:
            logger.warning("user_without_tokens user_id=%s entries=%s", user_id, len(entries))
            continue
        for entry in entries:
            for token in tokens:
                messages.append(
                    PushMessage(
                        to=token,
                        title=entry.title,
                        body=entry.body,
                        data=entry.data or {},
                        priority=entry.priority or "default",
                        channel_id=entry.category,
                    )
                )
    return messages


class QueueProcessorService:
    """Runs claim-and-deliver cycles over the notification queue."""

    def __init__(
        self,
        session_factory,
        gateway: PushGatewayClient,
        batch_size: int = BATCH_SIZE,
        chunk_size: int = CHUNK_SIZE,
        chunk_delay_seconds: float = CHUNK_DELAY_SECONDS,
        service_name: str = "process-queue",
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.batch_size = batch_size
        self.chunk_size = chunk_size
        self.chunk_delay_seconds = chunk_delay_seconds
        self.service_name = service_name

    def _in_session(self, step, *args):
        # Runs in a worker thread; only gateway calls and the throttle stay on the loop.
        with self.session_factory() as db:
            return step(db, *args)

    def claim_batch(self, db) -> list[QueueEntry]:
        """Select due pending rows and mark them processing before any delivery."""

        now = datetime.now(timezone.utc)
        try:
            entries = list(
                db.execute(
                    select(QueueEntry)
                    .where(QueueEntry.status == STATUS_PENDING, QueueEntry.scheduled_for <= now)
                    .order_by(priority_rank.desc(), QueueEntry.scheduled_for.asc())
                    .limit(self.batch_size)
                ).scalars()
            )
        except SQLAlchemyError as exc:
            raise DatastoreError("Error fetching notifications", details=str(exc)) from exc
        if not entries:
            return []

        try:
            db.execute(
                update(QueueEntry)
                .where(QueueEntry.id.in_([e.id for e in entries]))
                .values(status=STATUS_PROCESSING)
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise DatastoreError("Error updating status", details=str(exc)) from exc
        return entries

    def mark_sent(self, db, entry_ids: list[str]) -> None:
        """Finalize claimed rows as sent; a failure here is logged, not raised."""

        try:
            db.execute(
                update(QueueEntry)
                .where(QueueEntry.id.in_(entry_ids))
                .values(status=STATUS_SENT, sent_at=datetime.now(timezone.utc))
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("mark_sent_failed entries=%s error=%s", len(entry_ids), exc)

    async def deliver(self, messages: list[PushMessage]) -> tuple[int, set[str]]:
        """Send messages chunk by chunk; return (messages sent, unregistered tokens)."""

        chunks = chunked(messages, self.chunk_size)
        sent = 0
        invalid: set[str] = set()
        for index, chunk in enumerate(chunks, start=1):
            logger.info("sending_chunk chunk=%s/%s size=%s", index, len(chunks), len(chunk))
            try:
                tickets = await self.gateway.send(chunk)
            except PushGatewayError as exc:
                logger.error("chunk_failed chunk=%s error=%s details=%s", index, exc, exc.details)
                push_chunks_failed_total.labels(service=self.service_name).inc()
            else:
                sent += len(chunk)
                for token in unregistered_tokens(chunk, tickets):
                    logger.info("invalid_token_detected token=%s", token)
                    invalid.add(token)

            if index < len(chunks):
                await asyncio.sleep(self.chunk_delay_seconds)
        return sent, invalid

    async def process_pending(self) -> dict:
        """Run one full claim-and-deliver cycle and return its summary."""

        with queue_cycle_duration_seconds.labels(service=self.service_name).time():
            entries = await run_in_threadpool(self._in_session, self.claim_batch)
            if not entries:
                logger.info("no_pending_notifications")
                return {"ok": True, "processed": 0}

            entry_ids = [e.id for e in entries]
            by_user = group_by_user(entries)
            logger.info("claimed entries=%s users=%s", len(entries), len(by_user))

            tokens_by_user = await run_in_threadpool(self._in_session, active_tokens_by_user, list(by_user))
            messages = build_messages(by_user, tokens_by_user)
            logger.info("prepared_messages count=%s", len(messages))

            if not messages:
                await run_in_threadpool(self._in_session, self.mark_sent, entry_ids)
                queue_entries_processed_total.labels(service=self.service_name).inc(len(entries))
                return {"ok": True, "processed": len(entries), "sent": 0, "invalidTokens": 0}

            sent, invalid = await self.deliver(messages)
            push_messages_sent_total.labels(service=self.service_name).inc(sent)

            if invalid:
                try:
                    deactivated = await run_in_threadpool(self._in_session, deactivate_tokens, invalid)
                    device_tokens_deactivated_total.labels(service=self.service_name).inc(deactivated)
                except DatastoreError as exc:
                    logger.error("token_deactivation_failed tokens=%s error=%s", len(invalid), exc.details)

            await run_in_threadpool(self._in_session, self.mark_sent, entry_ids)
            queue_entries_processed_total.labels(service=self.service_name).inc(len(entries))

        logger.info("cycle_completed processed=%s sent=%s invalid_tokens=%s", len(entries), sent, len(invalid))
        return {"ok": True, "processed": len(entries), "sent": sent, "invalidTokens": len(invalid)}
