"""Ingestion use case: persisted message -> embedding -> indexed point.

Failures are returned to the caller as typed errors. Transient ones are also
parked on the backlog queue so a worker can retry them out-of-band; the
embedding cache is populated before the index write, so such a retry does
not pay for a second embedding call.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from chat_recall.application.call_context import CallContext
from chat_recall.application.dto.ingest_dto import BacklogReport
from chat_recall.application.ports.telemetry_port import TelemetryPort
from chat_recall.application.ports.vector_index_port import VectorIndexPort
from chat_recall.application.ports.work_queue_port import WorkQueuePort
from chat_recall.application.services.cached_embedder import CachedEmbedder
from chat_recall.domain.errors import DomainError, InvalidInput, is_transient
from chat_recall.domain.models import IndexedPoint, Message, vector_id_for
from chat_recall.domain.services.text import estimate_tokens, normalize_text
from chat_recall.domain.types import Result

logger = logging.getLogger(__name__)

DEFAULT_BACKLOG_TOPIC = "chat-recall-ingest-backlog"


class IngestMessage:
    """Application use case behind the ingestion trigger."""

    def __init__(
        self,
        embedder: CachedEmbedder,
        index: VectorIndexPort,
        backlog: WorkQueuePort | None = None,
        telemetry: TelemetryPort | None = None,
        backlog_topic: str = DEFAULT_BACKLOG_TOPIC,
        timeout_s: float | None = None,
        max_backlog_attempts: int = 5,
        max_input_tokens: int | None = None,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.backlog = backlog
        self.telemetry = telemetry
        self.backlog_topic = backlog_topic
        self.timeout_s = timeout_s
        self.max_backlog_attempts = max_backlog_attempts
        self.max_input_tokens = max_input_tokens

    def execute(
        self, message: Message, ctx: CallContext | None = None
    ) -> Result[IndexedPoint, DomainError]:
        return self._ingest(message, ctx or CallContext(self.timeout_s), attempts=0)

    def execute_batch(
        self, messages: Sequence[Message], ctx: CallContext | None = None
    ) -> Result[list[IndexedPoint], DomainError]:
        """Ingest many messages with one cache pass and provider-sized batches.

        Messages with empty or oversized text are skipped and counted as
        failures. If the provider still rejects the batch as invalid input,
        the remaining messages are ingested one by one so a single bad text
        cannot hold back the others.
        """
        ctx = ctx or CallContext(self.timeout_s)
        valid: list[Message] = []
        texts: list[str] = []
        for m in messages:
            text = normalize_text(m.text)
            if not text:
                logger.warning("Skipping message %s: empty text", m.message_id)
                self._incr("chat_recall.ingest.failures", stage="validate", kind="InvalidInput")
                continue
            tokens = estimate_tokens(text)
            if self.max_input_tokens is not None and tokens > self.max_input_tokens:
                logger.warning(
                    "Skipping message %s: ~%d tokens exceeds limit %d",
                    m.message_id,
                    tokens,
                    self.max_input_tokens,
                )
                self._incr("chat_recall.ingest.failures", stage="validate", kind="InvalidInput")
                continue
            valid.append(m)
            texts.append(text)

        if not valid:
            return Result.success([])

        try:
            vectors = self.embedder.embed_many(texts, ctx)
        except InvalidInput as err:
            logger.warning("Batch rejected (%s); ingesting %d messages one by one", err, len(valid))
            return self._ingest_each(valid, ctx)
        except DomainError as err:
            return self._fail(err, valid, stage="embed", attempts=0)

        points = [IndexedPoint.from_message(m, v) for m, v in zip(valid, vectors, strict=True)]
        try:
            ctx.check("ingest")
            self.index.upsert_batch(points, ctx)
        except DomainError as err:
            return self._fail(err, valid, stage="upsert", attempts=0)

        self._incr("chat_recall.ingest.indexed", value=len(points))
        logger.info("Indexed %d messages", len(points))
        return Result.success(points)

    def _ingest_each(
        self, messages: Sequence[Message], ctx: CallContext
    ) -> Result[list[IndexedPoint], DomainError]:
        points: list[IndexedPoint] = []
        first_error: DomainError | None = None
        for m in messages:
            result = self._ingest(m, ctx, attempts=0)
            if result.ok:
                assert result.value is not None
                points.append(result.value)
            elif first_error is None:
                first_error = result.error
        if not points and first_error is not None:
            return Result.failure(first_error)
        return Result.success(points)

    def delete(self, message_id: str, ctx: CallContext | None = None) -> Result[None, DomainError]:
        """Cascade a message deletion into the index."""
        ctx = ctx or CallContext(self.timeout_s)
        try:
            self.index.delete(vector_id_for(message_id), ctx)
        except DomainError as err:
            err.with_context(message_id=message_id)
            logger.warning("Index delete failed: %s", err)
            self._incr("chat_recall.ingest.delete_failures", kind=type(err).__name__)
            return Result.failure(err)
        self._incr("chat_recall.ingest.deleted")
        return Result.success(None)

    def drain_backlog(
        self, max_n: int = 100, ctx: CallContext | None = None
    ) -> Result[BacklogReport, DomainError]:
        """Retry up to max_n parked messages.

        Every dequeued entry is acknowledged. A message that fails transiently
        again is re-enqueued with its attempt count bumped, until
        max_backlog_attempts is reached and it is dropped with an error log.
        """
        if self.backlog is None:
            return Result.success(BacklogReport())

        r_tasks = self.backlog.dequeue_batch(self.backlog_topic, max_n)
        if not r_tasks.ok:
            assert r_tasks.error is not None
            return Result.failure(r_tasks.error)
        assert r_tasks.value is not None

        succeeded = 0
        errors: list[str] = []
        ack_ids: list[str] = []
        for task in r_tasks.value:
            ack_ids.append(str(task.get("_msg_id")))
            try:
                message = Message.from_payload(task["message"])
            except (KeyError, TypeError, ValueError) as ex:
                logger.error("Dropping malformed backlog entry %s: %s", task.get("_msg_id"), ex)
                errors.append(f"malformed: {ex}")
                continue

            attempts = int(task.get("attempts", 0)) + 1
            result = self._ingest(message, ctx or CallContext(self.timeout_s), attempts=attempts)
            if result.ok:
                succeeded += 1
            else:
                errors.append(str(result.error))

        if ack_ids:
            r_ack = self.backlog.ack(self.backlog_topic, ack_ids)
            if not r_ack.ok:
                logger.error("Backlog ack failed: %s", r_ack.error)

        report = BacklogReport(succeeded=succeeded, failed=len(errors), errors=errors)
        logger.info("Backlog drain: %d succeeded, %d failed", report.succeeded, report.failed)
        return Result.success(report)

    def _ingest(
        self, message: Message, ctx: CallContext, attempts: int
    ) -> Result[IndexedPoint, DomainError]:
        text = normalize_text(message.text)
        if not text:
            err = InvalidInput("message text is empty")
            return self._fail(err, [message], stage="validate", attempts=attempts)

        try:
            vector = self.embedder.embed_one(text, ctx)
        except DomainError as err:
            return self._fail(err, [message], stage="embed", attempts=attempts)

        point = IndexedPoint.from_message(message, vector)
        try:
            ctx.check("ingest")
            self.index.upsert(point, ctx)
        except DomainError as err:
            return self._fail(err, [message], stage="upsert", attempts=attempts)

        self._incr("chat_recall.ingest.indexed")
        logger.debug("Indexed message %s as %s", message.message_id, point.vector_id)
        return Result.success(point)

    def _fail(
        self, err: DomainError, messages: Sequence[Message], stage: str, attempts: int
    ) -> Result[Any, DomainError]:
        if len(messages) == 1:
            err.with_context(message_id=messages[0].message_id, stage=stage)
        else:
            err.with_context(message_count=len(messages), stage=stage)
        logger.warning("Ingestion failed: %s", err)
        self._incr("chat_recall.ingest.failures", stage=stage, kind=type(err).__name__)

        if is_transient(err):
            self._park(messages, err, attempts)
        return Result.failure(err)

    def _park(self, messages: Sequence[Message], err: DomainError, attempts: int) -> None:
        if self.backlog is None:
            return
        if attempts >= self.max_backlog_attempts:
            logger.error(
                "Giving up on %d message(s) after %d backlog attempts: %s",
                len(messages),
                attempts,
                err,
            )
            self._incr("chat_recall.ingest.dropped", value=len(messages))
            return
        for m in messages:
            payload = {"message": m.to_payload(), "attempts": attempts, "error": type(err).__name__}
            r = self.backlog.enqueue(self.backlog_topic, payload)
            if not r.ok:
                logger.error("Could not park message %s on backlog: %s", m.message_id, r.error)

    def _incr(self, name: str, value: int = 1, **tags: Any) -> None:
        if self.telemetry is not None:
            self.telemetry.incr(name, tags, value=value)
