"""Audit trail model and the best-effort, after-commit audit sink.

Services call :func:`record_audit` while they mutate rows; the events are
parked on the session and only handed to the :class:`AuditSink` once the
surrounding transaction has committed (see ``hrms.database.get_db``).
The sink drains an in-process queue on a background task. Delivery is
at-most-once: a full queue or a failing handler is logged and the
primary write stands.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import JSON, DateTime, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from hrms.config import settings
from hrms.database import Base, async_session_factory

logger = logging.getLogger(__name__)

PENDING_AUDIT_KEY = "pending_audit"

JSONType = JSON().with_variant(JSONB(), "postgresql")


# ── Immutable audit-trail table ─────────────────────────────────────

class AuditTrail(Base):
    """Immutable log of every leave state transition and category change."""

    __tablename__ = "audit_trail"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    old_values: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    new_values: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_audit_trail_actor_id", "actor_id"),
        Index("ix_audit_trail_entity", "entity_type", "entity_id"),
        Index("ix_audit_trail_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditTrail {self.action} {self.entity_type}"
            f"/{self.entity_id} by {self.actor_id}>"
        )


# ── Events ──────────────────────────────────────────────────────────

@dataclass
class AuditEvent:
    action: str
    entity_type: str
    entity_id: int
    actor_id: Optional[int] = None
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    occurred_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


AuditHandler = Callable[[AuditEvent], Awaitable[None]]


def record_audit(
    session: AsyncSession,
    *,
    action: str,
    entity_type: str,
    entity_id: int,
    actor_id: Optional[int] = None,
    old_values: Optional[dict[str, Any]] = None,
    new_values: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """
    Park an audit event on *session* until its transaction commits.

    Args:
        session: The request-scoped session carrying the primary write.
        action: create | update | delete | approve | decline | cancel.
        entity_type: e.g. "time_off_request", "time_off_category".
        entity_id: Primary key of the affected row.
        actor_id: User id of the caller.
        old_values: Previous state (for updates/transitions/deletes).
        new_values: New state (for creates/updates/transitions).
    """
    event = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        old_values=jsonable_encoder(old_values) if old_values else None,
        new_values=jsonable_encoder(new_values) if new_values else None,
    )
    session.info.setdefault(PENDING_AUDIT_KEY, []).append(event)
    return event


def pending_audit(session: AsyncSession) -> list[AuditEvent]:
    """Events recorded on *session* and not yet published."""
    return list(session.info.get(PENDING_AUDIT_KEY, []))


async def persist_audit_event(event: AuditEvent) -> None:
    """Default handler: write the event to ``audit_trail`` in its own session."""
    async with async_session_factory() as session:
        session.add(
            AuditTrail(
                actor_id=event.actor_id,
                action=event.action,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                old_values=event.old_values,
                new_values=event.new_values,
                created_at=event.occurred_at,
            )
        )
        await session.commit()


# ── Sink ────────────────────────────────────────────────────────────

class AuditSink:
    """Bounded in-memory queue drained by a single background worker."""

    def __init__(
        self,
        maxsize: int = settings.AUDIT_QUEUE_SIZE,
        handlers: Optional[list[AuditHandler]] = None,
    ) -> None:
        self._maxsize = maxsize
        self._handlers: list[AuditHandler] = list(handlers or [])
        self._queue: Optional[asyncio.Queue[AuditEvent]] = None
        self._worker: Optional[asyncio.Task] = None
        self.dropped = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def add_handler(self, handler: AuditHandler) -> None:
        self._handlers.append(handler)

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._worker = asyncio.create_task(self._run(), name="audit-sink")
        logger.info("Audit sink started (queue size %d)", self._maxsize)

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain what is queued (up to *timeout* seconds), then stop."""
        if self._worker is None or self._queue is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Audit sink stopped with %d undelivered events",
                self._queue.qsize(),
            )
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        self._queue = None
        logger.info("Audit sink stopped")

    def emit(self, event: AuditEvent) -> bool:
        """Enqueue *event* without blocking. Returns False if it was dropped."""
        if not self.running or self._queue is None:
            self.dropped += 1
            logger.debug(
                "Audit sink not running; dropped %s %s/%s",
                event.action, event.entity_type, event.entity_id,
            )
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Audit queue full; dropped %s %s/%s",
                event.action, event.entity_type, event.entity_id,
            )
            return False
        return True

    def publish_pending(self, session: AsyncSession) -> int:
        """Emit every event parked on *session*. Call after commit."""
        events = session.info.pop(PENDING_AUDIT_KEY, [])
        return sum(1 for event in events if self.emit(event))

    def discard_pending(self, session: AsyncSession) -> None:
        """Forget events of a rolled-back transaction."""
        events = session.info.pop(PENDING_AUDIT_KEY, [])
        if events:
            logger.debug("Discarded %d audit events after rollback", len(events))

    async def _run(self) -> None:
        queue = self._queue
        assert queue is not None
        while True:
            event = await queue.get()
            try:
                for handler in self._handlers:
                    try:
                        await handler(event)
                    except Exception:
                        logger.exception(
                            "Audit handler %r failed for %s %s/%s",
                            handler, event.action,
                            event.entity_type, event.entity_id,
                        )
            finally:
                queue.task_done()


audit_sink = AuditSink(handlers=[persist_audit_event])
