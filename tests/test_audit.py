"""Audit sink tests — after-commit publishing, bounded queue, handler failures,
and persistence to the audit_trail table."""

from __future__ import annotations

import asyncio
from datetime import date

import pytest
from sqlalchemy import select

import hrms.common.audit as audit_module
from hrms.common.audit import (
    AuditEvent,
    AuditSink,
    AuditTrail,
    pending_audit,
    persist_audit_event,
    record_audit,
)


def _event(entity_id: int = 1, action: str = "create") -> AuditEvent:
    return AuditEvent(action=action, entity_type="time_off_request", entity_id=entity_id)


class _Collector:
    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def __call__(self, event: AuditEvent) -> None:
        self.events.append(event)


# ═════════════════════════════════════════════════════════════════════
# Sink lifecycle
# ═════════════════════════════════════════════════════════════════════


class TestAuditSink:

    async def test_emitted_events_reach_handlers(self):
        collector = _Collector()
        sink = AuditSink(maxsize=10, handlers=[collector])
        await sink.start()
        assert sink.running

        assert sink.emit(_event(1))
        assert sink.emit(_event(2))
        await sink.stop()

        assert [e.entity_id for e in collector.events] == [1, 2]
        assert not sink.running

    async def test_emit_before_start_drops(self):
        collector = _Collector()
        sink = AuditSink(maxsize=10, handlers=[collector])

        assert sink.emit(_event()) is False
        assert sink.dropped == 1
        assert collector.events == []

    async def test_full_queue_drops_without_blocking(self):
        gate = asyncio.Event()
        seen: list[int] = []

        async def slow(event: AuditEvent) -> None:
            await gate.wait()
            seen.append(event.entity_id)

        sink = AuditSink(maxsize=1, handlers=[slow])
        await sink.start()

        assert sink.emit(_event(1))
        for _ in range(3):
            await asyncio.sleep(0)  # worker takes event 1 and blocks on the gate
        assert sink.emit(_event(2))
        assert sink.emit(_event(3)) is False
        assert sink.dropped == 1

        gate.set()
        await sink.stop()
        assert seen == [1, 2]

    async def test_failing_handler_does_not_stop_worker(self):
        collector = _Collector()

        async def broken(event: AuditEvent) -> None:
            raise RuntimeError("audit store unavailable")

        sink = AuditSink(maxsize=10, handlers=[broken, collector])
        await sink.start()
        sink.emit(_event(1))
        sink.emit(_event(2))
        await sink.stop()

        assert [e.entity_id for e in collector.events] == [1, 2]

    async def test_start_is_idempotent(self):
        sink = AuditSink(maxsize=10)
        await sink.start()
        worker = sink._worker
        await sink.start()
        assert sink._worker is worker
        await sink.stop()

    async def test_stop_without_start_is_noop(self):
        await AuditSink(maxsize=10).stop()


# ═════════════════════════════════════════════════════════════════════
# Session-parked events
# ═════════════════════════════════════════════════════════════════════


class TestPendingEvents:

    async def test_record_audit_parks_json_safe_values(self, db):
        record_audit(
            db,
            action="update",
            entity_type="time_off_request",
            entity_id=5,
            actor_id=9,
            old_values={"start_date": date(2026, 3, 1)},
            new_values={"start_date": date(2026, 3, 2)},
        )
        events = pending_audit(db)
        assert len(events) == 1
        assert events[0].old_values == {"start_date": "2026-03-01"}
        assert events[0].new_values == {"start_date": "2026-03-02"}

    async def test_publish_after_commit_empties_session(self, db):
        collector = _Collector()
        sink = AuditSink(maxsize=10, handlers=[collector])
        await sink.start()

        record_audit(db, action="create", entity_type="time_off_request", entity_id=1)
        record_audit(db, action="approve", entity_type="time_off_request", entity_id=1)
        await db.commit()
        assert sink.publish_pending(db) == 2
        assert pending_audit(db) == []

        await sink.stop()
        assert [e.action for e in collector.events] == ["create", "approve"]

    async def test_discard_after_rollback(self, db):
        collector = _Collector()
        sink = AuditSink(maxsize=10, handlers=[collector])
        await sink.start()

        record_audit(db, action="create", entity_type="time_off_request", entity_id=1)
        await db.rollback()
        sink.discard_pending(db)
        assert sink.publish_pending(db) == 0

        await sink.stop()
        assert collector.events == []


# ═════════════════════════════════════════════════════════════════════
# Persistence
# ═════════════════════════════════════════════════════════════════════


class TestPersistAuditEvent:

    async def test_event_written_to_audit_trail(self, db, session_factory, monkeypatch):
        monkeypatch.setattr(audit_module, "async_session_factory", session_factory)

        await persist_audit_event(
            AuditEvent(
                action="decline",
                entity_type="time_off_request",
                entity_id=42,
                actor_id=1,
                old_values={"approval_status": "pending"},
                new_values={"approval_status": "declined", "remarks": "No cover"},
            )
        )

        row = (
            await db.execute(select(AuditTrail).where(AuditTrail.entity_id == 42))
        ).scalars().one()
        assert row.action == "decline"
        assert row.actor_id == 1
        assert row.new_values["remarks"] == "No cover"
