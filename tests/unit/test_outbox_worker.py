from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from anonpro_dm.application.repositories.outbox import OutboxRecord
from anonpro_dm.workers.outbox_worker import calc_backoff, process_batch
from tests.conftest import FakeUoW


class RecordingPublisher:
    def __init__(self, fail_on: set[int] | None = None) -> None:
        self.published: list[tuple[str, str, dict[str, Any]]] = []
        self._fail_on = fail_on or set()
        self._calls = 0

    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        self._calls += 1
        if self._calls in self._fail_on:
            raise ConnectionError("redis down")
        self.published.append((channel, event_type, payload))


def _record(record_id: int, event_type: str, payload: dict[str, Any], attempts: int = 0) -> OutboxRecord:
    return OutboxRecord(id=record_id, event_type=event_type, payload=payload, attempts=attempts)


def test_backoff_doubles_and_caps():
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    assert calc_backoff(0, now) == now + timedelta(seconds=5)
    assert calc_backoff(1, now) == now + timedelta(seconds=10)
    assert calc_backoff(3, now) == now + timedelta(seconds=40)
    assert calc_backoff(10, now) == now + timedelta(seconds=300)


@pytest.mark.asyncio
async def test_process_batch_routes_events_to_channels():
    cid = str(uuid.uuid4())
    uow = FakeUoW()
    uow.outbox._pending = [
        _record(1, "dm.message_inserted", {"conversation_id": cid, "message": {}}),
        _record(2, "dm.conversation_changed", {"conversation_id": cid, "action": "created"}),
        _record(3, "dm.notification_created", {"user_alias": "bob"}),
    ]
    publisher = RecordingPublisher()

    sent = await process_batch(uow, publisher, batch_size=10, max_attempts=5)

    assert sent == 3
    assert [p[0] for p in publisher.published] == [
        f"dm.messages.{cid}",
        "dm.conversations",
        "dm.notifications.bob",
    ]
    assert uow.outbox._sent == [1, 2, 3]
    assert uow._committed is True


@pytest.mark.asyncio
async def test_process_batch_schedules_retry_on_failure():
    cid = str(uuid.uuid4())
    uow = FakeUoW()
    uow.outbox._pending = [
        _record(1, "dm.message_deleted", {"conversation_id": cid, "message_id": "x"}, attempts=2),
        _record(2, "dm.messages_read", {"conversation_id": cid, "message_ids": []}),
    ]

    sent = await process_batch(uow, RecordingPublisher(fail_on={1}), batch_size=10, max_attempts=5)

    assert sent == 1
    assert uow.outbox._sent == [2]
    assert set(uow.outbox._failed) == {1}
    assert uow.outbox._failed[1] > datetime.now(timezone.utc) + timedelta(seconds=15)


@pytest.mark.asyncio
async def test_process_batch_gives_up_after_max_attempts():
    uow = FakeUoW()
    uow.outbox._pending = [
        _record(7, "dm.conversation_cleared", {"conversation_id": str(uuid.uuid4())}, attempts=5),
    ]
    publisher = RecordingPublisher()

    sent = await process_batch(uow, publisher, batch_size=10, max_attempts=5)

    assert sent == 0
    assert uow.outbox._dead == [7]
    assert publisher.published == []


@pytest.mark.asyncio
async def test_unroutable_event_is_retried_not_lost():
    uow = FakeUoW()
    uow.outbox._pending = [_record(1, "dm.unknown", {})]

    await process_batch(uow, RecordingPublisher(), batch_size=10, max_attempts=5)

    assert 1 in uow.outbox._failed


@pytest.mark.asyncio
async def test_empty_batch_does_not_commit():
    uow = FakeUoW()

    assert await process_batch(uow, RecordingPublisher(), batch_size=10, max_attempts=5) == 0
    assert uow._committed is False
