"""Tests for the shared send path."""

import pytest

from notification_server.core.errors import StorageError


class Inbox:
    def __init__(self) -> None:
        self.items = []

    async def __call__(self, payload) -> None:
        self.items.append(payload)


@pytest.mark.asyncio
async def test_send_records_before_publishing(notifier, router, ledger) -> None:
    inbox = Inbox()
    await router.join("c1", "user_user-2", inbox)

    notification_id = await notifier.send("user-1", "user-2", "hi", origin_connection_id="c9")

    record = await ledger.get(notification_id)
    assert record is not None
    assert record.socket_id == "c9"
    assert inbox.items == [
        {"id": notification_id, "message": "hi", "senderId": "user-1", "timestamp": inbox.items[0]["timestamp"]}
    ]


@pytest.mark.asyncio
async def test_send_to_offline_recipient_leaves_row_undelivered(notifier, ledger) -> None:
    await notifier.send("user-1", "user-2", "hi")

    backlog = await ledger.fetch_undelivered("user-2")
    assert [record.message for record in backlog] == ["hi"]
    assert backlog[0].delivered_at is None


@pytest.mark.asyncio
async def test_storage_failure_publishes_without_id_then_raises(notifier, router, ledger, mocker) -> None:
    inbox = Inbox()
    await router.join("c1", "user_user-2", inbox)
    mocker.patch.object(ledger, "record", side_effect=StorageError("down"))

    with pytest.raises(StorageError):
        await notifier.send("user-1", "user-2", "hi")

    assert len(inbox.items) == 1
    assert inbox.items[0]["id"] is None
