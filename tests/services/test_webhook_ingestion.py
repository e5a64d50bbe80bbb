"""Tests for webhook ingestion."""

import pytest

from conftest import WEBHOOK_KEY
from notification_server.core.errors import ValidationError
from notification_server.services.webhook import WebhookIngestion

RECIPIENT = "recipient42"


@pytest.fixture
def webhook(notifier):
    return WebhookIngestion(notifier, WEBHOOK_KEY)


class Inbox:
    def __init__(self) -> None:
        self.items = []

    async def __call__(self, payload) -> None:
        self.items.append(payload)


@pytest.mark.asyncio
async def test_notify_records_and_publishes_as_system(webhook, router, notifications) -> None:
    inbox = Inbox()
    await router.join("c1", f"user_{RECIPIENT}", inbox)

    notification_id = await webhook.notify({"recipientId": RECIPIENT, "message": "  deploy finished ", "apiKey": WEBHOOK_KEY})

    rows = notifications()
    assert [row.id for row in rows] == [notification_id]
    assert rows[0].sender_id == "system"
    assert rows[0].message == "deploy finished"
    assert inbox.items[0]["senderId"] == "system"
    assert inbox.items[0]["id"] == notification_id


@pytest.mark.asyncio
async def test_wrong_key_has_no_side_effects(webhook, notifier, mocker, notifications) -> None:
    send = mocker.spy(notifier, "send")

    with pytest.raises(ValidationError) as excinfo:
        await webhook.notify({"recipientId": RECIPIENT, "message": "hi", "apiKey": "nope"})

    assert any(error["loc"] == ["apiKey"] for error in excinfo.value.errors)
    send.assert_not_called()
    assert notifications() == []


@pytest.mark.asyncio
async def test_unconfigured_key_rejects_everything(notifier, notifications) -> None:
    webhook = WebhookIngestion(notifier, None)

    with pytest.raises(ValidationError):
        await webhook.notify({"recipientId": RECIPIENT, "message": "hi", "apiKey": ""})

    assert notifications() == []


@pytest.mark.parametrize(
    "body",
    [
        {"recipientId": "short", "message": "hi", "apiKey": WEBHOOK_KEY},
        {"recipientId": "has-dashes-1", "message": "hi", "apiKey": WEBHOOK_KEY},
        {"recipientId": RECIPIENT, "message": "x" * 501, "apiKey": WEBHOOK_KEY},
        {"message": "hi", "apiKey": WEBHOOK_KEY},
        ["not", "an", "object"],
    ],
)
def test_validate_rejects_malformed_bodies(webhook, body) -> None:
    with pytest.raises(ValidationError) as excinfo:
        webhook.validate(body)
    assert excinfo.value.errors


def test_validate_reports_every_problem(webhook) -> None:
    with pytest.raises(ValidationError) as excinfo:
        webhook.validate({"recipientId": "bad!", "message": "hi", "apiKey": "nope"})

    locations = [tuple(error["loc"]) for error in excinfo.value.errors]
    assert ("recipientId",) in locations
    assert ("apiKey",) in locations
