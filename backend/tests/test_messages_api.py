"""Tests for the message send path and the /rooms/{id}/messages API."""
from unittest.mock import AsyncMock

import pytest

from app.config import MessageSettings, ModerationSettings, TranslationSettings
from app.errors import AuthorizationError, ValidationError
from app.messages import MessageService
from app.messages.moderation import ModerationQueue, ModerationService
from app.messages.schemas import SendMessageRequest
from app.messages.translation import TranslationService
from app.tasks import BackgroundTaskQueue

from conftest import auth_headers


@pytest.fixture
def tasks():
    return BackgroundTaskQueue(max_concurrency=2)


def build_service(repos, tasks, translation="none"):
    return MessageService(
        messages=repos.messages,
        membership=repos.membership,
        moderation=ModerationService(ModerationSettings()),
        review_queue=ModerationQueue(repos.db),
        translation=TranslationService(TranslationSettings(provider=translation)),
        tasks=tasks,
        settings=MessageSettings(max_content_length=20, default_page_size=2, max_page_size=3),
    )


class TestMessageService:
    """Validation and persistence of the send path."""

    async def test_send_persists_as_sent(self, repos, tasks):
        service = build_service(repos, tasks)
        record = await service.send_message("alice", repos.room_id, SendMessageRequest(content=" hi "))
        assert record.status.value == "sent"
        assert record.content == "hi"
        assert record.sender_name

    async def test_content_is_escaped(self, repos, tasks):
        service = build_service(repos, tasks)
        record = await service.send_message("alice", repos.room_id, SendMessageRequest(content="<b>x</b>"))
        assert record.content == "&lt;b&gt;x&lt;/b&gt;"

    async def test_non_member_cannot_send(self, repos, tasks):
        service = build_service(repos, tasks)
        with pytest.raises(AuthorizationError):
            await service.send_message("carol", repos.room_id, SendMessageRequest(content="hi"))

    async def test_empty_message_rejected(self, repos, tasks):
        service = build_service(repos, tasks)
        with pytest.raises(ValidationError):
            await service.send_message("alice", repos.room_id, SendMessageRequest(content="   "))

    async def test_too_long_rejected(self, repos, tasks):
        service = build_service(repos, tasks)
        with pytest.raises(ValidationError):
            await service.send_message("alice", repos.room_id, SendMessageRequest(content="x" * 21))

    async def test_moderation_blocks(self, repos, tasks):
        service = build_service(repos, tasks)
        with pytest.raises(ValidationError) as exc_info:
            await service.send_message("alice", repos.room_id, SendMessageRequest(content="buy spam"))
        assert exc_info.value.message == "Message blocked by moderation"

    async def test_blocked_message_is_held_for_review(self, repos, tasks):
        service = build_service(repos, tasks)
        with pytest.raises(ValidationError):
            await service.send_message("alice", repos.room_id, SendMessageRequest(content="buy spam"))

        [item] = ModerationQueue(repos.db).list_items()
        assert item.content == "buy spam"
        assert item.sender_email == "alice@example.com"
        assert item.reason == "blocked_pattern"
        assert repos.messages.get(item.message_id) is not None
        assert service.list_messages(repos.room_id, "bob") == []
        summary = next(r for r in repos.rooms.list_rooms_for_user("bob") if r.id == repos.room_id)
        assert summary.unread_count == 0

    async def test_attachment_only(self, repos, tasks):
        service = build_service(repos, tasks)
        record = await service.send_message(
            "alice", repos.room_id,
            SendMessageRequest(attachment_url="https://cdn.example.com/a.png", attachment_type="image"),
        )
        assert record.content is None
        assert record.attachment_url == "https://cdn.example.com/a.png"

    async def test_translation_job_runs_after_send(self, repos, tasks):
        repos.db.execute("UPDATE users SET preferred_lang = 'fr' WHERE id = 'bob'")
        service = build_service(repos, tasks, translation="stub")

        record = await service.send_message("alice", repos.room_id, SendMessageRequest(content="hello"))
        await tasks.drain()

        assert repos.messages.translations_for(record.id) == [("fr", "[fr] hello")]

    async def test_translation_failure_keeps_message(self, repos, tasks):
        repos.db.execute("UPDATE users SET preferred_lang = 'de' WHERE id = 'bob'")
        service = build_service(repos, tasks, translation="stub")
        service._translation.translate = AsyncMock(side_effect=RuntimeError("provider down"))

        record = await service.send_message("alice", repos.room_id, SendMessageRequest(content="hallo"))
        await tasks.drain()

        assert repos.messages.get(record.id) is not None

    async def test_page_size_is_clamped(self, repos, tasks):
        service = build_service(repos, tasks)
        for n in range(5):
            await service.send_message("alice", repos.room_id, SendMessageRequest(content=f"m{n}"))

        assert len(service.list_messages(repos.room_id, "bob")) == 2
        page = service.list_messages(repos.room_id, "bob", limit=50)
        assert [m.content for m in page] == ["m2", "m3", "m4"]

    async def test_delete_only_own(self, repos, tasks):
        service = build_service(repos, tasks)
        record = await service.send_message("alice", repos.room_id, SendMessageRequest(content="oops"))
        with pytest.raises(AuthorizationError):
            service.delete_message(record.id, "bob")
        service.delete_message(record.id, "alice")
        assert service.list_messages(repos.room_id, "alice") == []


class TestMessagesAPI:
    def test_send_and_list(self, seeded, api_client):
        room_id = seeded.room_id
        sent = api_client.post(
            f"/rooms/{room_id}/messages",
            json={"content": "hello", "replyToId": None},
            headers=auth_headers(api_client, "alice"),
        )
        assert sent.status_code == 201
        assert sent.json()["roomId"] == room_id

        page = api_client.get(f"/rooms/{room_id}/messages", headers=auth_headers(api_client, "bob"))
        assert page.status_code == 200
        assert [m["content"] for m in page.json()] == ["hello"]

    def test_outsider_cannot_read(self, seeded, api_client):
        response = api_client.get(
            f"/rooms/{seeded.room_id}/messages", headers=auth_headers(api_client, "carol")
        )
        assert response.status_code == 403
        assert response.json() == {"error": "Access denied"}

    def test_mark_read_endpoint(self, seeded, api_client):
        room_id = seeded.room_id
        api_client.post(
            f"/rooms/{room_id}/messages", json={"content": "one"}, headers=auth_headers(api_client, "alice")
        )
        response = api_client.post(f"/rooms/{room_id}/read", headers=auth_headers(api_client, "bob"))
        assert response.json() == {"roomId": room_id, "updated": 1}

        again = api_client.post(f"/rooms/{room_id}/read", headers=auth_headers(api_client, "bob"))
        assert again.json() == {"roomId": room_id, "updated": 0}

    def test_delete_message(self, seeded, api_client):
        room_id = seeded.room_id
        message_id = api_client.post(
            f"/rooms/{room_id}/messages", json={"content": "bye"}, headers=auth_headers(api_client, "alice")
        ).json()["id"]

        assert api_client.delete(
            f"/messages/{message_id}", headers=auth_headers(api_client, "bob")
        ).status_code == 403
        assert api_client.delete(
            f"/messages/{message_id}", headers=auth_headers(api_client, "alice")
        ).status_code == 200
        assert api_client.delete(
            "/messages/missing", headers=auth_headers(api_client, "alice")
        ).status_code == 404

    def test_health(self, api_client):
        assert api_client.get("/health").json() == {"status": "ok", "connections": 0}
