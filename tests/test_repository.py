from __future__ import annotations

import pytest

from streamrelay.repository import TITLE_MAX_LENGTH, ConversationRepository


@pytest.fixture
async def repository(tmp_path):
    repo = ConversationRepository(tmp_path / "nested" / "chat.db")
    await repo.initialize()
    try:
        yield repo
    finally:
        await repo.close()


@pytest.mark.anyio
async def test_messages_roundtrip_in_order(repository):
    conversation_id = await repository.create_conversation("Weather in Tokyo")

    first = await repository.append_message(conversation_id, "user", "What's the weather?")
    second = await repository.append_message(conversation_id, "assistant", "Sunny.")

    messages = await repository.get_messages(conversation_id)

    assert [message["message_id"] for message in messages] == [first, second]
    assert [(m["role"], m["content"]) for m in messages] == [
        ("user", "What's the weather?"),
        ("assistant", "Sunny."),
    ]
    assert messages[0]["created_at"].endswith("+00:00")


@pytest.mark.anyio
async def test_conversation_exists(repository):
    conversation_id = await repository.create_conversation()

    assert await repository.conversation_exists(conversation_id)
    assert not await repository.conversation_exists("missing")


@pytest.mark.anyio
async def test_titles_are_trimmed_and_capped(repository):
    conversation_id = await repository.create_conversation("  " + "t" * 250)

    conversations = await repository.list_conversations()
    assert conversations[0]["title"] == "t" * TITLE_MAX_LENGTH

    await repository.update_title(conversation_id, " Tokyo weather ")
    conversations = await repository.list_conversations()
    assert conversations[0]["title"] == "Tokyo weather"


@pytest.mark.anyio
async def test_list_conversations_most_recent_first(repository):
    older = await repository.create_conversation("older")
    newer = await repository.create_conversation("newer")

    listed = [item["id"] for item in await repository.list_conversations()]

    assert listed == [newer, older]


@pytest.mark.anyio
async def test_delete_cascades_to_messages(repository):
    conversation_id = await repository.create_conversation("doomed")
    await repository.append_message(conversation_id, "user", "hello")

    assert await repository.delete_conversation(conversation_id) is True
    assert await repository.get_messages(conversation_id) == []
    assert not await repository.conversation_exists(conversation_id)
    assert await repository.delete_conversation(conversation_id) is False
