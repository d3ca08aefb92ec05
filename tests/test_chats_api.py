"""Tests for chat listing and direct chat creation."""

import pytest


class TestDirectChats:
    """Tests for POST /api/chats."""

    @pytest.mark.asyncio
    async def test_create_is_idempotent_in_both_directions(self, user_client, signup):
        """Test that A->B and B->A resolve to the same chat."""
        alice_id, alice = await signup("alice")
        bob_id, bob = await signup("bob")

        first = await user_client.post("/api/chats", headers=alice, json={"user_id": bob_id})
        again = await user_client.post("/api/chats", headers=alice, json={"username": "bob"})
        reverse = await user_client.post("/api/chats", headers=bob, json={"user_id": alice_id})

        assert first.status_code == 201
        assert first.json()["created"] is True
        assert again.status_code == 200
        assert again.json()["created"] is False
        assert reverse.json()["created"] is False
        assert first.json()["chat_id"] == again.json()["chat_id"] == reverse.json()["chat_id"]
        assert first.json()["kind"] == "direct"

    @pytest.mark.asyncio
    async def test_self_chat_rejected(self, user_client, signup):
        """Test that a user cannot open a chat with themselves."""
        alice_id, alice = await signup("alice")

        response = await user_client.post("/api/chats", headers=alice, json={"user_id": alice_id})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_TARGET"

    @pytest.mark.asyncio
    async def test_unknown_user(self, user_client, signup):
        """Test that an unknown target is a 404."""
        _, alice = await signup("alice")

        response = await user_client.post("/api/chats", headers=alice, json={"username": "ghost"})

        assert response.status_code == 404
        assert response.json()["code"] == "USER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_target_required(self, user_client, signup):
        """Test that a username or user_id must be given."""
        _, alice = await signup("alice")

        response = await user_client.post("/api/chats", headers=alice, json={})

        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_FIELD"


class TestListChats:
    """Tests for GET /api/chats."""

    @pytest.mark.asyncio
    async def test_summary_fields(self, user_client, signup):
        """Test member and unread counts."""
        _, alice = await signup("alice")
        bob_id, bob = await signup("bob")
        carol_id, _ = await signup("carol")

        dm = (await user_client.post("/api/chats", headers=alice, json={"user_id": bob_id})).json()
        group = (
            await user_client.post(
                "/api/groups", headers=alice, json={"name": "team", "members": [bob_id, carol_id]}
            )
        ).json()
        await user_client.post(
            "/api/messages/send", headers=bob, json={"chat_id": dm["chat_id"], "content": "yo"}
        )

        response = await user_client.get("/api/chats", headers=alice)

        chats = response.json()["chats"]
        by_id = {c["id"]: c for c in chats}
        assert by_id[dm["chat_id"]]["member_count"] == 2
        assert by_id[dm["chat_id"]]["unread_count"] == 1
        assert by_id[dm["chat_id"]]["last_message_at"] is not None
        assert by_id[group["chat_id"]]["member_count"] == 3
        assert by_id[group["chat_id"]]["kind"] == "group"

    @pytest.mark.asyncio
    async def test_only_own_chats(self, user_client, signup):
        """Test that chats of other users are not listed."""
        _, alice = await signup("alice")
        bob_id, bob = await signup("bob")
        _, carol = await signup("carol")
        await user_client.post("/api/chats", headers=alice, json={"user_id": bob_id})

        response = await user_client.get("/api/chats", headers=carol)

        assert response.json()["chats"] == []
