"""Tests for group chats and membership management."""

import pytest


async def _create_group(client, headers, name="team", members=None):
    response = await client.post(
        "/api/groups", headers=headers, json={"name": name, "members": members or []}
    )
    assert response.status_code == 201, response.text
    return response.json()["chat_id"]


class TestCreateGroup:
    """Tests for POST /api/groups."""

    @pytest.mark.asyncio
    async def test_creator_is_admin(self, user_client, signup):
        """Test that the creator joins as admin and listed members as members."""
        alice_id, alice = await signup("alice")
        bob_id, _ = await signup("bob")

        response = await user_client.post(
            "/api/groups",
            headers=alice,
            json={"name": "team", "description": "our group", "members": [bob_id, 999]},
        )
        chat_id = response.json()["chat_id"]
        members = await user_client.get(f"/api/groups/{chat_id}/members", headers=alice)

        assert response.status_code == 201
        assert response.json()["members"] == [bob_id]
        roles = {m["user_id"]: m["role"] for m in members.json()["members"]}
        assert roles == {alice_id: "admin", bob_id: "member"}

    @pytest.mark.asyncio
    async def test_name_length_boundary(self, user_client, signup):
        """Test that names up to 100 characters are accepted."""
        _, alice = await signup("alice")

        ok = await user_client.post("/api/groups", headers=alice, json={"name": "g" * 100})
        too_long = await user_client.post("/api/groups", headers=alice, json={"name": "g" * 101})

        assert ok.status_code == 201
        assert too_long.status_code == 400
        assert too_long.json()["code"] == "INVALID_GROUP_NAME"

    @pytest.mark.asyncio
    async def test_members_must_be_list(self, user_client, signup):
        """Test that a non-list members field is rejected."""
        _, alice = await signup("alice")

        response = await user_client.post(
            "/api/groups", headers=alice, json={"name": "team", "members": "bob"}
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_list_groups_excludes_direct_chats(self, user_client, signup):
        """Test that /api/groups only returns group chats."""
        _, alice = await signup("alice")
        bob_id, _ = await signup("bob")
        await user_client.post("/api/chats", headers=alice, json={"user_id": bob_id})
        chat_id = await _create_group(user_client, alice)

        response = await user_client.get("/api/groups", headers=alice)

        assert [g["id"] for g in response.json()["groups"]] == [chat_id]


class TestMembership:
    """Tests for adding and removing group members."""

    @pytest.mark.asyncio
    async def test_admin_adds_member(self, state, user_client, signup):
        """Test that an admin can add a user and the user is notified."""
        _, alice = await signup("alice")
        bob_id, _ = await signup("bob")
        chat_id = await _create_group(user_client, alice)
        queue = await state.broadcaster.subscribe(bob_id)

        response = await user_client.post(
            f"/api/groups/{chat_id}/members", headers=alice, json={"user_id": bob_id}
        )

        assert response.status_code == 201
        assert response.json()["role"] == "member"
        assert queue.get_nowait() == {"type": "added_to_group", "chat_id": chat_id}

    @pytest.mark.asyncio
    async def test_member_cannot_add(self, user_client, signup):
        """Test that plain members cannot add others."""
        _, alice = await signup("alice")
        bob_id, bob = await signup("bob")
        carol_id, _ = await signup("carol")
        chat_id = await _create_group(user_client, alice, members=[bob_id])

        response = await user_client.post(
            f"/api/groups/{chat_id}/members", headers=bob, json={"user_id": carol_id}
        )

        assert response.status_code == 403
        assert response.json()["code"] == "NOT_GROUP_ADMIN"

    @pytest.mark.asyncio
    async def test_add_errors(self, user_client, signup):
        """Test duplicate, unknown and bad-role additions."""
        _, alice = await signup("alice")
        bob_id, _ = await signup("bob")
        chat_id = await _create_group(user_client, alice, members=[bob_id])
        url = f"/api/groups/{chat_id}/members"

        duplicate = await user_client.post(url, headers=alice, json={"user_id": bob_id})
        unknown = await user_client.post(url, headers=alice, json={"user_id": 999})
        bad_role = await user_client.post(
            url, headers=alice, json={"user_id": bob_id, "role": "owner"}
        )

        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "ALREADY_MEMBER"
        assert unknown.status_code == 404
        assert unknown.json()["code"] == "USER_NOT_FOUND"
        assert bad_role.json()["code"] == "INVALID_ROLE"

    @pytest.mark.asyncio
    async def test_member_can_leave(self, user_client, signup):
        """Test that a member may remove themselves."""
        _, alice = await signup("alice")
        bob_id, bob = await signup("bob")
        chat_id = await _create_group(user_client, alice, members=[bob_id])

        response = await user_client.request(
            "DELETE", f"/api/groups/{chat_id}/members", headers=bob, json={"user_id": bob_id}
        )
        after = await user_client.get(f"/api/groups/{chat_id}/members", headers=bob)

        assert response.status_code == 200
        assert after.status_code == 403

    @pytest.mark.asyncio
    async def test_member_cannot_remove_others(self, user_client, signup):
        """Test that removing someone else needs the admin role."""
        alice_id, alice = await signup("alice")
        bob_id, bob = await signup("bob")
        chat_id = await _create_group(user_client, alice, members=[bob_id])

        response = await user_client.delete(
            f"/api/groups/{chat_id}/members?user_id={alice_id}", headers=bob
        )

        assert response.status_code == 403
        assert response.json()["code"] == "NOT_GROUP_ADMIN"

    @pytest.mark.asyncio
    async def test_admin_removes_member(self, user_client, signup):
        """Test that admins can remove members, and a second removal is a 404."""
        _, alice = await signup("alice")
        bob_id, _ = await signup("bob")
        chat_id = await _create_group(user_client, alice, members=[bob_id])
        url = f"/api/groups/{chat_id}/members?user_id={bob_id}"

        first = await user_client.delete(url, headers=alice)
        second = await user_client.delete(url, headers=alice)

        assert first.status_code == 200
        assert second.status_code == 404
        assert second.json()["code"] == "NOT_A_MEMBER"

    @pytest.mark.asyncio
    async def test_direct_chat_membership_is_fixed(self, user_client, signup):
        """Test that direct chats reject membership changes."""
        _, alice = await signup("alice")
        bob_id, _ = await signup("bob")
        carol_id, _ = await signup("carol")
        dm = await user_client.post("/api/chats", headers=alice, json={"user_id": bob_id})
        chat_id = dm.json()["chat_id"]

        response = await user_client.post(
            f"/api/groups/{chat_id}/members", headers=alice, json={"user_id": carol_id}
        )

        assert response.status_code == 400
        assert response.json()["code"] == "DIRECT_CHAT_IMMUTABLE"

    @pytest.mark.asyncio
    async def test_outsider_cannot_list_members(self, user_client, signup):
        """Test that member lists are visible to members only."""
        _, alice = await signup("alice")
        _, mallory = await signup("mallory")
        chat_id = await _create_group(user_client, alice)

        response = await user_client.get(f"/api/groups/{chat_id}/members", headers=mallory)

        assert response.status_code == 403
        assert response.json()["code"] == "NOT_A_MEMBER"
