"""HTTP tests for /conversations."""

from uuid import uuid4

from app.constants.chat import ParticipantType
from app.services.conversation_service import ConversationService
from tests.fixtures.conversation_fixtures import ref


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_requires_bearer_token(client):
    response = client.get("/conversations")
    assert response.status_code == 401
    assert response.json() == {"detail": "Authentication required", "code": "authentication_required"}


def test_rejects_invalid_token(client):
    response = client.get("/conversations", headers=_auth("garbage"))
    assert response.status_code == 401
    assert response.json()["code"] == "invalid_credential"


def test_list_conversations(client, agent_token, setup_agent_conversation):
    response = client.get("/conversations", headers=_auth(agent_token))
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["id"] == str(setup_agent_conversation.id)

    response = client.get("/conversations?status=closed", headers=_auth(agent_token))
    assert response.json()["total"] == 0


def test_start_conversation_then_reuse(client, fake_gateway, agent_token, setup_inbox, setup_second_agent):
    payload = {"email": setup_second_agent.email, "inbox_id": str(setup_inbox.id)}
    created = client.post("/conversations", json=payload, headers=_auth(agent_token))
    assert created.status_code == 201

    [(user_id, event, data)] = fake_gateway.called("notify_user")
    assert user_id == setup_second_agent.id
    assert event == "conversation_created"
    assert data["conversation"]["id"] == created.json()["id"]

    reused = client.post("/conversations", json=payload, headers=_auth(agent_token))
    assert reused.status_code == 200
    assert reused.json()["id"] == created.json()["id"]
    assert len(fake_gateway.called("notify_user")) == 1


def test_start_conversation_with_unknown_agent(client, agent_token, setup_inbox):
    response = client.post(
        "/conversations",
        json={"email": "nobody@example.com", "inbox_id": str(setup_inbox.id)},
        headers=_auth(agent_token),
    )
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_get_conversation_access(client, agent_token, setup_agent_conversation, setup_visitor_conversation):
    response = client.get(f"/conversations/{setup_agent_conversation.id}", headers=_auth(agent_token))
    assert response.status_code == 200
    assert response.json()["status"] == "open"

    response = client.get(f"/conversations/{setup_visitor_conversation.id}", headers=_auth(agent_token))
    assert response.status_code == 403
    assert response.json()["code"] == "access_denied"

    response = client.get(f"/conversations/{uuid4()}", headers=_auth(agent_token))
    assert response.status_code == 404


def test_other_tenant_conversation_is_not_found(client, agent_token, setup_other_tenant_conversation):
    response = client.get(
        f"/conversations/{setup_other_tenant_conversation.id}/messages", headers=_auth(agent_token)
    )
    assert response.status_code == 404


def test_list_participants(client, agent_token, setup_agent, setup_second_agent, setup_agent_conversation):
    response = client.get(
        f"/conversations/{setup_agent_conversation.id}/participants", headers=_auth(agent_token)
    )
    assert response.status_code == 200
    assert {p["participant_id"] for p in response.json()} == {str(setup_agent.id), str(setup_second_agent.id)}


def test_send_and_list_messages(client, fake_gateway, agent_token, setup_tenant, setup_agent_conversation):
    response = client.post(
        f"/conversations/{setup_agent_conversation.id}/messages",
        json={"content": "hello over http"},
        headers=_auth(agent_token),
    )
    assert response.status_code == 201
    message = response.json()
    assert message["status"] == "sent"
    assert message["sender_type"] == "user"

    [(tenant_id, conversation_id, published)] = fake_gateway.called("publish_messages")
    assert tenant_id == setup_tenant.id
    assert conversation_id == setup_agent_conversation.id
    assert published[0]["id"] == message["id"]

    listed = client.get(
        f"/conversations/{setup_agent_conversation.id}/messages", headers=_auth(agent_token)
    ).json()
    assert [m["content"] for m in listed["items"]] == ["hello over http"]


def test_send_blank_message_rejected(client, agent_token, setup_agent_conversation):
    response = client.post(
        f"/conversations/{setup_agent_conversation.id}/messages",
        json={"content": "   "},
        headers=_auth(agent_token),
    )
    assert response.status_code == 422


def test_mark_read(
    client, db, fake_gateway, second_agent_token, setup_tenant, setup_agent, setup_agent_conversation
):
    ConversationService(db).append_message(
        setup_tenant.id, setup_agent_conversation.id, ref(ParticipantType.USER, setup_agent.id), "hi"
    )
    response = client.post(
        f"/conversations/{setup_agent_conversation.id}/read", headers=_auth(second_agent_token)
    )
    assert response.status_code == 200
    assert response.json()["updated"] == 1
    [(conversation_id, reader, count)] = fake_gateway.called("messages_read")
    assert conversation_id == setup_agent_conversation.id
    assert count == 1


def test_update_status(client, fake_gateway, agent_token, setup_agent_conversation):
    response = client.patch(
        f"/conversations/{setup_agent_conversation.id}/status",
        json={"status": "closed"},
        headers=_auth(agent_token),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "closed"
    [(conversation_id, status)] = fake_gateway.called("conversation_status_changed")
    assert conversation_id == setup_agent_conversation.id
    assert status == "closed"


def test_assign_visitor_conversation(
    client, fake_gateway, agent_token, setup_agent, setup_visitor_conversation
):
    response = client.post(
        f"/conversations/{setup_visitor_conversation.id}/assign",
        json={"agent_id": str(setup_agent.id)},
        headers=_auth(agent_token),
    )
    assert response.status_code == 200
    assert response.json()["assigned_user_id"] == str(setup_agent.id)
    [(user_id, event, _)] = fake_gateway.called("notify_user")
    assert event == "conversation_assigned"

    response = client.get(f"/conversations/{setup_visitor_conversation.id}", headers=_auth(agent_token))
    assert response.status_code == 200


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["database"] == "ok"
    assert body["realtime"] is True
