"""Tests for agent presence driven by connect and disconnect."""

from app.models import User


def _agent(db, user_id):
    db.expire_all()
    return db.query(User).filter(User.id == user_id).one()


async def test_agent_online_then_offline(db, gateway, connect, agent_token, setup_agent):
    sid = await connect({"token": agent_token})
    agent = _agent(db, setup_agent.id)
    assert agent.is_online is True
    assert agent.last_seen is not None

    await gateway.on_disconnect(sid, "client disconnect")
    agent = _agent(db, setup_agent.id)
    assert agent.is_online is False
    assert sid not in gateway.sessions


async def test_disconnect_announces_offline_to_rooms(
    gateway, fake_sio, connect, agent_token, second_agent_token, setup_agent, setup_agent_conversation
):
    leaver = await connect({"token": agent_token})
    stayer = await connect({"token": second_agent_token})
    join = fake_sio.handlers["join_conversation"]
    await join(leaver, {"conversationId": str(setup_agent_conversation.id)})
    await join(stayer, {"conversationId": str(setup_agent_conversation.id)})

    await gateway.on_disconnect(leaver)

    [offline] = fake_sio.events(stayer, "participant_offline")
    assert offline["conversationId"] == str(setup_agent_conversation.id)
    assert offline["participant"]["participantId"] == str(setup_agent.id)
    assert [s.sid for s in gateway.router.subscribers(setup_agent_conversation.id)] == [stayer]


async def test_visitor_disconnect_does_not_touch_agents(
    db, gateway, fake_sio, connect, setup_widget_key, setup_visitor, visitor_token, setup_agent,
    setup_visitor_conversation,
):
    sid = await connect(
        {"websiteAPIKey": setup_widget_key.api_key, "sessionId": visitor_token}
    )
    await fake_sio.handlers["join_conversation"](sid, {"conversationId": str(setup_visitor_conversation.id)})
    await gateway.on_disconnect(sid)

    assert _agent(db, setup_agent.id).is_online is False
    assert gateway.router.subscribers(setup_visitor_conversation.id) == []


async def test_reconnect_flapping_ends_in_last_state(db, gateway, connect, agent_token, setup_agent):
    for _ in range(2):
        sid = await connect({"token": agent_token})
        await gateway.on_disconnect(sid)
    await connect({"token": agent_token})
    assert _agent(db, setup_agent.id).is_online is True


async def test_unknown_sid_disconnect_is_ignored(gateway):
    await gateway.on_disconnect("sid-never-connected")


async def test_agent_stays_online_while_another_connection_lives(
    db, gateway, fake_sio, connect, agent_token, second_agent_token, setup_agent, setup_agent_conversation
):
    room = {"conversationId": str(setup_agent_conversation.id)}
    first = await connect({"token": agent_token})
    second = await connect({"token": agent_token})
    watcher = await connect({"token": second_agent_token})
    join = fake_sio.handlers["join_conversation"]
    for sid in (first, second, watcher):
        await join(sid, room)

    await gateway.on_disconnect(first)
    assert _agent(db, setup_agent.id).is_online is True
    assert fake_sio.events(watcher, "participant_offline") == []
    assert fake_sio.events(watcher, "participant_left") == []
    assert gateway.presence.connections(gateway.sessions[second]) == 1

    await gateway.on_disconnect(second)
    assert _agent(db, setup_agent.id).is_online is False
    [offline] = fake_sio.events(watcher, "participant_offline")
    assert offline["participant"]["participantId"] == str(setup_agent.id)


async def test_dropping_the_only_subscribed_connection_reports_left(
    db, gateway, fake_sio, connect, agent_token, second_agent_token, setup_agent, setup_agent_conversation
):
    room = {"conversationId": str(setup_agent_conversation.id)}
    subscribed = await connect({"token": agent_token})
    await connect({"token": agent_token})
    watcher = await connect({"token": second_agent_token})
    join = fake_sio.handlers["join_conversation"]
    await join(subscribed, room)
    await join(watcher, room)

    await gateway.on_disconnect(subscribed)

    [left] = fake_sio.events(watcher, "participant_left")
    assert left["participant"]["participantId"] == str(setup_agent.id)
    assert fake_sio.events(watcher, "participant_offline") == []
    assert _agent(db, setup_agent.id).is_online is True
