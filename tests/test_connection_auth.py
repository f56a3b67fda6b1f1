"""Tests for the realtime handshake authenticator."""

import logging
from uuid import uuid4

import pytest

from app.constants.chat import ParticipantType, PrincipalRole
from app.exceptions import (
    AuthenticationRequired,
    InvalidCredential,
    RateLimited,
    TenantInactive,
)
from app.realtime.auth import ConnectionAuthenticator
from app.realtime.rate_limit import ConnectionRateLimiter


@pytest.fixture(scope="function")
def authenticator(identity, session_factory):
    return ConnectionAuthenticator(identity, ConnectionRateLimiter(), session_factory)


async def test_agent_token(authenticator, agent_token, setup_agent):
    session = await authenticator.authenticate("sid-1", {"token": agent_token}, "10.0.0.1")
    assert session.role == PrincipalRole.AGENT
    assert session.tenant_id == setup_agent.tenant_id
    assert session.principal.participant_type == ParticipantType.USER
    assert session.principal.participant_id == str(setup_agent.id)
    assert session.principal.display_name == setup_agent.name


async def test_token_wins_over_widget_key(authenticator, agent_token, setup_widget_key):
    session = await authenticator.authenticate(
        "sid-1", {"token": agent_token, "websiteAPIKey": setup_widget_key.api_key}, "10.0.0.1"
    )
    assert session.role == PrincipalRole.AGENT


async def test_invalid_token(authenticator):
    with pytest.raises(InvalidCredential):
        await authenticator.authenticate("sid-1", {"token": "garbage"}, "10.0.0.1")


async def test_token_for_unknown_user(authenticator, identity, setup_tenant):
    token = identity.issue_access_token(uuid4(), setup_tenant.id, "ghost@example.com")
    with pytest.raises(InvalidCredential):
        await authenticator.authenticate("sid-1", {"token": token}, "10.0.0.1")


async def test_token_for_unknown_tenant(authenticator, identity):
    token = identity.issue_access_token(uuid4(), uuid4(), "ghost@example.com")
    with pytest.raises(InvalidCredential):
        await authenticator.authenticate("sid-1", {"token": token}, "10.0.0.1")


async def test_inactive_tenant(db, authenticator, agent_token, setup_tenant):
    setup_tenant.is_active = False
    db.commit()
    with pytest.raises(TenantInactive):
        await authenticator.authenticate("sid-1", {"token": agent_token}, "10.0.0.1")


async def test_widget_key_without_visitor(authenticator, setup_widget_key, setup_tenant):
    session = await authenticator.authenticate(
        "sid-1", {"websiteAPIKey": setup_widget_key.api_key}, "10.0.0.1"
    )
    assert session.role == PrincipalRole.VISITOR_WIDGET
    assert session.tenant_id == setup_tenant.id
    assert session.principal is None
    assert session.widget_key == setup_widget_key.api_key


async def test_widget_key_with_visitor_session(authenticator, setup_widget_key, setup_visitor, visitor_token):
    session = await authenticator.authenticate(
        "sid-1",
        {
            "websiteAPIKey": setup_widget_key.api_key,
            "sessionId": visitor_token,
            "visitorId": str(setup_visitor.id),
        },
        "10.0.0.1",
    )
    assert session.principal.participant_type == ParticipantType.VISITOR
    assert session.principal.participant_id == str(setup_visitor.id)


async def test_widget_visitor_id_mismatch(authenticator, setup_widget_key, visitor_token):
    with pytest.raises(InvalidCredential):
        await authenticator.authenticate(
            "sid-1",
            {"websiteAPIKey": setup_widget_key.api_key, "sessionId": visitor_token, "visitorId": str(uuid4())},
            "10.0.0.1",
        )


async def test_visitor_token_from_other_tenant(
    authenticator, identity, setup_widget_key, setup_other_tenant, setup_visitor, setup_inbox
):
    token = identity.issue_visitor_token(setup_visitor.id, setup_other_tenant.id, setup_inbox.id)
    with pytest.raises(InvalidCredential):
        await authenticator.authenticate(
            "sid-1", {"websiteAPIKey": setup_widget_key.api_key, "sessionId": token}, "10.0.0.1"
        )


async def test_unknown_widget_key(authenticator, setup_tenant):
    with pytest.raises(InvalidCredential):
        await authenticator.authenticate("sid-1", {"websiteAPIKey": "nope"}, "10.0.0.1")


async def test_inactive_widget_key(db, authenticator, setup_widget_key):
    setup_widget_key.is_active = False
    db.commit()
    with pytest.raises(InvalidCredential):
        await authenticator.authenticate("sid-1", {"websiteAPIKey": setup_widget_key.api_key}, "10.0.0.1")


@pytest.mark.parametrize("auth", [None, {}, {"token": ""}, "token"])
async def test_no_credentials(authenticator, auth):
    with pytest.raises(AuthenticationRequired):
        await authenticator.authenticate("sid-1", auth, "10.0.0.1")


async def test_rate_limit_applies_before_credentials(authenticator, agent_token):
    for n in range(5):
        with pytest.raises(InvalidCredential):
            await authenticator.authenticate(f"sid-{n}", {"token": "garbage"}, "10.0.0.9")
    with pytest.raises(RateLimited):
        await authenticator.authenticate("sid-6", {"token": agent_token}, "10.0.0.9")
    session = await authenticator.authenticate("sid-7", {"token": agent_token}, "10.0.0.10")
    assert session.is_agent


async def test_rejections_logged_once_per_window(authenticator, caplog):
    with caplog.at_level(logging.WARNING, logger="app.realtime.rate_limit"):
        for n in range(8):
            with pytest.raises((AuthenticationRequired, RateLimited)):
                await authenticator.authenticate(f"sid-{n}", {}, "10.0.0.9")
    messages = [r.getMessage() for r in caplog.records if r.name == "app.realtime.rate_limit"]
    assert len(messages) == 2
    assert any("rate limited" in m for m in messages)
