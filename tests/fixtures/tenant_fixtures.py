"""Fixtures for tenants, inboxes, agents, bots and widget visitors."""

import pytest

from app.constants.chat import DEFAULT_INBOX_NAME, Feature
from app.models import (
    Bot,
    ChatSdkSetting,
    Inbox,
    Tenant,
    TenantFeature,
    User,
    UserInbox,
    Visitor,
)


def _save(db, obj):
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@pytest.fixture(scope="function")
def setup_tenant(db, faker):
    return _save(db, Tenant(name=faker.company(), domain=faker.unique.domain_name(), is_active=True))


@pytest.fixture(scope="function")
def setup_other_tenant(db, faker):
    """A second, unrelated tenant for isolation tests."""
    return _save(db, Tenant(name=faker.company(), domain=faker.unique.domain_name(), is_active=True))


@pytest.fixture(scope="function")
def setup_inbox(db, setup_tenant):
    """The tenant's fallback inbox."""
    return _save(db, Inbox(tenant_id=setup_tenant.id, name=DEFAULT_INBOX_NAME, is_active=True))


@pytest.fixture(scope="function")
def setup_secondary_inbox(db, faker, setup_tenant):
    return _save(db, Inbox(tenant_id=setup_tenant.id, name=faker.word(), is_active=True))


def _agent(db, faker, tenant, inbox):
    user = _save(
        db,
        User(tenant_id=tenant.id, name=faker.name(), email=faker.unique.email().lower()),
    )
    if inbox is not None:
        _save(db, UserInbox(tenant_id=tenant.id, user_id=user.id, inbox_id=inbox.id))
    return user


@pytest.fixture(scope="function")
def setup_agent(db, faker, setup_tenant, setup_inbox):
    """Agent with access to the default inbox."""
    return _agent(db, faker, setup_tenant, setup_inbox)


@pytest.fixture(scope="function")
def setup_second_agent(db, faker, setup_tenant, setup_inbox):
    return _agent(db, faker, setup_tenant, setup_inbox)


@pytest.fixture(scope="function")
def setup_agent_without_access(db, faker, setup_tenant):
    return _agent(db, faker, setup_tenant, None)


@pytest.fixture(scope="function")
def setup_other_tenant_agent(db, faker, setup_other_tenant):
    inbox = _save(
        db, Inbox(tenant_id=setup_other_tenant.id, name=DEFAULT_INBOX_NAME, is_active=True)
    )
    return _agent(db, faker, setup_other_tenant, inbox)


@pytest.fixture(scope="function")
def enable_bots(db, setup_tenant):
    return _save(
        db,
        TenantFeature(tenant_id=setup_tenant.id, feature_name=Feature.BOTS.value, is_enabled=True),
    )


@pytest.fixture(scope="function")
def setup_bot(db, faker, setup_tenant, setup_inbox, enable_bots):
    """Inbox-level bot with the bots feature switched on."""
    return _save(
        db,
        Bot(
            tenant_id=setup_tenant.id,
            inbox_id=setup_inbox.id,
            name=f"{faker.first_name()} Bot",
            is_active=True,
        ),
    )


@pytest.fixture(scope="function")
def setup_tenant_bot(db, faker, setup_tenant, enable_bots):
    """Tenant-level bot (no inbox)."""
    return _save(
        db,
        Bot(
            tenant_id=setup_tenant.id,
            inbox_id=None,
            name=f"{faker.first_name()} Bot",
            default_reply="Tenant bot here.",
            is_active=True,
        ),
    )


@pytest.fixture(scope="function")
def setup_widget_key(db, faker, setup_tenant):
    return _save(
        db,
        ChatSdkSetting(tenant_id=setup_tenant.id, api_key=faker.sha256(), is_active=True),
    )


@pytest.fixture(scope="function")
def setup_visitor(db, faker, setup_tenant):
    return _save(
        db,
        Visitor(
            tenant_id=setup_tenant.id,
            name=faker.name(),
            email=faker.email(),
            session_id=faker.uuid4(),
            ip_address=faker.ipv4(),
        ),
    )


@pytest.fixture(scope="function")
def agent_token(identity, setup_agent):
    return identity.issue_access_token(setup_agent.id, setup_agent.tenant_id, setup_agent.email)


@pytest.fixture(scope="function")
def second_agent_token(identity, setup_second_agent):
    return identity.issue_access_token(
        setup_second_agent.id, setup_second_agent.tenant_id, setup_second_agent.email
    )


@pytest.fixture(scope="function")
def visitor_token(identity, setup_visitor, setup_inbox):
    return identity.issue_visitor_token(setup_visitor.id, setup_visitor.tenant_id, setup_inbox.id)
