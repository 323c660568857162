"""
Shared fixtures: explicit settings and in-memory collaborators.
"""
from datetime import datetime
from uuid import uuid4

import pytest
from sqlalchemy.pool import StaticPool

from authgate.application.controller import AuthController
from authgate.core.config import Settings
from authgate.core.exceptions import UserAlreadyExistsError
from authgate.core.policy import PolicyConfig
from authgate.infrastructure.database import models  # noqa: F401  registers tables on Base
from authgate.infrastructure.database.session import Base, session_factory_from_settings
from authgate.infrastructure.services.jwt import JWTIssuer
from authgate.presentation.schemas.registry import SchemaRegistry


def build_settings(**overrides) -> Settings:
    values = {
        "SECRET_KEY": "test-secret",
        "SERVER_URL": "https://auth.example.com",
        "GRAVATAR_ENABLED": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def build_policy(**overrides) -> PolicyConfig:
    return PolicyConfig.from_settings(build_settings(**overrides))


class FakeStore:
    """AuthStore keeping users in memory and recording every call."""

    def __init__(self):
        self.users = {}
        self.refresh_tokens = {}
        self.calls = []
        self.create_error = None

    @property
    def call_names(self):
        return [name for name, _ in self.calls]

    def _add(self, user):
        if self.create_error is not None:
            raise self.create_error
        if user.email is not None and user.email in self.users:
            raise UserAlreadyExistsError(user.email)
        self.users[user.email or str(user.id)] = user
        return user

    def _by_id(self, user_id):
        return next(user for user in self.users.values() if user.id == user_id)

    def find_user_by_email(self, email):
        self.calls.append(("find_user_by_email", (email,)))
        return self.users.get(email.lower())

    def get_user_roles(self, user_id):
        self.calls.append(("get_user_roles", (user_id,)))
        return list(self._by_id(user_id).roles)

    def create_user(self, user):
        self.calls.append(("create_user", (user,)))
        return self._add(user)

    def create_user_with_refresh_token(self, user, refresh_token):
        self.calls.append(("create_user_with_refresh_token", (user, refresh_token)))
        self._add(user)
        token_id = uuid4()
        self.refresh_tokens[token_id] = (user.id, refresh_token)
        return user, token_id

    def insert_refresh_token(self, user_id, refresh_token):
        self.calls.append(("insert_refresh_token", (user_id, refresh_token)))
        token_id = uuid4()
        self.refresh_tokens[token_id] = (user_id, refresh_token)
        return token_id

    def update_last_seen(self, user_id):
        self.calls.append(("update_last_seen", (user_id,)))
        return datetime.utcnow()

    def update_user_ticket(self, user_id, ticket, expires_at):
        self.calls.append(("update_user_ticket", (user_id, ticket, expires_at)))
        user = self._by_id(user_id)
        user.ticket = ticket
        user.ticket_expires_at = expires_at
        return user_id


class FakeEmailer:
    """Emailer recording sent messages; raises when a failure is configured."""

    def __init__(self):
        self.sent = []
        self.error = None

    def _send(self, kind, to, locale, data):
        if self.error is not None:
            raise self.error
        self.sent.append((kind, to, locale, data))

    def send_email_verification(self, to, locale, data):
        self._send("email-verify", to, locale, data)

    def send_magic_link(self, to, locale, data):
        self._send("signin-passwordless", to, locale, data)

    def send_password_reset(self, to, locale, data):
        self._send("password-reset", to, locale, data)


class FakeBreachChecker:
    def __init__(self, breached=False):
        self.breached = breached
        self.calls = []

    def is_password_breached(self, password):
        self.calls.append(password)
        return self.breached


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def emailer():
    return FakeEmailer()


@pytest.fixture
def breach_checker():
    return FakeBreachChecker()


@pytest.fixture
def token_issuer():
    return JWTIssuer(secret_key="test-secret")


@pytest.fixture
def make_controller(store, emailer, breach_checker, token_issuer):
    """Factory building an AuthController over the fakes with setting overrides."""

    def factory(**overrides):
        return AuthController(store, emailer, breach_checker, token_issuer, build_settings(**overrides))

    return factory


@pytest.fixture
def controller(make_controller):
    return make_controller()


@pytest.fixture
def make_registry():
    def factory(**overrides):
        return SchemaRegistry(build_policy(**overrides))

    return factory


@pytest.fixture
def registry(make_registry):
    return make_registry()


@pytest.fixture
def db_session():
    """In-memory SQLite session with the schema created."""
    factory = session_factory_from_settings(
        build_settings(DATABASE_URL="sqlite://"),
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session = factory()
    Base.metadata.create_all(bind=session.get_bind())
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_settings():
    return build_settings


@pytest.fixture
def make_policy():
    return build_policy
