# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from itertools import count

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

from fixitnow_chat.api.v1.dependencies import get_broker_dep, get_presence_dep
from fixitnow_chat.db.session import Base
from fixitnow_chat.db.session import get_db as app_get_session
from fixitnow_chat.main import app as fastapi_app
from fixitnow_chat.models import Message, User, UserRole
from fixitnow_chat.services.chat import ChatService
from fixitnow_chat.services.realtime import InMemoryBroker, PresenceRegistry

TEST_DB_URL = "sqlite://"

_EMAIL_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Each test starts from empty tables even if commits leaked through.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def broker(app: FastAPI) -> Iterator[InMemoryBroker]:
    """Give each test its own in-process broker."""
    test_broker = InMemoryBroker(queue_size=16)
    app.dependency_overrides[get_broker_dep] = lambda: test_broker
    try:
        yield test_broker
    finally:
        app.dependency_overrides.pop(get_broker_dep, None)


@pytest.fixture()
def presence(app: FastAPI) -> Iterator[PresenceRegistry]:
    registry = PresenceRegistry()
    app.dependency_overrides[get_presence_dep] = lambda: registry
    try:
        yield registry
    finally:
        app.dependency_overrides.pop(get_presence_dep, None)


@pytest.fixture()
def client(app: FastAPI, broker: InMemoryBroker, presence: PresenceRegistry) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def chat_service(db_session: Session, broker: InMemoryBroker) -> ChatService:
    return ChatService(db_session, broker)


def make_user(db_session: Session, name: str, role: UserRole = UserRole.CUSTOMER) -> User:
    """Persist a user with a unique email and return it."""
    user = User(
        name=name,
        email=f"{name.lower().replace(' ', '.')}.{next(_EMAIL_COUNTER)}@fixitnow.test",
        role=role,
    )
    db_session.add(user)
    db_session.flush()
    db_session.refresh(user)
    return user


@pytest.fixture()
def customer(db_session: Session) -> User:
    """Create the customer side of a conversation."""
    return make_user(db_session, "Alice Customer", UserRole.CUSTOMER)


@pytest.fixture()
def provider(db_session: Session) -> User:
    """Create the provider side of a conversation."""
    return make_user(db_session, "Bob Plumber", UserRole.PROVIDER)


@pytest.fixture()
def third_user(db_session: Session) -> User:
    """Create a user unrelated to the customer/provider pair."""
    return make_user(db_session, "Carol Electrician", UserRole.PROVIDER)


@pytest.fixture()
def send(chat_service: ChatService):
    """Shortcut to send a message through the service."""

    def _send(sender: User, receiver: User, text: str) -> Message:
        return chat_service.send(sender.id, receiver.id, text)

    return _send
