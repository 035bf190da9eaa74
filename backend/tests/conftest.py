from __future__ import annotations

import hashlib
import hmac
import json
import time
from collections.abc import Callable, Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, delete

from billing_sync.api.deps import get_customer_lookup, get_db
from billing_sync.core.config import settings
from billing_sync.main import app
from billing_sync.models import Subscription, User

WEBHOOK_SECRET = "whsec_test_secret"
WEBHOOK_URL = f"{settings.API_V1_STR}/webhooks/stripe"


class FakeCustomerLookup:
    def __init__(self, emails: dict[str, str] | None = None) -> None:
        self.emails = emails or {}
        self.calls: list[str] = []

    def get_email(self, customer_id: str) -> str | None:
        self.calls.append(customer_id)
        return self.emails.get(customer_id)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def build_event(
    event_type: str,
    obj: dict[str, Any] | None = None,
    *,
    event_id: str = "evt_1",
    created: int | None = 1_700_000_000,
) -> bytes:
    body: dict[str, Any] = {"id": event_id, "object": "event", "type": event_type}
    if created is not None:
        body["created"] = created
    if obj is not None:
        body["data"] = {"object": obj}
    return json.dumps(body).encode()


@pytest.fixture(autouse=True)
def webhook_settings(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "DATABASE_URL", "sqlite://")


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
        session.rollback()
        session.exec(delete(Subscription))
        session.exec(delete(User))
        session.commit()


@pytest.fixture
def add_user(db) -> Callable[..., User]:
    def _add(user_id: str, email: str | None) -> User:
        user = User(id=user_id, email=email)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _add


@pytest.fixture
def customer_lookup() -> FakeCustomerLookup:
    return FakeCustomerLookup()


@pytest.fixture(scope="function")
def client(engine, customer_lookup) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_customer_lookup] = lambda: customer_lookup
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def post_event(client) -> Callable[..., Any]:
    """Sign and POST a raw event body to the webhook endpoint."""

    def _post(payload: bytes, signature: str | None = None, sign: bool = True):
        headers = {"Content-Type": "application/json"}
        if signature is None and sign:
            signature = sign_payload(payload)
        if signature is not None:
            headers["Stripe-Signature"] = signature
        return client.post(WEBHOOK_URL, content=payload, headers=headers)

    return _post
