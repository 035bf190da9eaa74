from __future__ import annotations

import time

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import func
from sqlmodel import select

from billing_sync import crud
from billing_sync.api.errors import InfrastructureError
from billing_sync.api.main import api_router
from billing_sync.core.config import settings
from billing_sync.core.cors import install_cors
from billing_sync.main import WEBHOOK_PATH_PREFIX
from billing_sync.models import Subscription
from billing_sync.services.identity import SqlIdentityDirectory
from conftest import WEBHOOK_URL, build_event, sign_payload


def _checkout_event(event_id: str = "evt_cs_1", created: int = 1_700_000_000, **obj) -> bytes:
    body = {
        "id": "cs_1",
        "object": "checkout.session",
        "mode": "subscription",
        "customer": "cus_1",
        "subscription": "sub_1",
        "customer_details": {"email": "a@x.com"},
        **obj,
    }
    return build_event("checkout.session.completed", body, event_id=event_id, created=created)


def _subscription_event(event_type: str, status: str | None, event_id: str, created: int) -> bytes:
    body = {"id": "sub_1", "object": "subscription", "customer": "cus_1"}
    if status is not None:
        body["status"] = status
    return build_event(event_type, body, event_id=event_id, created=created)


def _record(db, user_id: str) -> Subscription | None:
    db.expire_all()
    return crud.get_subscription_by_user_id(session=db, user_id=user_id)


def _count(db) -> int:
    db.expire_all()
    return db.exec(select(func.count()).select_from(Subscription)).one()


def test_checkout_update_delete_scenario(post_event, db, add_user):
    add_user("user_42", "a@x.com")

    r = post_event(_checkout_event())
    assert r.status_code == 200
    body = r.json()
    assert body["code"] == 0
    assert body["data"] == {
        "received": True,
        "event_id": "evt_cs_1",
        "event_type": "checkout.session.completed",
        "outcome": "reconciled",
    }
    record = _record(db, "user_42")
    assert record.provider_customer_id == "cus_1"
    assert record.provider_subscription_id == "sub_1"
    assert record.status == "active"

    r = post_event(_subscription_event("customer.subscription.updated", "past_due", "evt_up_1", 1_700_000_010))
    assert r.status_code == 200
    assert _record(db, "user_42").status == "inactive"

    r = post_event(_subscription_event("customer.subscription.deleted", None, "evt_del_1", 1_700_000_020))
    assert r.status_code == 200
    record = _record(db, "user_42")
    assert record.status == "canceled"
    assert record.provider_subscription_id == "sub_1"
    assert _count(db) == 1


def test_checkout_replay_is_idempotent(post_event, db, add_user):
    add_user("user_42", "a@x.com")
    payload = _checkout_event()

    assert post_event(payload).status_code == 200
    first = _record(db, "user_42")
    state = (first.id, first.provider_customer_id, first.provider_subscription_id, first.status)

    assert post_event(payload).status_code == 200
    second = _record(db, "user_42")
    assert (second.id, second.provider_customer_id, second.provider_subscription_id, second.status) == state
    assert _count(db) == 1


def test_subscription_reactivated(post_event, db, add_user):
    add_user("user_42", "a@x.com")
    post_event(_checkout_event())
    post_event(_subscription_event("customer.subscription.updated", "past_due", "evt_up_1", 1_700_000_010))

    r = post_event(_subscription_event("customer.subscription.updated", "active", "evt_up_2", 1_700_000_020))
    assert r.status_code == 200
    assert _record(db, "user_42").status == "active"


def test_invalid_signature_writes_nothing(post_event, db, add_user):
    add_user("user_42", "a@x.com")
    payload = _checkout_event()

    r = post_event(payload, signature=sign_payload(payload, secret="whsec_wrong"))
    assert r.status_code == 400
    assert r.json() == {"code": 400101, "message": "Invalid webhook signature", "data": None}
    assert _count(db) == 0


def test_missing_signature_writes_nothing(post_event, db, add_user):
    add_user("user_42", "a@x.com")

    r = post_event(_checkout_event(), sign=False)
    assert r.status_code == 400
    assert r.json()["code"] == 400101
    assert _count(db) == 0


def test_expired_signature_rejected(post_event, db, add_user):
    add_user("user_42", "a@x.com")
    payload = _checkout_event()

    r = post_event(payload, signature=sign_payload(payload, timestamp=int(time.time()) - 3600))
    assert r.status_code == 400
    assert _count(db) == 0


def test_signed_garbage_is_client_error(post_event):
    r = post_event(b"{not json")
    assert r.status_code == 400
    assert r.json()["code"] == 400102


def test_unknown_event_acknowledged_without_store_access(post_event, db, monkeypatch):
    def _fail(*args, **kwargs):
        raise AssertionError("store must not be touched")

    monkeypatch.setattr(crud.subscription, "upsert_for_user", _fail)
    monkeypatch.setattr(crud.subscription, "update_status_by_subscription_id", _fail)
    monkeypatch.setattr(SqlIdentityDirectory, "get_by_email", _fail)

    r = post_event(build_event("invoice.paid", {"id": "in_1"}, event_id="evt_inv_1"))
    assert r.status_code == 200
    assert r.json()["data"]["outcome"] == "ignored"
    assert _count(db) == 0


def test_unknown_user_acknowledged(post_event, db):
    r = post_event(_checkout_event(customer_details={"email": "nobody@x.com"}))
    assert r.status_code == 200
    assert r.json()["data"]["outcome"] == "identity_not_found"
    assert _count(db) == 0


def test_email_match_is_case_sensitive(post_event, db, add_user):
    add_user("user_42", "a@x.com")

    r = post_event(_checkout_event(customer_details={"email": "A@X.com"}))
    assert r.status_code == 200
    assert r.json()["data"]["outcome"] == "identity_not_found"
    assert _record(db, "user_42") is None


def test_client_reference_id_resolves_user(post_event, db, add_user):
    add_user("user_7", "someone-else@x.com")

    r = post_event(_checkout_event(client_reference_id="user_7", customer_details={"email": "a@x.com"}))
    assert r.status_code == 200
    assert _record(db, "user_7").status == "active"


def test_customer_email_looked_up_from_stripe(post_event, db, add_user, customer_lookup):
    add_user("user_42", "a@x.com")
    customer_lookup.emails["cus_1"] = "a@x.com"

    r = post_event(_checkout_event(customer_details=None))
    assert r.status_code == 200
    assert customer_lookup.calls == ["cus_1"]
    assert _record(db, "user_42").status == "active"


def test_update_for_unknown_subscription_acknowledged(post_event, db):
    r = post_event(_subscription_event("customer.subscription.updated", "active", "evt_up_x", 1_700_000_010))
    assert r.status_code == 200
    assert r.json()["data"]["outcome"] == "subscription_not_found"
    assert _count(db) == 0

    r = post_event(_subscription_event("customer.subscription.deleted", "canceled", "evt_del_x", 1_700_000_020))
    assert r.status_code == 200
    assert r.json()["data"]["outcome"] == "subscription_not_found"
    assert _count(db) == 0


def test_stale_update_acknowledged(post_event, db, add_user):
    add_user("user_42", "a@x.com")
    post_event(_checkout_event(created=1_700_000_000))
    post_event(_subscription_event("customer.subscription.deleted", None, "evt_del_1", 1_700_000_100))

    r = post_event(_subscription_event("customer.subscription.updated", "active", "evt_up_old", 1_700_000_050))
    assert r.status_code == 200
    assert r.json()["data"]["outcome"] == "stale_event"
    assert _record(db, "user_42").status == "canceled"


def test_directory_outage_is_retryable(post_event, db, monkeypatch):
    def _down(self, email):
        raise InfrastructureError("User directory unavailable")

    monkeypatch.setattr(SqlIdentityDirectory, "get_by_email", _down)

    r = post_event(_checkout_event())
    assert r.status_code == 500
    assert r.json() == {"code": 500201, "message": "User directory unavailable", "data": None}
    assert _count(db) == 0


def test_missing_configuration_is_server_error(post_event, db, add_user, monkeypatch):
    add_user("user_42", "a@x.com")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)

    r = post_event(_checkout_event())
    assert r.status_code == 500
    body = r.json()
    assert body["code"] == 500101
    assert "STRIPE" not in body["message"]
    assert _count(db) == 0


def test_missing_stripe_key_checked_before_signature(post_event, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)

    r = post_event(_checkout_event(), sign=False)
    assert r.status_code == 500
    assert r.json()["code"] == 500101


def test_missing_store_credential(post_event, monkeypatch):
    monkeypatch.setattr(settings, "DATABASE_URL", None)
    monkeypatch.setattr(settings, "POSTGRES_SERVER", "db.internal")
    monkeypatch.setattr(settings, "POSTGRES_PASSWORD", None)

    r = post_event(_checkout_event())
    assert r.status_code == 500
    assert r.json()["code"] == 500101


def test_preflight(client):
    r = client.options(WEBHOOK_URL)
    assert r.status_code == 200
    assert r.content == b""
    assert r.headers["access-control-allow-origin"] == "*"
    assert "stripe-signature" in r.headers["access-control-allow-headers"]
    assert "content-type" in r.headers["access-control-allow-headers"]


def test_ack_carries_cors_headers(post_event):
    r = post_event(build_event("customer.created", {"id": "cus_1"}))
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "*"


def test_health_check(client):
    r = client.get("/api/v1/utils/health-check/")
    assert r.status_code == 200
    assert r.json() is True


def _app_with_restricted_origins() -> FastAPI:
    restricted = FastAPI()
    install_cors(restricted, ["http://app.example.com"], exempt_prefixes=[WEBHOOK_PATH_PREFIX])
    restricted.include_router(api_router, prefix=settings.API_V1_STR)
    return restricted


def test_browser_preflight_allowed_when_origins_restricted():
    with TestClient(_app_with_restricted_origins()) as c:
        r = c.options(
            WEBHOOK_URL,
            headers={
                "Origin": "https://hooks.stripe.example",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "stripe-signature, content-type",
            },
        )
    assert r.status_code == 200
    assert r.content == b""
    assert r.headers["access-control-allow-origin"] == "*"
    assert "stripe-signature" in r.headers["access-control-allow-headers"]


def test_other_routes_keep_configured_origins():
    with TestClient(_app_with_restricted_origins()) as c:
        denied = c.options(
            "/api/v1/utils/health-check/",
            headers={"Origin": "https://evil.example", "Access-Control-Request-Method": "GET"},
        )
        allowed = c.options(
            "/api/v1/utils/health-check/",
            headers={"Origin": "http://app.example.com", "Access-Control-Request-Method": "GET"},
        )
    assert denied.status_code == 400
    assert allowed.status_code == 200
    assert allowed.headers["access-control-allow-origin"] == "http://app.example.com"
