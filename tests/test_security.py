from types import SimpleNamespace

from fastapi.testclient import TestClient

import strata.main as app_main
from strata.core.security import security_warnings
from strata.models.models import Fund


def _settings(**overrides):
    values = {
        "jwt_secret": "a-long-random-production-secret",
        "cron_secret": "cron-secret-of-decent-length",
        "email_backend": "resend",
        "resend_api_key": "re_live_key",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_hardened_configuration_has_no_warnings():
    assert security_warnings(_settings()) == []


def test_weak_configuration_is_reported():
    warnings = security_warnings(
        _settings(jwt_secret="dev-secret-please-change", cron_secret=None, resend_api_key=None)
    )

    assert len(warnings) == 3
    assert any("CRON_SECRET is not set" in message for message in warnings)
    assert security_warnings(_settings(cron_secret="short")) == ["CRON_SECRET is shorter than 16 characters."]


def test_responses_carry_request_id_and_no_store(db_session, create_user, api_client):
    client = api_client(create_user())

    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["Cache-Control"] == "no-store"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_unsafe_request_ids_are_replaced(db_session, api_client):
    response = api_client().get("/health", headers={"X-Request-ID": "bad id; forged=1"})

    request_id = response.headers["X-Request-ID"]
    assert request_id != "bad id; forged=1"
    assert len(request_id) == 32


def test_lifespan_seeds_funds_and_stops_dispatcher(monkeypatch):
    stopped = []
    monkeypatch.setattr(app_main, "dispatcher", SimpleNamespace(shutdown=lambda: stopped.append(True)))

    with TestClient(app_main.app) as client:
        assert client.get("/health").json() == {"status": "ok"}
        with app_main.SessionLocal() as session:
            codes = {fund.code for fund in session.query(Fund).all()}

    assert {"MAINTENANCE", "SINKING"} <= codes
    assert stopped == [True]
