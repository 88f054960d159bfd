"""Tests for application wiring and lifecycle."""

import json

import pytest
import respx
from fastapi.testclient import TestClient
from httpx import Response

from intake.app.exceptions import ConfigError
from intake.app.main import create_app
from intake.app.middleware.rate_limit import IPRateLimiter
from intake.app.services.geo import GeoResolver

SEND_URL = "https://api.telegram.org/bot123:abc/sendMessage"
SET_WEBHOOK_URL = "https://api.telegram.org/bot123:abc/setWebhook"


def test_missing_telegram_config_is_fatal(test_settings):
    config = test_settings.model_copy(update={"telegram_bot_token": "", "telegram_chat_ids": []})
    with pytest.raises(ConfigError):
        create_app(settings=config, geo=GeoResolver())


def test_unopenable_geo_database_is_fatal(test_settings, notifier, tmp_path):
    config = test_settings.model_copy(update={"geoip_db_path": str(tmp_path / "missing.mmdb")})
    with pytest.raises(ConfigError):
        create_app(settings=config, notifier=notifier)


def test_limiter_built_from_settings(test_settings, notifier):
    config = test_settings.model_copy(update={"rate_limit_rps": 2.5, "rate_limit_burst": 9})
    app = create_app(settings=config, notifier=notifier)

    limiter = app.state.limiter
    assert limiter.rate == 2.5
    assert limiter.burst == 9
    assert limiter.ttl == 600
    assert limiter.sweep_interval == 120


def test_lifespan_starts_and_stops_sweep(test_settings, notifier):
    limiter = IPRateLimiter()
    app = create_app(settings=test_settings, notifier=notifier, geo=GeoResolver(), limiter=limiter)

    with TestClient(app):
        assert limiter.running is True
    assert limiter.running is False


def test_injected_geo_not_closed_on_shutdown(test_settings, notifier, make_geo_reader):
    reader = make_geo_reader()
    app = create_app(settings=test_settings, notifier=notifier, geo=GeoResolver(reader))

    with TestClient(app):
        pass
    assert reader.closed is False


@respx.mock
def test_telegram_notifier_end_to_end(test_settings):
    config = test_settings.model_copy(update={"telegram_chat_ids": ["111", "222"]})
    send = respx.post(SEND_URL).mock(return_value=Response(200, json={"ok": True}))
    app = create_app(settings=config, geo=GeoResolver())

    with TestClient(app) as client:
        health = client.get("/health").json()
        resp = client.post(
            "/submit",
            json={"urgency": "high", "summary": "x"},
            headers={"X-Forwarded-For": "203.0.113.5"},
        )

    assert health["components"]["notifier"]["recipients"] == 2
    assert resp.status_code == 200
    payloads = [json.loads(call.request.content) for call in send.calls]
    assert [p["chat_id"] for p in payloads] == ["111", "222"]
    assert payloads[0]["text"] == "new case\n\nUrgency: high\nSummary: x\n\nIP: 203.0.113.5\n"


@respx.mock
def test_telegram_failure_returns_500(test_settings):
    respx.post(SEND_URL).mock(return_value=Response(400, json={"ok": False, "description": "chat not found"}))
    app = create_app(settings=test_settings, geo=GeoResolver())

    with TestClient(app) as client:
        resp = client.post("/submit", json={"urgency": "high", "summary": "x"})

    assert resp.status_code == 500
    assert resp.text == "failed to send"
    assert "chat not found" not in resp.text


@respx.mock
def test_webhook_registered_on_startup(test_settings):
    config = test_settings.model_copy(update={"telegram_webhook_url": "https://intake.example/telegram/webhook"})
    route = respx.post(SET_WEBHOOK_URL).mock(return_value=Response(200, json={"ok": True}))

    with TestClient(create_app(settings=config, geo=GeoResolver())):
        pass

    assert route.call_count == 1


@respx.mock
def test_webhook_registration_failure_aborts_startup(test_settings):
    config = test_settings.model_copy(update={"telegram_webhook_url": "https://intake.example/telegram/webhook"})
    respx.post(SET_WEBHOOK_URL).mock(return_value=Response(200, json={"ok": False}))

    with pytest.raises(ConfigError):
        with TestClient(create_app(settings=config, geo=GeoResolver())):
            pass


def test_health(test_settings, notifier, make_geo_reader):
    app = create_app(settings=test_settings, notifier=notifier, geo=GeoResolver(make_geo_reader()))
    client = TestClient(app)
    client.post("/submit", json={"urgency": "high", "summary": "x"})

    resp = client.get("/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["components"]["geoip"]["status"] == "ok"
    assert data["components"]["notifier"] == {"status": "ok", "recipients": 1}
    assert data["components"]["rate_limiter"]["tracked_clients"] == 1


def test_health_not_rate_limited(test_settings, notifier):
    client = TestClient(create_app(settings=test_settings, notifier=notifier, geo=GeoResolver()))
    assert all(client.get("/health").status_code == 200 for _ in range(10))


def test_unexpected_error_is_generic_500(test_settings, notifier):
    notifier.error = RuntimeError("secret transport detail")
    client = TestClient(
        create_app(settings=test_settings, notifier=notifier, geo=GeoResolver()),
        raise_server_exceptions=False,
    )

    resp = client.post("/submit", json={"urgency": "high", "summary": "x"})

    assert resp.status_code == 500
    assert "secret transport detail" not in resp.text
    assert resp.json()["error"] == "internal_error"
