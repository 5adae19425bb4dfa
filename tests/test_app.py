import logging

from territory_api.core.logging import LoggingContextFilter, correlation_id_var, user_id_var
from territory_api.db.session import dispose_engine


async def test_ping(client):
    response = await client.get("/ping")
    assert response.status_code == 200
    assert response.json() == {"pong": True}


async def test_health_checks_database(client):
    try:
        response = await client.get("/health")
    finally:
        await dispose_engine()
    assert response.status_code == 200
    assert response.json()["message"] == "Healthy"


async def test_correlation_id_is_echoed(client):
    response = await client.get("/ping", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Correlation-ID"] == "req-42"

    generated = await client.get("/ping")
    assert generated.headers["X-Correlation-ID"]


async def test_errors_use_the_envelope(client):
    response = await client.get("/me", headers={"X-Correlation-ID": "abc"})
    assert response.status_code == 401
    body = response.json()
    assert body["status"] == 401
    assert body["error"] == {"type": "http_error", "message": "api.error.auth.unauthorized", "details": None}
    assert body["correlation_id"] == "abc"
    assert body["path"] == "/me"
    assert body["method"] == "GET"


def test_logging_filter_reads_request_context():
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)
    LoggingContextFilter().filter(record)
    assert (record.correlation_id, record.user_id) == ("-", "anonymous")

    cid, uid = correlation_id_var.set("c-1"), user_id_var.set("u-1")
    try:
        LoggingContextFilter().filter(record)
    finally:
        correlation_id_var.reset(cid)
        user_id_var.reset(uid)
    assert (record.correlation_id, record.user_id) == ("c-1", "u-1")


def test_allowed_origins_accept_list_or_json(monkeypatch):
    from territory_api.core.settings import AppSettings

    monkeypatch.setenv("FRONTEND_URL", "https://territory.example")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://territory.example")
    assert AppSettings().allowed_origins == [
        "https://territory.example",
        "wss://territory.example",
        "https://a.example",
    ]

    monkeypatch.setenv("CORS_ORIGINS", '["https://b.example"]')
    assert AppSettings().extra_origins == ["https://b.example"]


async def test_startup_logs_environment(monkeypatch, caplog):
    from territory_api.api import main

    monkeypatch.setattr(main.settings, "ENVIRONMENT", "staging")
    monkeypatch.setattr(main.settings, "RUN_MIGRATIONS_ON_STARTUP", False)
    monkeypatch.setattr(main.settings, "SESSION_SWEEP_INTERVAL_SECONDS", 0)
    caplog.set_level(logging.INFO, logger="territory_api.api.main")

    await main.on_startup()

    assert "environment=staging" in caplog.text


def test_entry_point_serves_on_api_port(monkeypatch):
    from territory_api import __main__ as entry

    calls = []
    monkeypatch.setenv("API_PORT", "4100")
    monkeypatch.setattr(entry.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    entry.main()

    assert calls[0][0] == "territory_api.api.main:app"
    assert calls[0][1]["port"] == 4100
