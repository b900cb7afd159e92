"""Settings resolution and the server and queue worker entry points."""

import asyncio

from archgraph import main as server
from archgraph import worker
from archgraph.config import RuntimeSettings

ENV_VARS = (
    "RUNTIME_DB_ENV",
    "DATABASE_URL",
    "RUNTIME_QUEUE_MODE",
    "REDIS_URL",
    "RUNTIME_QUEUE_NAME",
    "CORS_ORIGINS",
    "LOG_LEVEL",
    "HOST",
    "PORT",
)


def clear_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    clear_env(monkeypatch)

    settings = RuntimeSettings.from_env()

    assert settings.db_env == "dev"
    assert settings.database_url == ""
    assert settings.queue_name == "runtime-default"
    assert settings.cors_origins == ["http://localhost:5173"]
    assert (settings.host, settings.port) == ("0.0.0.0", 8000)
    assert settings.uses_in_memory_queue


def test_values_are_normalised(monkeypatch):
    clear_env(monkeypatch)
    monkeypatch.setenv("RUNTIME_DB_ENV", " Production ")
    monkeypatch.setenv("RUNTIME_QUEUE_MODE", "REDIS")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    monkeypatch.setenv("RUNTIME_QUEUE_NAME", "  ")
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, ,http://b.test")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("PORT", "9100")

    settings = RuntimeSettings.from_env()

    assert settings.db_env == "production"
    assert settings.queue_mode == "redis"
    assert settings.queue_name == "runtime-default"
    assert settings.cors_origins == ["http://a.test", "http://b.test"]
    assert settings.log_level == "DEBUG"
    assert settings.port == 9100
    assert not settings.uses_in_memory_queue


def test_unknown_db_env_falls_back_to_dev(monkeypatch):
    clear_env(monkeypatch)
    monkeypatch.setenv("RUNTIME_DB_ENV", "qa")

    assert RuntimeSettings.from_env().db_env == "dev"


def test_mock_mode_wins_over_redis_url():
    settings = RuntimeSettings(queue_mode="mock", redis_url="redis://cache:6379/0")
    assert settings.uses_in_memory_queue


def test_worker_requires_redis_url(monkeypatch):
    clear_env(monkeypatch)
    assert worker.main() == 1


def test_worker_handler_accepts_any_payload():
    asyncio.run(worker.handle_job({}))
    asyncio.run(worker.handle_job({"id": "42"}))


def test_serve_runs_the_app_with_uvicorn(monkeypatch):
    app = server.create_app(RuntimeSettings(queue_mode="mock", host="127.0.0.1", port=9100, log_level="WARNING"))
    calls = []
    monkeypatch.setattr(server, "app", app)
    monkeypatch.setattr(server.uvicorn, "run", lambda target, **options: calls.append((target, options)))

    server.main()

    assert calls == [(app, {"host": "127.0.0.1", "port": 9100, "log_level": "warning"})]
