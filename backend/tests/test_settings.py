import os

from mcpeer.env import load_dotenv_if_present
from mcpeer.settings import Settings, get_settings, reset_settings


def test_defaults_without_environment(monkeypatch):
    for name in (
        "MCPEER_MAX_RETRIES",
        "MCPEER_RETRY_SUCCESS_THRESHOLD",
        "MCPEER_PORT",
        "MCPEER_TOOLS_CALL_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.orchestration.max_retries == 3
    assert settings.orchestration.retry_success_threshold == 0.5
    assert settings.timeouts.tools_call_seconds == 30.0
    assert settings.server.port == 3001


def test_environment_overrides_and_bad_values(monkeypatch):
    monkeypatch.setenv("MCPEER_MAX_RETRIES", "0")
    monkeypatch.setenv("MCPEER_RETRY_SUCCESS_THRESHOLD", "0.25")
    monkeypatch.setenv("MCPEER_PORT", "not-a-port")
    monkeypatch.setenv("MCPEER_HOST", "   ")

    settings = Settings.from_env()

    assert settings.orchestration.max_retries == 1
    assert settings.orchestration.retry_success_threshold == 0.25
    assert settings.server.port == 3001
    assert settings.server.host == "127.0.0.1"


def test_get_settings_is_cached_until_reset(monkeypatch):
    reset_settings()
    monkeypatch.setenv("MCPEER_DECISION_MAX_TOKENS", "500")
    first = get_settings()
    monkeypatch.setenv("MCPEER_DECISION_MAX_TOKENS", "700")

    assert get_settings() is first
    reset_settings()
    assert get_settings().orchestration.decision_max_tokens == 700
    reset_settings()


def test_env_file_loading_keeps_existing_values(tmp_path, monkeypatch):
    env_file = tmp_path / "custom.env"
    env_file.write_text("MCPEER_PORT=4100\nMCPEER_HOST=0.0.0.0\n", encoding="utf-8")
    monkeypatch.delenv("MCPEER_PORT", raising=False)
    monkeypatch.setenv("MCPEER_HOST", "10.0.0.1")
    monkeypatch.setenv("MCPEER_ENV_FILE", str(env_file))

    assert load_dotenv_if_present() is True
    server = Settings.from_env().server
    os.environ.pop("MCPEER_PORT", None)

    assert server.port == 4100
    assert server.host == "10.0.0.1"
    assert load_dotenv_if_present(str(tmp_path / "missing.env")) is False
