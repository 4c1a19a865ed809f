import pytest

from services.config import load_config

SECRETS = ("AUTH_TOKEN", "CT0", "OLLAMA_API_KEY", "DISCORD_WEBHOOK_URL", "DIGEST_USER_ID", "DIGEST_CONFIG_PATH")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in SECRETS:
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path, text):
    path = tmp_path / "config.yml"
    path.write_text(text)
    return str(path)


def test_defaults_for_missing_sections(tmp_path):
    config = load_config(_write(tmp_path, "OLLAMA_MODEL: qwen2.5\n"))

    assert config.OLLAMA_MODEL == "qwen2.5"
    assert config.OLLAMA_BASE_URL == "http://localhost:11434"
    assert config.analyzer.batch_size == 5
    assert config.analyzer.token_limit == 5600
    assert config.analyzer.throttle_delay_seconds == 65.0
    assert config.fetch.ceiling == 200
    assert config.enricher.concurrency == 5
    assert config.delivery.discord_enabled is False
    assert config.has_x_credentials is False


def test_secrets_come_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("AUTH_TOKEN", "a")
    monkeypatch.setenv("CT0", "b")
    monkeypatch.setenv("OLLAMA_API_KEY", "k")
    monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.test/hook")
    monkeypatch.setenv("DIGEST_USER_ID", "env-user")

    config = load_config(_write(tmp_path, "DIGEST_USER_ID: file-user\nDISCORD_ENABLED: 'true'\n"))

    assert config.has_x_credentials
    assert config.OLLAMA_API_KEY == "k"
    assert config.DIGEST_USER_ID == "env-user"
    assert config.delivery.discord_webhook_url == "https://discord.test/hook"
    assert config.delivery.discord_enabled is True


def test_malformed_section_falls_back_to_defaults(tmp_path):
    config = load_config(_write(tmp_path, "analyzer:\n  batch_size: 0\nfetch:\n  ceiling: 150\n"))

    assert config.analyzer.batch_size == 5
    assert config.fetch.ceiling == 150


def test_config_path_override(tmp_path, monkeypatch):
    monkeypatch.setenv("DIGEST_CONFIG_PATH", _write(tmp_path, "OLLAMA_MODEL: from-env-path\n"))

    assert load_config().OLLAMA_MODEL == "from-env-path"


def test_bundled_config_loads(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)

    config = load_config()

    assert config.DATABASE_PATH == "data/bookmarks.db"
    assert config.delivery.max_units_per_message == 10
