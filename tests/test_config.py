import json
import logging

import pytest

from martin_relay.config import Settings
from martin_relay.errors import ConfigurationError
from martin_relay.logging_config import JSONFormatter, mask_sender

CREDENTIAL_VARS = (
    "ZAPI_INSTANCE_ID",
    "ZAPI_TOKEN",
    "ZAPI_CLIENT_TOKEN",
    "OPENAI_API_KEY",
    "OPENAI_ASSISTANT_ID",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("DEBOUNCE_SECONDS", raising=False)


class TestSettings:
    def test_defaults(self, clean_env):
        settings = Settings(_env_file=None)
        assert settings.debounce_seconds == 30.0
        assert settings.run_poll_interval_seconds == 1.0
        assert settings.dedup_ttl_seconds == 86400
        assert "VOU_GERAR_PRE_PEDIDO" in settings.handoff_phrases

    def test_env_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv("DEBOUNCE_SECONDS", "2.5")
        assert Settings(_env_file=None).debounce_seconds == 2.5

    def test_all_credentials_missing(self, clean_env):
        settings = Settings(_env_file=None)
        assert settings.missing_credentials() == list(CREDENTIAL_VARS)

    def test_require_credentials_raises(self, clean_env, monkeypatch):
        monkeypatch.setenv("ZAPI_INSTANCE_ID", "instance-1")
        monkeypatch.setenv("ZAPI_TOKEN", "token-1")
        settings = Settings(_env_file=None)

        with pytest.raises(ConfigurationError) as exc:
            settings.require_credentials()

        assert exc.value.missing == ["ZAPI_CLIENT_TOKEN", "OPENAI_API_KEY", "OPENAI_ASSISTANT_ID"]
        assert "OPENAI_API_KEY" in str(exc.value)

    def test_complete_credentials(self, mock_env):
        settings = Settings(_env_file=None)
        assert settings.missing_credentials() == []
        settings.require_credentials()


class TestLogging:
    def test_json_formatter_includes_context(self):
        record = logging.LogRecord("martin.orchestrator", logging.INFO, __file__, 1, "Message buffered", None, None)
        record.context = {"sender": "***0000", "event_id": "m1"}

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "martin.orchestrator"
        assert data["message"] == "Message buffered"
        assert data["context"] == {"sender": "***0000", "event_id": "m1"}

    def test_mask_sender(self):
        assert mask_sender("5511999990000") == "***0000"
        assert mask_sender("123") == "123"
        assert mask_sender(None) == "-"
