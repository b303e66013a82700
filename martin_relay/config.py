from typing import List, Optional

from pydantic_settings import BaseSettings

from martin_relay.errors import ConfigurationError

REQUIRED_CREDENTIALS = (
    "zapi_instance_id",
    "zapi_token",
    "zapi_client_token",
    "openai_api_key",
    "openai_assistant_id",
)


class Settings(BaseSettings):
    # Outbound gateway (Z-API)
    zapi_instance_id: Optional[str] = None
    zapi_token: Optional[str] = None
    zapi_client_token: Optional[str] = None
    zapi_api_url: str = "https://api.z-api.io"

    # Completion backend (OpenAI Assistants)
    openai_api_key: Optional[str] = None
    openai_assistant_id: Optional[str] = None
    openai_api_base: str = "https://api.openai.com/v1"

    # Orchestration
    debounce_seconds: float = 30.0
    run_poll_interval_seconds: float = 1.0
    run_max_wait_seconds: float = 120.0
    http_timeout_seconds: float = 30.0

    # Retention of per-process state
    dedup_ttl_seconds: int = 86400
    dedup_max_entries: int = 100_000
    session_ttl_seconds: int = 7 * 86400
    session_max_entries: int = 10_000
    # Text stranded by a trigger that found its sender busy expires after this
    buffer_ttl_seconds: int = 3600

    # Stage classifier vocabulary (matched case-insensitively against the reply)
    handoff_phrases: List[str] = ["VOU_GERAR_PRE_PEDIDO", "pré-pedido", "pre-pedido"]
    contact_name_words: List[str] = ["nome", "name"]
    contact_phone_words: List[str] = ["telefone", "phone"]

    # Sent to the customer when the reply was only a pre-order block
    pre_order_confirmation: str = "Seu pré-pedido foi registrado. Em breve entraremos em contato."

    # Operator
    admin_phone: Optional[str] = None
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    def missing_credentials(self) -> list[str]:
        return [name.upper() for name in REQUIRED_CREDENTIALS if not getattr(self, name)]

    def require_credentials(self) -> None:
        missing = self.missing_credentials()
        if missing:
            raise ConfigurationError(missing)


def get_settings() -> Settings:
    return Settings()
