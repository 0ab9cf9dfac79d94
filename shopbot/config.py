from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./shopbot.db"
    debug: bool = False
    log_level: str = "INFO"
    cors_allow_origins: str = "*"

    # Identity of the single administrator sending commands over WhatsApp
    admin_number: str = ""
    # Bearer token for the administration HTTP API
    api_token: str = ""

    default_company_id: str = "babystepsbots"

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    ai_global: str = "on"
    ai_lite_daily_cap: int = 40
    ai_pro_daily_cap: int = 120
    ai_min_interval_seconds: float = 6.0
    ai_rate_limit_consumes_quota: bool = True
    ai_history_lite: int = 6
    ai_history_pro: int = 12
    ai_max_tokens: int = 400
    llm_timeout_seconds: float = 8.0

    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    notify_timeout_seconds: float = 8.0

    order_id_prefix: str = "PED-"
    order_id_max_attempts: int = 5
    turn_max_attempts: int = 3

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
