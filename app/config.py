from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # storage
    store_backend: Literal["sql", "file", "memory"] = "sql"
    database_url: str = "sqlite:///./data/colorbot.db"
    data_dir: str = "./data"
    log_level: str = "INFO"

    # messaging gateway
    messaging_provider: Literal["aisensy", "meta"] = "aisensy"
    aisensy_api_key: str = ""
    aisensy_base_url: str = "https://backend.aisensy.com/campaign/t1/api/v2"
    aisensy_campaign_name: str = "korean_color_analysis"
    meta_verify_token: str = ""
    meta_access_token: str = ""
    meta_phone_number_id: str = ""
    messaging_timeout_seconds: float = 30.0

    # image analysis
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash-latest"
    analysis_timeout_seconds: float = 60.0
    analysis_watchdog_seconds: float = 180.0

    # payments
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""
    payment_timeout_seconds: float = 20.0
    guide_price_minor_units: int = 69900
    guide_currency: str = "INR"
    # A user keeps a single pending order unless this is switched on.
    allow_multiple_pending_orders: bool = False
    public_base_url: str = "https://your-domain.com"

    # background tasks
    background_tasks_enabled: bool = True
    flush_interval_seconds: float = 300.0
    cleanup_interval_seconds: float = 86400.0
    watchdog_interval_seconds: float = 30.0
    payment_poll_interval_seconds: float = 120.0
    payment_poll_min_age_seconds: float = 60.0
    session_retention_days: int = 30
    order_retention_days: int = 7

    # inbound dedup
    dedup_ttl_seconds: float = 86400.0
    dedup_max_entries: int = 10000

    # ops
    admin_token: str = ""
    alert_bot_token: str = ""
    alert_chat_id: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
