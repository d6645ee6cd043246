import os
from dotenv import load_dotenv

# Load .env (VS Code terminals sometimes don't inject env vars)
load_dotenv()


def _bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Runtime settings read from the environment."""

    def __init__(self):
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./deals.db")
        self.db_pool_size = int(os.getenv("DB_POOL_SIZE", "5"))
        self.db_max_overflow = int(os.getenv("DB_MAX_OVERFLOW", "10"))
        self.sqlite_busy_timeout = float(os.getenv("SQLITE_BUSY_TIMEOUT", "30"))
        self.redeem_max_retries = int(os.getenv("REDEEM_MAX_RETRIES", "3"))
        self.redeem_retry_backoff_ms = int(os.getenv("REDEEM_RETRY_BACKOFF_MS", "25"))
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.log_json = _bool(os.getenv("LOG_JSON", "false"))
        self.cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
        # accounts allowed to void or look up any vendor's redemptions
        self.admin_user_ids = {u.strip() for u in os.getenv("ADMIN_USER_IDS", "").split(",") if u.strip()}


settings = Settings()
