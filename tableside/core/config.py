import json
import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Tableside API"
    backend_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:3000"
    environment: str = "local"
    backend_cors_origins_raw: str = ""  # Comma-separated or JSON array

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "allow",
    }

    @property
    def backend_cors_origins(self) -> list[str]:
        """Parse CORS origins from raw string."""
        raw = os.getenv("BACKEND_CORS_ORIGINS", self.backend_cors_origins_raw).strip()
        if not raw:
            return ["http://localhost:3000", "http://127.0.0.1:3000"]
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            except ValueError:
                pass
        return [item.strip() for item in raw.split(",") if item.strip()]

    @property
    def admin_phone_numbers(self) -> set[str]:
        return {item.strip() for item in self.admin_phone_numbers_raw.split(",") if item.strip()}

    # Database: sqlite+aiosqlite:///./tableside.db (dev) | postgresql+asyncpg://... (prod)
    database_dsn: str = "sqlite+aiosqlite:///./tableside.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800
    db_pool_timeout: int = 30

    # Per-diner key-value state (cart, wishlist, last tab, session user)
    redis_dsn: str = "redis://localhost:6379/0"
    local_store_redis_enabled: bool = True
    local_store_ttl_seconds: int = 60 * 60 * 24 * 30

    session_expire_minutes: int = 60 * 24 * 30
    # SECURITY: override via JWT_SECRET_KEY env var
    jwt_secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"

    rate_limit_enabled: bool = True
    rate_limit_requests: int = 10
    rate_limit_window_seconds: int = 60
    rate_limit_login_requests: int = 5

    log_level: str = "INFO"
    log_file: str = ""

    # Comma-separated phone numbers allowed into /admin; empty lets any signed-in diner in
    admin_phone_numbers_raw: str = ""

    default_room: str = "chat"
    seed_menu: bool = True

    # Chat notification grouping and presence timings
    group_window_ms: int = 1000
    new_message_window_s: float = 2.0
    typing_ttl_ms: int = 5000
    typing_idle_ms: int = 1500
    typing_blur_ms: int = 1000
    typing_ceiling_ms: int = 5000
    ws_ping_interval_s: int = 30

    # Read-through cache TTLs
    products_cache_ttl: int = 5 * 60
    users_cache_ttl: int = 10 * 60
    orders_cache_ttl: int = 2 * 60

    tax_rate: float = 0.08


settings = Settings()
