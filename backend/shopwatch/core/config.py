from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central settings object.
    Read once at startup from env vars; locally you can use backend/.env.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Storage
    DATABASE_URL: str = "sqlite+aiosqlite:///./shopwatch.db"

    # Live offer search
    ENABLE_WEB_SEARCH_OFFERS: bool = True
    WEB_SEARCH_REQUEST_TIMEOUT_SECONDS: float = 5.5
    WEB_SEARCH_RETAILER_LIMIT: int = 4

    # SerpApi provider
    ENABLE_SERPAPI: bool = True
    SERPAPI_API_KEY: str = ""
    SERPAPI_BASE_URL: str = "https://serpapi.com"
    SERPAPI_ENGINE: str = "google"
    SERPAPI_COUNTRY: str = "us"
    SERPAPI_LANGUAGE: str = "en"
    SERPAPI_REQUEST_TIMEOUT_SECONDS: float = 12.0
    SERPAPI_CACHE_TTL_SECONDS: float = 300.0
    SERPAPI_CACHE_MAX_ENTRIES: int = 500

    # Watchlist / alerts
    DEFAULT_PCT_DROP_THRESHOLD: int = 15
    PRICE_TICK_INTERVAL_SECONDS: int = 0  # 0 = only on demand

    # Shared remote watchlist mirror
    ENABLE_SHARED_REMOTE_WATCHLIST_SYNC: bool = False
    SHARED_REMOTE_WATCHLIST_BASE_URL: str = ""
    SHARED_REMOTE_WATCHLIST_TIMEOUT_SECONDS: float = 7.0

    # Logging
    LOG_LEVEL: str = "INFO"

    # Versioning
    APP_VERSION: str = "0.1.0"
    BUILD_ID: str = "dev"


# ✅ MUST EXIST: other modules import this
settings = Settings()
