from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_ENV: str = "development"
    PORT: int = 5000
    ALLOWED_ORIGINS: str = "http://127.0.0.1:3000,http://localhost:3000"
    ADMIN_API_KEY: str | None = None
    REDIS_URL: str | None = None
    LOG_LEVEL: str = "INFO"

    # chain
    RPC_URL: str = "http://127.0.0.1:8545"
    PRIVATE_KEY: str | None = None
    CONTRACT_ADDRESS: str | None = None
    CHAIN_ID: int | None = None
    CLAIM_AMOUNT_ETHER: str = "0.05"
    CONFIRMATION_TIMEOUT_SEC: float = 120.0
    EXPLORER_API_URL: str | None = None
    EXPLORER_API_KEY: str | None = None

    # cooldown: "local" (process memory) or "chain" (contract is the source of truth)
    COOLDOWN_MODE: str = "local"
    COOLDOWN_SECONDS: int = 24 * 60 * 60

    # eligibility
    MIN_TX_COUNT: int = 3
    MIN_ACCOUNT_AGE_DAYS: float = 0

    # stats
    STATS_WINDOW_MIN: int = 60

    # rate limit
    RATE_LIMIT_ENABLED: bool = True
    PUBLIC_RATE_LIMIT: str = "30/minute"
    ADMIN_RATE_LIMIT: str = "20/minute"


settings = Settings()
