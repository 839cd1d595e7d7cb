from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str
    # Tokens are issued by the identity service; this service only verifies them
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    REDIS_URL: str = "redis://localhost:6379"
    RATE_LIMIT_ENABLED: bool = True
    BOOKING_RATE_LIMIT_PER_MINUTE: int = 30
    READ_RATE_LIMIT_PER_MINUTE: int = 60

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env")


settings = Settings()
