from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str
    JWT_SECRET: str
    LOG_LEVEL: str = "INFO"
    SLOW_REQUEST_THRESHOLD_MS: int = 1000  # 1 segundo
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # Serialización por libro y feed de eventos
    LOCK_TIMEOUT_SECONDS: float = 5.0
    FANOUT_QUEUE_SIZE: int = 100
    EVENT_POLL_SECONDS: float = 1.0

    BUILTIN_ADMIN_USERNAME: str = "admin"
    BUILTIN_ADMIN_EMAIL: str = "admin@library.local"
    BUILTIN_ADMIN_PASSWORD: str = "admin123"

    class Config:
        env_file = ".env"


settings = Settings()
