from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Broker Back-Office API"
    DEBUG: bool = False
    ENV: str = "production"
    
    # Server
    PORT: int = 8000
    
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://backoffice_user:change_me@db:5432/backoffice_db"
    DATABASE_URL_SYNC: str = "postgresql://backoffice_user:change_me@db:5432/backoffice_db"
    
    # Security
    SECRET_KEY: str = "change-me-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    JWT_ISSUER: str = "broker-backoffice"
    JWT_AUDIENCE: str = "broker-backoffice-admin"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    
    # Login throttling (per client IP)
    LOGIN_RATE_LIMIT: int = 10
    LOGIN_RATE_WINDOW_SECONDS: int = 60
    # Comma-separated proxy addresses whose X-Forwarded-For / X-Real-IP headers are honoured
    TRUSTED_PROXIES: str = ""
    
    # Paging
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 10000
    
    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    
    # CORS
    # Comma-separated list, overridable via CORS_ORIGINS env var
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"
    
    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS string into a list of origins."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def trusted_proxies_list(self) -> list[str]:
        return [proxy.strip() for proxy in self.TRUSTED_PROXIES.split(",") if proxy.strip()]
    
    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
