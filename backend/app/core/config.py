import os
from typing import List, Dict

from dotenv import load_dotenv
from pydantic_settings import BaseSettings
from pydantic import computed_field

load_dotenv()


class Configs(BaseSettings):
    # base
    ENV: str = os.getenv("ENV", "dev")
    API: str = "/api"
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "streamgate-api"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    ENV_DATABASE_MAPPER: Dict[str, str] = {
        "prod": "streamgate",
        "stage": "stage-streamgate",
        "dev": "dev-streamgate",
        "test": "test-streamgate",
    }
    DB_ENGINE_MAPPER: Dict[str, str] = {
        "postgresql": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    # auth
    SECRET_KEY: str = os.getenv("SECRET_KEY", "")
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 1 day

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    # Peers whose X-Forwarded-For is trusted for the viewer IP
    FORWARDED_ALLOW_IPS: str = os.getenv("FORWARDED_ALLOW_IPS", "127.0.0.1")

    # database
    DB: str = os.getenv("DB", "postgresql")
    DB_USER: str = os.getenv("DB_USER", "")
    DB_PASSWORD: str = os.getenv("DB_PASSWORD", "")
    DB_HOST: str = os.getenv("DB_HOST", "localhost")
    DB_PORT: str = os.getenv("DB_PORT", "5432")
    DB_ECHO: bool = False

    DATABASE_URI_FORMAT: str = "{db_engine}://{user}:{password}@{host}:{port}/{database}"

    # Support both DATABASE_URL (from env) and DATABASE_URI (constructed)
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    # find query
    PAGE: int = 1
    PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # streaming admission
    STREAMING_DEFAULT_MAX_CONCURRENT: int = 2
    STREAMING_HEARTBEAT_TIMEOUT_SECONDS: int = 15
    STREAMING_VALIDATION_GRACE_FACTOR: int = 2
    STREAMING_SESSION_EXPIRY_MINUTES: int = 30

    @computed_field
    @property
    def DB_ENGINE(self) -> str:
        return self.DB_ENGINE_MAPPER.get(self.DB, "postgresql+asyncpg")

    @computed_field
    @property
    def DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return self.DATABASE_URI_FORMAT.format(
            db_engine=self.DB_ENGINE,
            user=self.DB_USER,
            password=self.DB_PASSWORD,
            host=self.DB_HOST,
            port=self.DB_PORT,
            database=self.ENV_DATABASE_MAPPER.get(self.ENV, "dev-streamgate"),
        )

    class Config:
        case_sensitive = True


class TestConfigs(Configs):
    ENV: str = "test"
    SECRET_KEY: str = "test-secret"
    DATABASE_URL: str = "sqlite+aiosqlite://"


configs = Configs()
