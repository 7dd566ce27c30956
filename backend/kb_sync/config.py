import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

DATA_DIR = Path(__file__).resolve().parent / "data"


class Settings(BaseSettings):
    nuclia_api_url: str = Field("https://nuclia.cloud/api", alias="NUCLIA_API_URL")
    nuclia_api_key: Optional[str] = Field(None, alias="NUCLIA_API_KEY")
    nuclia_default_kb: Optional[str] = Field(None, alias="NUCLIA_DEFAULT_KB")
    nuclia_insecure_skip_tls: bool = Field(False, alias="NUCLIA_INSECURE_SKIP_TLS")
    persist_frontend_url: str = Field("http://localhost:3000", alias="NUCLIA_PERSIST_FRONTEND_URL")
    persist_secret: Optional[str] = Field(None, alias="NUCLIA_PERSIST_SECRET")
    mapping_path: Path = Field(DATA_DIR / "kb-mapping.json", alias="KB_SYNC_MAPPING_PATH")
    dead_letter_path: Optional[Path] = Field(None, alias="KB_SYNC_DEAD_LETTER_PATH")
    max_retries: int = Field(3, ge=0, alias="KB_SYNC_MAX_RETRIES")
    retry_delay_seconds: float = Field(1.0, ge=0, alias="KB_SYNC_RETRY_DELAY_SECONDS")
    http_timeout_seconds: float = Field(30.0, gt=0, alias="KB_SYNC_HTTP_TIMEOUT")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid kb-sync configuration: {exc}") from exc
