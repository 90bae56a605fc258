from functools import lru_cache

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_PART_SIZE = 5 * 1024 * 1024
MIN_UPLOAD_URL_EXPIRES = 60


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    minio_endpoint: str = Field(default="", alias="MINIO_ENDPOINT")
    minio_public_base_url: str = Field(default="", alias="MINIO_PUBLIC_BASE_URL")
    minio_upload_url_expires: int = Field(default=3600, alias="MINIO_UPLOAD_URL_EXPIRES")
    minio_region: str = Field(default="us-east-1", alias="MINIO_REGION")
    minio_access_key: str = Field(default="", alias="MINIO_ACCESS_KEY")
    minio_secret_key: SecretStr = Field(default=SecretStr(""), alias="MINIO_SECRET_KEY")
    minio_bucket: str = Field(default="", alias="MINIO_BUCKET")

    upload_part_size: int = Field(default=MIN_PART_SIZE, ge=MIN_PART_SIZE, alias="UPLOAD_PART_SIZE")
    upload_queue_size: int = Field(default=4, ge=1, alias="UPLOAD_QUEUE_SIZE")
    max_upload_bytes: int = Field(default=2 * 1024 * 1024 * 1024, ge=1, alias="MAX_UPLOAD_BYTES")

    smtp_host: str = Field(default="", alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_secure: bool = Field(default=False, alias="SMTP_SECURE")
    smtp_user: str = Field(default="", alias="SMTP_USER")
    smtp_pass: SecretStr = Field(default=SecretStr(""), alias="SMTP_PASS")
    preview_notify_to: str = Field(default="", alias="PREVIEW_NOTIFY_TO")
    preview_notify_from: str = Field(default="", alias="PREVIEW_NOTIFY_FROM")

    app_base_url: str = Field(
        default="",
        validation_alias=AliasChoices("APP_BASE_URL", "NUXT_PUBLIC_APP_BASE_URL"),
    )

    @property
    def upload_url_expires(self) -> int:
        return max(MIN_UPLOAD_URL_EXPIRES, self.minio_upload_url_expires)


@lru_cache
def get_settings() -> Settings:
    return Settings()
