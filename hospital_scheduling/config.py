"""Application configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="Hospital Scheduling API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Storage
    appointment_file: str = Field(default="data/appointments.txt", alias="APPOINTMENT_FILE")
    backup_dir: str = Field(default="data/backup", alias="BACKUP_DIR")
    patient_file: str | None = Field(
        default=None,
        alias="PATIENT_FILE",
        description="Optional pipe-delimited patient file used to seed the patient directory",
    )
    doctor_file: str | None = Field(
        default=None,
        alias="DOCTOR_FILE",
        description="Optional pipe-delimited doctor file used to seed the doctor directory",
    )
    field_delimiter: str = Field(default="|", min_length=1, max_length=1, alias="FIELD_DELIMITER")
    comment_marker: str = Field(default="#", min_length=1, alias="COMMENT_MARKER")

    # Appointment IDs
    appointment_id_prefix: str = Field(default="APT", alias="APPOINTMENT_ID_PREFIX")
    appointment_id_width: int = Field(default=3, ge=1, alias="APPOINTMENT_ID_WIDTH")

    # Scheduling
    slot_start_hour: int = Field(default=8, ge=0, le=23, alias="SLOT_START_HOUR")
    # Exclusive: the last slot starts half an hour before this hour
    slot_end_hour: int = Field(default=17, ge=1, le=24, alias="SLOT_END_HOUR")
    slot_minutes: int = Field(default=30, ge=1, le=60, alias="SLOT_MINUTES")
    cancel_window_minutes: int = Field(default=60, ge=0, alias="CANCEL_WINDOW_MINUTES")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
