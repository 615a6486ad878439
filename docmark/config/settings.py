from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    max_upload_size_bytes: int = 50 * 1024 * 1024
    allowed_extensions: list[str] = ["pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx"]

    upload_progress_tick_seconds: float = 0.2
    upload_progress_max_increment: float = 30.0
    upload_progress_ceiling: float = 90.0
    upload_progress_reset_delay_seconds: float = 1.0

    poll_interval_seconds: float = 2.0
    poll_timeout_seconds: float = 300.0
    initial_task_progress: int = 10

    backend_provider: str = "http"
    backend_base_url: str = "http://localhost:3000"
    backend_timeout_seconds: int = 30
    backend_verify_ssl: bool = True
    backend_access_key: str = ""
    backend_secret_key: str = ""
    backend_hmac_algorithm: str = "hmac-sha256"
