from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_env: str = "dev"

    # Admin application the console talks to
    api_base_url: str = "http://localhost:3000"
    api_token: str = ""  # Sent as "Authorization: Bearer <token>" when set
    http_timeout_seconds: float = 30.0

    # Job list reconciliation
    job_list_limit: int = 10  # Most recent jobs kept fresh by the poller
    active_poll_interval_seconds: float = 2.0  # While a pending/processing job exists
    idle_poll_interval_seconds: float = 5.0  # Once every listed job is terminal
    reconcile_delay_seconds: float = 1.0  # Second fetch after a submission
    stale_after_failures: int = 3  # Consecutive failed polls before data is stale

    # Import wizard
    preview_row_limit: int = 50  # Rows returned by the validate endpoint
    max_upload_bytes: int = 50 * 1024 * 1024  # Same 50MB cap as the backend

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR
    log_format: str = "json"  # json or text
    enable_request_logging: bool = True

    # Metrics configuration (EMF log lines)
    enable_metrics: bool = True
    metrics_namespace: str = ""  # Defaults to "AdminConsole"

    model_config = {
        "env_prefix": "ADMIN_CONSOLE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
