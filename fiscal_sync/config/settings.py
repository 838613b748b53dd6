from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "localhost"
    db_port: int = 5432
    db_database: str = "fiscal_sync"
    db_username: str = "fiscal_sync"
    db_password: str = "secret"
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10

    max_upload_file_bytes: int = 5 * 1024 * 1024
    max_upload_files: int = 50
    max_xml_bytes: int = 10 * 1024 * 1024
    ingestion_max_workers: int = 1

    sync_lookback_days: int = 30
    sync_overlap_days: int = 1
    recovery_lookback_days: int = 30
    sync_poll_interval_seconds: int = 60
    sync_max_concurrent_tenants: int = 4
    sync_timezone: str = "America/Sao_Paulo"
    sync_stale_run_minutes: int = 60

    nsdocs_base_url: str = "https://api.nsdocs.com.br/v2"
    nsdocs_timeout_seconds: int = 30
    nsdocs_page_size: int = 100
    nsdocs_max_pages: int = 50

    sefaz_production: bool = True
    sefaz_timeout_seconds: int = 60
    sefaz_max_batches: int = 50
    sefaz_verify_ssl: bool = True
    sefaz_default_state_code: str = "50"
