from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "model_ingest"
    db_username: str = "model_ingest"
    db_password: str = "secret"

    background_workers: int = 0
    finalization_workers: int = 2

    temp_dir: str = "/tmp/model-ingest/uploads"
    artifact_dir: str = "/tmp/model-ingest/artifacts"

    single_job_retention_seconds: int = 3600
    multi_job_retention_seconds: int = 7200
    retention_sweep_interval_seconds: int = 60
    message_poll_interval_seconds: float = 0.2
    status_stream_interval_seconds: float = 1.0

    conversion_engine: str = "ifcopenshell"
    memory_limit_mb: int = 0
    memory_check_interval_seconds: float = 0.0
    resource_check_file_mb: int = 100
    resource_check_total_mb: int = 500

    storage_backend: str = "s3"
    storage_endpoint: str = ""
    storage_region: str = "us-east-1"
    storage_bucket: str = "models"
    storage_access_key: str = ""
    storage_secret_key: str = ""
    storage_force_path_style: bool = False
    local_storage_root: str = "/tmp/model-ingest/storage"

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def memory_warning_limit_mb(self) -> int:
        return 8192 if self.is_production else 2048

    @property
    def memory_critical_limit_mb(self) -> int:
        """Resident memory ceiling for one execution unit."""
        if self.memory_limit_mb > 0:
            return self.memory_limit_mb
        return 12288 if self.is_production else 3072

    @property
    def memory_check_interval(self) -> float:
        if self.memory_check_interval_seconds > 0:
            return self.memory_check_interval_seconds
        return 5.0 if self.is_production else 3.0

    @property
    def max_file_size_mb(self) -> int:
        return 5120 if self.is_production else 1024

    @property
    def admission_memory_percent_limit(self) -> int:
        """Host memory use (percent) above which large uploads are refused."""
        return 95 if self.is_production else 80

    @property
    def admission_memory_factor(self) -> int:
        return 3 if self.is_production else 4

    @property
    def admission_available_fraction(self) -> float:
        return 0.9 if self.is_production else 0.7

    @property
    def max_total_upload_size_mb(self) -> int:
        return 10240 if self.is_production else 2048
