"""Application settings."""

from enum import StrEnum

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RepositoryBackend(StrEnum):
    """Available persistence adapters for archive records and jobs."""

    IN_MEMORY = "in_memory"
    POSTGRES = "postgres"


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "Tape Archive Worker"
    api_prefix: str = ""
    host: str = "0.0.0.0"
    port: int = 8080
    worker_enabled: bool = True

    changer_device: str = "/dev/sg2"
    drive_device: str = "/dev/sg1"
    drive_index: int = 0
    mount_point: str = "/mnt/ltfs"
    use_sudo: bool = True
    command_timeout_seconds: float = 600.0
    command_settle_seconds: float = 5.0
    unmount_busy_attempts: int = 10
    busy_retry_delay_seconds: float = 5.0
    mount_helper_poll_seconds: float = 5.0
    mount_helper_exit_timeout_seconds: float = 600.0

    cache_root: str = "/srv/tape-cache"
    same_host_hash_verification: bool = True

    local_host_name: str | None = None
    local_host_address: str | None = None
    scp_legacy_protocol: bool = True
    ssh_connect_timeout_seconds: int = 5

    job_max_attempts: int = 3
    job_backoff_base_seconds: float = 1.0
    job_lease_seconds: float = 300.0
    job_heartbeat_seconds: float = 60.0
    dispatcher_poll_seconds: float = 1.0
    dispatcher_min_job_interval_seconds: float = 1.0
    repeated_failure_alert_threshold: int = 3

    cache_sweeper_enabled: bool = True
    cache_retention_days: float = 7.0
    cache_sweep_interval_hours: float = 24.0

    repository_backend: RepositoryBackend = RepositoryBackend.IN_MEMORY
    postgres_dsn: str | None = None
    postgres_pool_min_size: int = 1
    postgres_pool_max_size: int = 10

    notification_endpoint: str | None = None
    notification_timeout_seconds: float = 10.0

    @model_validator(mode="after")
    def validate_repository_settings(self) -> "Settings":
        """Ensure backend-specific settings are valid."""

        if self.repository_backend == RepositoryBackend.POSTGRES and not self.postgres_dsn:
            raise ValueError(
                "TAPE_WORKER_POSTGRES_DSN is required when "
                "TAPE_WORKER_REPOSITORY_BACKEND=postgres."
            )
        if self.postgres_pool_min_size < 1:
            raise ValueError("TAPE_WORKER_POSTGRES_POOL_MIN_SIZE must be >= 1.")
        if self.postgres_pool_max_size < self.postgres_pool_min_size:
            raise ValueError(
                "TAPE_WORKER_POSTGRES_POOL_MAX_SIZE must be >= "
                "TAPE_WORKER_POSTGRES_POOL_MIN_SIZE."
            )
        if self.notification_timeout_seconds <= 0:
            raise ValueError("TAPE_WORKER_NOTIFICATION_TIMEOUT_SECONDS must be > 0.")
        return self

    @model_validator(mode="after")
    def validate_device_settings(self) -> "Settings":
        """Ensure drive timing and retry settings are usable."""

        if not self.mount_point.startswith("/"):
            raise ValueError("TAPE_WORKER_MOUNT_POINT must be an absolute path.")
        if self.drive_index < 0:
            raise ValueError("TAPE_WORKER_DRIVE_INDEX must be >= 0.")
        if self.command_timeout_seconds <= 0:
            raise ValueError("TAPE_WORKER_COMMAND_TIMEOUT_SECONDS must be > 0.")
        if self.command_settle_seconds < 0:
            raise ValueError("TAPE_WORKER_COMMAND_SETTLE_SECONDS must be >= 0.")
        if self.unmount_busy_attempts < 1:
            raise ValueError("TAPE_WORKER_UNMOUNT_BUSY_ATTEMPTS must be >= 1.")
        if self.busy_retry_delay_seconds < 0:
            raise ValueError("TAPE_WORKER_BUSY_RETRY_DELAY_SECONDS must be >= 0.")
        if self.mount_helper_poll_seconds <= 0:
            raise ValueError("TAPE_WORKER_MOUNT_HELPER_POLL_SECONDS must be > 0.")
        if self.mount_helper_exit_timeout_seconds < self.mount_helper_poll_seconds:
            raise ValueError(
                "TAPE_WORKER_MOUNT_HELPER_EXIT_TIMEOUT_SECONDS must be >= "
                "TAPE_WORKER_MOUNT_HELPER_POLL_SECONDS."
            )
        return self

    @model_validator(mode="after")
    def validate_worker_settings(self) -> "Settings":
        """Ensure queue, dispatcher and sweeper settings are usable."""

        if self.ssh_connect_timeout_seconds < 1:
            raise ValueError("TAPE_WORKER_SSH_CONNECT_TIMEOUT_SECONDS must be >= 1.")
        if self.job_max_attempts < 1:
            raise ValueError("TAPE_WORKER_JOB_MAX_ATTEMPTS must be >= 1.")
        if self.job_backoff_base_seconds < 0:
            raise ValueError("TAPE_WORKER_JOB_BACKOFF_BASE_SECONDS must be >= 0.")
        if self.job_lease_seconds <= 0:
            raise ValueError("TAPE_WORKER_JOB_LEASE_SECONDS must be > 0.")
        if self.job_heartbeat_seconds <= 0:
            raise ValueError("TAPE_WORKER_JOB_HEARTBEAT_SECONDS must be > 0.")
        if self.job_heartbeat_seconds > self.job_lease_seconds:
            raise ValueError(
                "TAPE_WORKER_JOB_HEARTBEAT_SECONDS must be <= TAPE_WORKER_JOB_LEASE_SECONDS."
            )
        if self.dispatcher_poll_seconds <= 0:
            raise ValueError("TAPE_WORKER_DISPATCHER_POLL_SECONDS must be > 0.")
        if self.dispatcher_min_job_interval_seconds < 0:
            raise ValueError("TAPE_WORKER_DISPATCHER_MIN_JOB_INTERVAL_SECONDS must be >= 0.")
        if self.repeated_failure_alert_threshold < 1:
            raise ValueError("TAPE_WORKER_REPEATED_FAILURE_ALERT_THRESHOLD must be >= 1.")
        if self.cache_retention_days <= 0:
            raise ValueError("TAPE_WORKER_CACHE_RETENTION_DAYS must be > 0.")
        if self.cache_sweep_interval_hours <= 0:
            raise ValueError("TAPE_WORKER_CACHE_SWEEP_INTERVAL_HOURS must be > 0.")
        return self

    model_config = SettingsConfigDict(env_prefix="TAPE_WORKER_", extra="ignore")


__all__ = ["RepositoryBackend", "Settings"]
