"""Configuration management for droot."""

import shlex
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pull configuration settings.

    Every field can be set through a ``DROOT_``-prefixed environment variable
    or a ``.env`` file. AWS fields also honour the standard ``AWS_*`` names.
    """

    model_config = SettingsConfigDict(
        env_prefix="DROOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Observability
    log_level: str = Field("INFO", description="Log level")
    log_format: str = Field("console", description="'json' or 'console'")
    metrics_textfile: Optional[str] = Field(
        None,
        description="Write pull metrics to this Prometheus textfile",
    )

    # Transient storage
    tmp_dir: Optional[str] = Field(
        None,
        description="Directory for droot_gzip*/droot_raw* scratch paths (default: system temp dir)",
    )

    # AWS Configuration
    aws_region: Optional[str] = Field(
        None, validation_alias=AliasChoices("DROOT_AWS_REGION", "AWS_REGION", "AWS_DEFAULT_REGION")
    )
    aws_access_key_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("DROOT_AWS_ACCESS_KEY_ID", "AWS_ACCESS_KEY_ID")
    )
    aws_secret_access_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("DROOT_AWS_SECRET_ACCESS_KEY", "AWS_SECRET_ACCESS_KEY")
    )
    s3_endpoint_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("DROOT_S3_ENDPOINT_URL", "S3_ENDPOINT_URL")
    )

    # Limits
    max_archive_size_mb: int = Field(10240, ge=1, description="Reject archives larger than this")
    download_chunk_size: int = Field(64 * 1024, ge=1024)

    # Deployment
    rsync_path: str = Field("rsync", description="rsync binary used for syncing trees")
    rsync_options: str = Field("-aH --delete", description="Options passed to rsync before the paths")
    create_destination: bool = Field(
        True,
        description="Create a missing destination on first mirror-sync instead of failing",
    )

    @field_validator("log_format")
    @classmethod
    def check_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v

    @property
    def rsync_options_list(self) -> List[str]:
        """Get rsync options as an argument list."""
        return shlex.split(self.rsync_options)

    @property
    def max_archive_size_bytes(self) -> int:
        return self.max_archive_size_mb * 1024 * 1024
