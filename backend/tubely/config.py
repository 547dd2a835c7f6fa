"""
Tubely Configuration Management Module

This module provides configuration management for the Tubely platform using
Pydantic Settings. It loads and validates all environment variables required for:
- Application settings (name, environment, debug mode, logging)
- MongoDB connection for video records
- S3/MinIO object storage and local asset storage
- Local JWT authentication
- Upload limits and staging
- External media tools (ffmpeg / ffprobe)

The Settings instance is frozen. The upload pipeline receives it explicitly at
construction instead of reading process-wide state.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuration settings for the Tubely platform.

    This class uses Pydantic Settings to load configuration from environment
    variables and .env files with full type validation.

    Configuration Categories:
    - Application: Core app settings like name, environment, debug mode
    - Auth: JWT signing secret and token parameters
    - MongoDB: Database connection URI and connection pool settings
    - Storage: Local assets root, S3/MinIO credentials and CDN distribution
    - Upload: Body size limits and staging directory
    - Media tools: ffmpeg/ffprobe binaries, timeouts and classification tolerance

    Example usage:
        ```python
        from tubely.config import Settings

        settings = Settings()
        print(f"Storing thumbnails in: {settings.thumbnail_storage}")
        ```
    """

    # =========================================================================
    # Application Settings
    # =========================================================================

    app_name: str = Field(
        default="Tubely",
        description="Application name displayed in API documentation and logs",
    )

    app_env: str = Field(
        default="development",
        description="Application environment (development, staging, production, testing)",
    )

    debug: bool = Field(default=False, description="Enable debug mode with verbose logging")

    log_level: str = Field(
        default="info", description="Logging level (debug, info, warning, error, critical)"
    )

    json_logs: bool = Field(
        default=True, description="Emit structured JSON logs instead of plain text"
    )

    host: str = Field(default="0.0.0.0", description="Host address for the API server to bind to")

    port: int = Field(default=8091, description="Port number for the API server", ge=1, le=65535)

    public_base_url: str | None = Field(
        default=None,
        description="Public base URL of this server, used for locally served assets. "
        "Defaults to http://localhost:<port>",
    )

    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="List of allowed CORS origins for frontend access",
    )

    # =========================================================================
    # Auth Settings
    # =========================================================================

    jwt_secret: str = Field(
        default="development-jwt-secret-change-in-production-32chars",
        description="Secret used to sign and verify access tokens",
        min_length=32,
    )

    jwt_algorithm: str = Field(default="HS256", description="JWT signing algorithm")

    jwt_issuer: str = Field(default="tubely-access", description="Expected JWT issuer claim")

    jwt_expiration_hours: int = Field(
        default=1, description="Access token lifetime in hours", ge=1, le=168
    )

    # =========================================================================
    # MongoDB Configuration
    # =========================================================================

    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI (e.g., mongodb://localhost:27017)",
    )

    mongodb_db_name: str = Field(default="tubely", description="MongoDB database name")

    mongodb_min_pool_size: int = Field(
        default=1, description="Minimum number of connections in MongoDB connection pool", ge=0
    )

    mongodb_max_pool_size: int = Field(
        default=50, description="Maximum number of connections in MongoDB connection pool", ge=1
    )

    # =========================================================================
    # Storage Configuration
    # =========================================================================

    assets_root: str = Field(
        default="assets", description="Directory served under /assets for local thumbnails"
    )

    thumbnail_storage: str = Field(
        default="local", description="Where thumbnails are placed: 'local' or 's3'"
    )

    s3_endpoint_url: str | None = Field(
        default=None, description="S3-compatible endpoint URL for MinIO (None for AWS S3)"
    )

    s3_access_key_id: str | None = Field(
        default=None, description="S3/MinIO access key ID (None uses the default AWS chain)"
    )

    s3_secret_access_key: str | None = Field(
        default=None, description="S3/MinIO secret access key"
    )

    s3_bucket_name: str = Field(default="tubely-media", description="S3 bucket for media")

    s3_region: str = Field(default="us-east-1", description="AWS region for the S3 bucket")

    s3_cf_distribution: str | None = Field(
        default=None,
        description="Public base URL of the CDN distribution in front of the bucket",
    )

    delete_orphaned_blobs: bool = Field(
        default=False,
        description="Best-effort delete of a stored blob when the metadata commit fails",
    )

    # =========================================================================
    # Upload Settings
    # =========================================================================

    max_thumbnail_upload_mb: int = Field(
        default=10, description="Maximum thumbnail request body in megabytes", ge=1
    )

    max_video_upload_mb: int = Field(
        default=1024, description="Maximum video request body in megabytes (1 GiB)", ge=1
    )

    staging_dir: str | None = Field(
        default=None, description="Directory for staged uploads (None uses the system temp dir)"
    )

    stream_chunk_size: int = Field(
        default=1024 * 1024, description="Chunk size used when staging upload streams", ge=1024
    )

    # =========================================================================
    # Media Tool Settings
    # =========================================================================

    ffmpeg_path: str = Field(default="ffmpeg", description="ffmpeg binary used for remuxing")

    ffprobe_path: str = Field(default="ffprobe", description="ffprobe binary used for inspection")

    media_tool_timeout_seconds: float = Field(
        default=300.0, description="Upper bound for a single media tool run", gt=0
    )

    aspect_ratio_tolerance: float = Field(
        default=0.01,
        description="Relative tolerance when matching a video to 16:9 or 9:16",
        gt=0.0,
        lt=0.5,
    )

    # =========================================================================
    # Model Configuration
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"debug", "info", "warning", "error", "critical"}
        normalized = v.lower()
        if normalized not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {', '.join(valid_levels)}")
        return normalized

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate that app_env is a valid environment name."""
        valid_envs = {"development", "staging", "production", "testing"}
        normalized = v.lower()
        if normalized not in valid_envs:
            raise ValueError(f"Invalid app_env '{v}'. Must be one of: {', '.join(valid_envs)}")
        return normalized

    @field_validator("thumbnail_storage")
    @classmethod
    def validate_thumbnail_storage(cls, v: str) -> str:
        """Validate that thumbnail_storage names a known backend."""
        normalized = v.lower()
        if normalized not in {"local", "s3"}:
            raise ValueError(f"Invalid thumbnail_storage '{v}'. Must be 'local' or 's3'")
        return normalized

    @field_validator("jwt_algorithm")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        """Only symmetric algorithms are supported with a shared secret."""
        valid_algorithms = {"HS256", "HS384", "HS512"}
        if v.upper() not in valid_algorithms:
            raise ValueError(
                f"Invalid jwt_algorithm '{v}'. Must be one of: {', '.join(valid_algorithms)}"
            )
        return v.upper()

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string if provided as string."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def max_thumbnail_upload_bytes(self) -> int:
        """Thumbnail body limit in bytes."""
        return self.max_thumbnail_upload_mb * 1024 * 1024

    @property
    def max_video_upload_bytes(self) -> int:
        """Video body limit in bytes."""
        return self.max_video_upload_mb * 1024 * 1024

    @property
    def base_url(self) -> str:
        """Public base URL without a trailing slash."""
        if self.public_base_url:
            return self.public_base_url.rstrip("/")
        return f"http://localhost:{self.port}"

    @property
    def video_base_url(self) -> str:
        """
        Base URL for objects in the media bucket.

        Uses the CDN distribution when configured, otherwise the
        virtual-hosted S3 URL for the bucket (or the MinIO endpoint).
        """
        if self.s3_cf_distribution:
            return self.s3_cf_distribution.rstrip("/")
        if self.s3_endpoint_url:
            return f"{self.s3_endpoint_url.rstrip('/')}/{self.s3_bucket_name}"
        return f"https://{self.s3_bucket_name}.s3.{self.s3_region}.amazonaws.com"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get the global Settings instance.

    Only the HTTP composition root calls this; everything below it receives
    the instance explicitly.

    Returns:
        Settings: The global configuration instance.
    """
    return Settings()
