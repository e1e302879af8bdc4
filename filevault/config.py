import json
import os


class Settings:
    """Application settings"""
    def __init__(self):
        self.app_name: str = os.getenv("APP_NAME", "FileVault Upload Server")
        self.app_version: str = os.getenv("APP_VERSION", "1.0.0")
        self.debug: bool = os.getenv("DEBUG", "false").lower() == "true"
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "8000"))

        # API settings
        self.api_prefix: str = os.getenv("API_PREFIX", "/api")

        # Logging settings
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")

        # Development settings
        cors_origins_str = os.getenv("CORS_ORIGINS", '["http://localhost:3000", "http://localhost:8080"]')
        try:
            self.cors_origins = json.loads(cors_origins_str) if cors_origins_str.startswith('[') else ["*"]
        except (json.JSONDecodeError, ValueError):
            self.cors_origins = ["*"]

        # Storage locations
        self.upload_base_dir: str = os.getenv("UPLOAD_BASE_DIR", "/tmp/filevault/chunks")
        self.storage_dir: str = os.getenv("STORAGE_DIR", "/tmp/filevault/files")
        self.database_path: str = os.getenv("DATABASE_PATH", "/tmp/filevault/filevault.db")

        # Upload settings. chunk_size_bytes is both the client split size and
        # the small/large cutoff: files at or below it use the direct path.
        self.chunk_size_bytes: int = int(os.getenv("CHUNK_SIZE_BYTES", str(1024 * 1024)))
        self.max_chunk_size_mb: int = int(os.getenv("MAX_CHUNK_SIZE_MB", "64"))
        self.max_upload_size_mb: int = int(os.getenv("MAX_UPLOAD_SIZE_MB", "100"))

        # Client retry settings
        self.max_chunk_retries: int = int(os.getenv("MAX_CHUNK_RETRIES", "3"))
        self.retry_backoff_seconds: float = float(os.getenv("RETRY_BACKOFF_SECONDS", "1.0"))
        self.request_timeout_seconds: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))

        # Session sweeping
        self.session_max_age_seconds: float = float(os.getenv("SESSION_MAX_AGE_SECONDS", "3600"))
        self.sweep_interval_seconds: float = float(os.getenv("SWEEP_INTERVAL_SECONDS", "60"))

    @property
    def max_chunk_size_bytes(self) -> int:
        return self.max_chunk_size_mb * 1024 * 1024

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


# Global settings instance
settings = Settings()
