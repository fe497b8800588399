"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Locate the project root .env file regardless of CWD
_THIS_DIR = Path(__file__).resolve().parent          # sceneflow/
_PROJECT_ROOT = _THIS_DIR.parent                     # repository root
_ENV_FILE = _PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Data directory: queue snapshots, scheduled jobs, exports
    sceneflow_data_dir: str = "./data"

    # Key-value store backend: "file" (default) or "postgres"
    sceneflow_store_backend: str = "file"

    # Database URL for the postgres store backend
    sceneflow_database_url: str | None = None

    # Host UI the automation drives
    sceneflow_target_url: str = "https://labs.google/fx/tools/flow"
    sceneflow_headless: bool = False
    # Persistent browser profile so the host session survives restarts
    sceneflow_browser_profile: str | None = None

    sceneflow_log_level: str = "INFO"

    # CORS origins for the control API (comma-separated)
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    # Bearer token required on /api/* when set
    sceneflow_api_token: str | None = None

    # Server port
    port: int = 8000

    @property
    def data_dir(self) -> Path:
        """Get data directory as Path.

        Relative paths are resolved against the project root (not CWD).
        """
        p = Path(self.sceneflow_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def state_dir(self) -> Path:
        """Directory holding the file-backed key-value store."""
        return self.data_dir / "state"

    @property
    def exports_dir(self) -> Path:
        """Directory for CSV / profile / log exports."""
        return self.data_dir / "exports"

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    def ensure_dirs(self) -> None:
        """Ensure all data directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.exports_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_dirs()
    return settings


class QueueSettings(BaseModel):
    """Settings snapshot carried by a queue run, a profile or a scheduled job."""

    # Generation options applied in the host UI before the run
    model: str = "Veo 3.1 fast"
    ratio: str = "Ngang"
    count: str = "1"

    batch_size: int = Field(default=4, ge=1)
    rest_time: int = Field(default=60, ge=0)  # seconds
    timeout: int = Field(default=300, ge=0)  # seconds, informational per-task ceiling
    queue_strategy: str = "fifo"  # fifo | priority | short-first | shuffle
    prompt_style: str = "none"
    auto_download: bool = True

    rate_per_minute: int = Field(default=12, ge=1)
    rate_per_hour: int = Field(default=120, ge=1)
    max_retries: int = Field(default=3, ge=0)

    notify_complete: bool = True
    notify_error: bool = True

    # Pacing (seconds)
    dispatch_delay: float = 8.0
    failure_delay: float = 3.0
    defer_delay: float = 5.0
    monitor_interval: float = 3.0
    image_settle_delay: float = 30.0
