from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _parse_cors(cls, v: object) -> list[str]:
        """Accept both a JSON list and a comma-separated string for CORS_ORIGINS."""
        if isinstance(v, str):
            return [o.strip() for o in v.split(",") if o.strip()]
        return v  # type: ignore[return-value]

    # Error reporting
    sentry_dsn: str = ""
    environment: str = "development"

    # Supabase (submissions / challenges)
    supabase_url: str = ""
    supabase_service_key: str = ""

    # Screenshot artifacts (candidate / expected / diff PNGs)
    screenshot_dir: Path = Path(__file__).parent / "screenshots"
    screenshot_url_prefix: str = "/screenshots"

    # Rendering
    viewport_width: int = 1280
    viewport_height: int = 720
    render_timeout_ms: int = 30000  # generous for containerized hosts
    render_settle_ms: int = 500
    chromium_executable_path: str | None = None

    # Pixel diff sensitivity (0-1, lower = stricter)
    pixel_threshold: float = 0.1
    diff_alpha: float = 0.1

    # Evaluation worker
    worker_enabled: bool = True
    worker_poll_interval_sec: float = 5.0
    worker_concurrency: int = 2  # each evaluation holds one browser page

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


settings = Settings()
