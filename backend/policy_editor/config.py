"""Application configuration via environment variables."""
from pathlib import Path

from pydantic_settings import BaseSettings

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    app_name: str = "Policy Editor"
    debug: bool = True
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    # Optional JSON overrides for the template catalog and node display table
    catalog_path: Path | None = None
    display_overrides_path: Path | None = None

    model_config = {"env_prefix": "POLICY_EDITOR_"}


settings = Settings()
