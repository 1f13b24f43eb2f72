from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    # Storage
    data_dir: Path = Path("./content")
    themes_dir: Path = Path("./themes")

    # Sessions
    session_ttl_seconds: int = Field(default=86400, ge=60)
    cookie_name: str = "authToken"
    cookie_secret: str = "change-me-in-production"

    # Login rate limiting
    login_max_attempts: int = Field(default=5, ge=1)
    login_window_seconds: int = Field(default=900, ge=1)

    # Bootstrap admin (created only when users.json is empty)
    default_admin_username: str = "admin"
    default_admin_password: str = "admin"

    # Theme marketplace (empty URL disables it)
    marketplace_url: str = ""
    marketplace_cache_seconds: int = 300
    marketplace_timeout_seconds: float = 30.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
