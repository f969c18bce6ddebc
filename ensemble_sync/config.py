from pydantic import field_validator
from pydantic_settings import BaseSettings

SUPPORTED_ARITIES = (3, 4)


class Settings(BaseSettings):
    # Database (SQLite by default, no install required)
    database_url: str = "sqlite+aiosqlite:///./ensemble_sync.db"

    # Presentation store backend: "database" or "json"
    store_backend: str = "database"

    # Local file storage (uploaded images, JSON store)
    storage_dir: str = "./data"

    # Key of the single live presentation row all displays poll
    live_state_key: str = "default"

    # Image slots per slide, one per physical screen
    slide_arity: int = 3

    # App
    cors_origins: list[str] = ["http://localhost:3000"]
    debug: bool = False

    # Prefix for public image URLs ("" serves relative /api/files/... URLs)
    public_base_url: str = ""

    # Clients (control panel, displays)
    api_base_url: str = "http://localhost:8000"
    poll_interval_ms: int = 500
    request_timeout_secs: float = 5.0
    crossfade_seconds: float = 0.5
    library_refresh_secs: float = 30.0

    model_config = {
        "env_prefix": "ENSEMBLE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("slide_arity")
    @classmethod
    def _check_arity(cls, value: int) -> int:
        if value not in SUPPORTED_ARITIES:
            raise ValueError(f"slide_arity must be one of {SUPPORTED_ARITIES}, got {value}")
        return value

    @field_validator("store_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        if value not in ("database", "json"):
            raise ValueError(f"Unknown store backend: {value}")
        return value

    @field_validator("poll_interval_ms")
    @classmethod
    def _check_interval(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("poll_interval_ms must be positive")
        return value


settings = Settings()
