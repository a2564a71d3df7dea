import os
from pathlib import Path
from dotenv import load_dotenv
load_dotenv()  # reads .env in the project root

class Settings:
    DATA_DIR = Path(os.getenv("DATA_DIR", "./data")).expanduser().resolve()

    WEB_HOST = os.getenv("WEB_HOST", "0.0.0.0")
    WEB_PORT = int(os.getenv("WEB_PORT", "8000"))
    PUBLIC_BASE = os.getenv("PUBLIC_BASE", "http://localhost:8000")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL = os.getenv(
        "DATABASE_URL", f"sqlite:///{DATA_DIR / 'todo.sqlite3'}"
    )

    # ------------------------------------------------------------------
    # Sessions and flash messages ---------------------------------------
    SESSION_BACKEND = os.getenv("SESSION_BACKEND", "memory")
    SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", str(12 * 3600)))
    SESSION_SLIDING_EXPIRY = os.getenv("SESSION_SLIDING_EXPIRY", "1") == "1"
    FLASH_HMAC_KEY = os.getenv("FLASH_HMAC_KEY", "dev-flash-hmac-key")
    FLASH_MAX_AGE_SECONDS = int(os.getenv("FLASH_MAX_AGE_SECONDS", "300"))

    # ------------------------------------------------------------------
    # Credentials -------------------------------------------------------
    HASHER_MAX_WORKERS = int(os.getenv("HASHER_MAX_WORKERS", "4"))
    LOGIN_ATTEMPT_LIMIT = int(os.getenv("LOGIN_ATTEMPT_LIMIT", "5"))
    LOGIN_ATTEMPT_WINDOW = int(os.getenv("LOGIN_ATTEMPT_WINDOW", "300"))
    LOGIN_BACKOFF_SECONDS = int(os.getenv("LOGIN_BACKOFF_SECONDS", "900"))
    HOUSEKEEPING_INTERVAL_SECONDS = float(os.getenv("HOUSEKEEPING_INTERVAL_SECONDS", "300"))

    def resolve_data_path(self, path: str | os.PathLike[str]) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.DATA_DIR / candidate
        return candidate.expanduser().resolve()

    @property
    def cookies_secure(self) -> bool:
        return self.PUBLIC_BASE.startswith("https://")

settings = Settings()
