import os
from pathlib import Path
from dotenv import load_dotenv
load_dotenv()  # reads .env in the project root

class Settings:
    DATA_DIR = Path(os.getenv("DATA_DIR", "./data")).expanduser().resolve()
    DATA_DIR.mkdir(parents=True, exist_ok=True)

    WEB_HOST = os.getenv("WEB_HOST", "0.0.0.0")
    WEB_PORT = int(os.getenv("WEB_PORT", "4000"))
    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS", "http://localhost:3000,http://localhost:5500"
        ).split(",")
        if origin.strip()
    ]
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    AUTH_DB_URL = os.getenv(
        "AUTH_DB_URL", f"sqlite:///{DATA_DIR / 'menotrack.sqlite3'}"
    )
    SESSION_SECRET = os.getenv("SESSION_SECRET", "dev-session-secret")
    SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "24"))
    REMEMBER_ME_TTL_DAYS = int(os.getenv("REMEMBER_ME_TTL_DAYS", "30"))
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    INITIAL_ADMIN_EMAIL = os.getenv("INITIAL_ADMIN_EMAIL", "")
    INITIAL_ADMIN_PASSWORD = os.getenv("INITIAL_ADMIN_PASSWORD", "")

    # Register/login throttling per client address
    AUTH_ATTEMPT_LIMIT = int(os.getenv("AUTH_ATTEMPT_LIMIT", "5"))
    AUTH_ATTEMPT_WINDOW = int(os.getenv("AUTH_ATTEMPT_WINDOW", "900"))

    def resolve_data_path(self, path: str | os.PathLike[str]) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.DATA_DIR / candidate
        return candidate.expanduser().resolve()

settings = Settings()
