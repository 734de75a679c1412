import os
import logging
from dataclasses import dataclass, field
from dotenv import load_dotenv

# ------------------------------------------------------------
# Configuration
# ------------------------------------------------------------

load_dotenv()

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:5174"


def _env_flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    database_url: str = "sqlite:///./sweetshop.db"
    jwt_secret_key: str = "your-secret-key"
    jwt_algorithm: str = "HS256"
    token_expiration_hours: int = 24
    cors_origins: list = field(default_factory=lambda: DEFAULT_CORS_ORIGINS.split(","))
    seed_sample_data: bool = False
    log_level: str = "INFO"
    sqlite_busy_timeout: float = 30.0

    @classmethod
    def from_env(cls):
        """Build settings from environment variables (and a .env file if present)."""
        origins = os.environ.get("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
        return cls(
            database_url=os.environ.get("DATABASE_URL", cls.database_url),
            jwt_secret_key=os.environ.get("JWT_SECRET_KEY", cls.jwt_secret_key),
            jwt_algorithm=os.environ.get("JWT_ALGORITHM", cls.jwt_algorithm),
            token_expiration_hours=int(os.environ.get("TOKEN_EXPIRATION_HOURS", cls.token_expiration_hours)),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            seed_sample_data=_env_flag("SEED_SAMPLE_DATA"),
            log_level=os.environ.get("LOG_LEVEL", cls.log_level).upper(),
            sqlite_busy_timeout=float(os.environ.get("SQLITE_BUSY_TIMEOUT", cls.sqlite_busy_timeout)),
        )


def configure_logging(level="INFO"):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # keep SQL echo off unless explicitly requested
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
