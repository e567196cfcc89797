"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    SESSION_MAX_AGE_HOURS: int
    COOKIE_SECURE: bool
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    PHASE_CONFIG_DIR: Path
    TEAM_LOGIN_RATE_LIMIT_PER_MIN: int
    TEAM_LOGIN_RATE_LIMIT_WINDOW_SECONDS: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'workshop.db'}")
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.SESSION_MAX_AGE_HOURS = int(os.getenv("SESSION_MAX_AGE_HOURS", "24"))
        default_secure = "false" if self.ENV == "dev" else "true"
        self.COOKIE_SECURE = os.getenv("COOKIE_SECURE", default_secure).lower() == "true"
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.PHASE_CONFIG_DIR = Path(os.getenv("PHASE_CONFIG_DIR", str(BASE / "configs"))).expanduser()
        self.TEAM_LOGIN_RATE_LIMIT_PER_MIN = int(os.getenv("TEAM_LOGIN_RATE_LIMIT_PER_MIN", "20"))
        self.TEAM_LOGIN_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("TEAM_LOGIN_RATE_LIMIT_WINDOW_SECONDS", "60"))
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.SESSION_MAX_AGE_HOURS <= 0:
            raise RuntimeError("SESSION_MAX_AGE_HOURS must be positive")


settings = Settings()
