import logging
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from errors import ConfigError


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def parse_cors_origins(value: Optional[str]) -> List[str]:
    """Parse a comma-separated origin list, '*' when unset"""
    if not value:
        return ["*"]
    return [origin.strip() for origin in value.split(",") if origin.strip()]


class Settings(BaseModel):
    """Runtime configuration handed to the services at construction time."""

    jwt_secret: str = Field(..., min_length=1)
    jwt_algorithm: str = "HS256"
    jwt_expires_in_seconds: int = Field(86400, gt=0)
    bcrypt_rounds: int = Field(10, ge=4, le=31)
    reset_token_expires_in_seconds: int = Field(3600, gt=0)

    database_url: Optional[str] = None
    database_name: str = "school_portal"

    email_host: Optional[str] = None
    email_port: int = 587
    email_username: Optional[str] = None
    email_password: Optional[str] = None
    email_from: Optional[str] = None
    email_from_name: str = "StudyHabit College"

    frontend_url: str = "http://localhost:5173"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        secret = os.getenv("JWT_SECRET")
        if not secret:
            raise ConfigError("JWT_SECRET must be set")
        try:
            return cls._build(secret)
        except ValidationError as e:
            bad = ", ".join(str(err["loc"][0]).upper() for err in e.errors() if err.get("loc"))
            raise ConfigError(f"Invalid configuration: {bad or e}")

    @classmethod
    def _build(cls, secret: str) -> "Settings":
        return cls(
            jwt_secret=secret,
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            jwt_expires_in_seconds=_int_env("JWT_EXPIRES_IN_SECONDS", 86400),
            bcrypt_rounds=_int_env("BCRYPT_ROUNDS", 10),
            reset_token_expires_in_seconds=_int_env("RESET_TOKEN_EXPIRES_IN_SECONDS", 3600),
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME", "school_portal"),
            email_host=os.getenv("EMAIL_HOST"),
            email_port=_int_env("EMAIL_PORT", 587),
            email_username=os.getenv("EMAIL_USERNAME"),
            email_password=os.getenv("EMAIL_PASSWORD"),
            email_from=os.getenv("EMAIL_FROM"),
            email_from_name=os.getenv("EMAIL_FROM_NAME", "StudyHabit College"),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173"),
            cors_origins=parse_cors_origins(os.getenv("CORS_ORIGINS")),
        )


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
