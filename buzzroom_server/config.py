"""
config.py
Environment-driven configuration for the BuzzRoom server.
"""
import os
from dataclasses import dataclass, field
from typing import List

SCORE_RETENTION_POLICIES = ("connection", "name")

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    """Server settings. Defaults reproduce the single-room, permissive behaviour."""
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    enforce_roles: bool = False
    host_token: str | None = None
    score_retention: str = "connection"
    default_session_id: str = "default"
    log_level: str = "INFO"

    def __post_init__(self):
        if self.score_retention not in SCORE_RETENTION_POLICIES:
            raise ValueError(
                f"score_retention must be one of {SCORE_RETENTION_POLICIES}, got {self.score_retention!r}"
            )
        if not self.default_session_id:
            raise ValueError("default_session_id must not be empty")


def load_settings() -> Settings:
    """Build Settings from BUZZROOM_* environment variables."""
    port_raw = os.getenv("BUZZROOM_PORT", "8000")
    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"BUZZROOM_PORT must be an integer, got {port_raw!r}") from None

    origins = os.getenv("BUZZROOM_CORS_ORIGINS", "*")

    return Settings(
        host=os.getenv("BUZZROOM_HOST", "0.0.0.0"),
        port=port,
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        enforce_roles=_env_bool("BUZZROOM_ENFORCE_ROLES", False),
        host_token=os.getenv("BUZZROOM_HOST_TOKEN") or None,
        score_retention=os.getenv("BUZZROOM_SCORE_RETENTION", "connection").strip().lower(),
        default_session_id=os.getenv("BUZZROOM_DEFAULT_SESSION", "default"),
        log_level=os.getenv("BUZZROOM_LOG_LEVEL", "INFO").upper(),
    )
