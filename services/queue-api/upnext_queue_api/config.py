import os
from dataclasses import dataclass
from datetime import timedelta


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    session_cookie_name: str = os.getenv("SESSION_COOKIE_NAME", "upnext_session")
    session_ttl_seconds: int = int(os.getenv("SESSION_TTL_SECONDS", str(60 * 60 * 24 * 7)))
    jwt_secret: str = os.getenv("SESSION_JWT_SECRET", "")
    creator_signup_key: str = os.getenv("CREATOR_SIGNUP_KEY", "")
    cookie_secure: bool = _env_bool("SESSION_COOKIE_SECURE", "true")
    poll_interval_ms: int = int(os.getenv("POLL_INTERVAL_MS", "10000"))
    advance_token_ttl_seconds: int = int(os.getenv("ADVANCE_TOKEN_TTL_SECONDS", "60"))
    advance_lock_timeout_seconds: float = float(os.getenv("ADVANCE_LOCK_TIMEOUT_SECONDS", "5"))
    oembed_enabled: bool = _env_bool("OEMBED_ENABLED", "true")
    oembed_timeout_seconds: float = float(os.getenv("OEMBED_TIMEOUT_SECONDS", "5"))
    history_limit: int = int(os.getenv("HISTORY_LIMIT", "50"))

    def cookie_max_age(self) -> int:
        return self.session_ttl_seconds

    def cookie_expires_delta(self) -> timedelta:
        return timedelta(seconds=self.session_ttl_seconds)


settings = Settings()
