"""Load settings from environment."""
import os
from functools import lru_cache
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from pydantic_settings import BaseSettings

_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"


def _load_dotenv(path: Path) -> None:
    if not path.is_file():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip().strip('"').strip("'")
                if key and key not in os.environ:
                    os.environ[key] = value


class Settings(BaseSettings):
    @property
    def backend_url(self) -> str:
        return (self.ferraco_backend_url or "").strip().rstrip("/")

    @property
    def ws_url(self) -> str:
        """Websocket URL of the backend event channel (http -> ws, https -> wss)."""
        base = self.backend_url
        if not base:
            return ""
        parts = urlsplit(base)
        scheme = {"https": "wss", "http": "ws"}.get(parts.scheme, parts.scheme or "ws")
        path = (self.ferraco_ws_path or "").strip()
        if path and not path.startswith("/"):
            path = "/" + path
        return urlunsplit((scheme, parts.netloc, parts.path.rstrip("/") + path, "", ""))

    @property
    def auth_headers(self) -> dict[str, str]:
        token = (self.ferraco_api_token or "").strip()
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    @property
    def log_level(self) -> str:
        level = (self.ferraco_log_level or "INFO").strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return "INFO"
        return level

    # Backend
    ferraco_backend_url: str = "http://localhost:3000"
    ferraco_ws_path: str = "/ws"
    # Forwarded as a bearer token; the backend validates it.
    ferraco_api_token: str | None = None

    # Event channel reconnection: bounded attempts, fixed delay between them.
    ferraco_reconnect_attempts: int = 10
    ferraco_reconnect_delay_s: float = 1.0
    ferraco_connect_timeout_s: float = 20.0

    # REST calls to /api/whatsapp
    ferraco_http_timeout_s: float = 4.0

    ferraco_log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    _load_dotenv(_ENV_FILE)
    return Settings()
