"""
MODULE OVERVIEW:
This module provides client-wide configuration using Pydantic Settings.
Where it fits: every timing and address the quiz client relies on is declared here.

WHAT IS HAPPENING HERE:
The reconnect backoff, the join confirmation ceiling and the server address are
all environment-tunable (prefix `QUIZLIVE_`). Instead of hardcoding "8 seconds"
deep inside the state machine, we declare it once here so a flaky classroom
Wi-Fi can be accommodated without touching code.
"""
from pathlib import Path
from urllib.parse import urljoin, urlparse

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    SERVER_SCHEME: str = "http"
    SERVER_HOST: str = "localhost"
    API_PORT: int = 8000
    # Where players open the join page; the host prints `{PUBLIC_BASE_URL}/play/{code}`
    PUBLIC_BASE_URL: str = "http://localhost:4200"
    TRANSPORTS: list[str] = ["websocket", "polling"]

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "quizlive.log"

    # Reconnect policy
    RECONNECT_BASE_DELAY_S: float = 0.5
    RECONNECT_MAX_DELAY_S: float = 10.0
    CONNECT_TIMEOUT_S: float = 5.0

    # Join confirmation ceiling
    JOIN_TIMEOUT_S: float = 8.0

    IDENTITY_PATH: Path = Path.home() / ".quizlive" / "session.json"

    class Config:
        env_file = ".env"
        env_prefix = "QUIZLIVE_"
        env_file_encoding = 'utf-8'
        extra = 'ignore'

    @property
    def server_url(self) -> str:
        return f"{self.SERVER_SCHEME}://{self.SERVER_HOST}:{self.API_PORT}"

settings = Settings()

def resolve_media_url(media_ref: str | None, cfg: Settings = settings) -> str | None:
    """
    Question images arrive as server-relative paths (`/uploads/abc.png`).
    They are served by the API port, not by whatever served the join page.
    """
    if not media_ref:
        return None
    if urlparse(media_ref).scheme:
        return media_ref
    return urljoin(cfg.server_url + "/", media_ref.lstrip("/"))
