"""
MODULE OVERVIEW:
The quiz catalogue HTTP client.

WHAT IS HAPPENING HERE:
Quizzes are stored server-side and listed over plain REST on the API port. The
host picks one by name before creating a session. This is a one-shot request,
so it is HTTPX rather than the Socket.IO channel.
"""
from typing import Optional

import httpx

from quizlive.shared.config import Settings, settings as default_settings
from quizlive.shared.models import QuizSummary

class QuizCatalog:
    def __init__(self, cfg: Settings = default_settings, client: Optional[httpx.AsyncClient] = None):
        self.base_url = cfg.server_url
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=10.0)

    async def list_quizzes(self) -> list[QuizSummary]:
        resp = await self.client.get("/api/quizzes")
        resp.raise_for_status()
        return [QuizSummary.model_validate(q) for q in resp.json().get("quizzes", [])]

    async def aclose(self) -> None:
        await self.client.aclose()
