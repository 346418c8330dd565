import asyncio

import httpx
import pytest

from quizlive.client.catalog import QuizCatalog
from quizlive.shared.config import Settings, resolve_media_url


def make_catalog(handler):
    client = httpx.AsyncClient(base_url="http://quiz.local:8000", transport=httpx.MockTransport(handler))
    return QuizCatalog(client=client)


def test_list_quizzes_parses_summaries():
    def handler(request):
        assert request.url.path == "/api/quizzes"
        return httpx.Response(200, json={"quizzes": [
            {"name": "capitals", "title": "European capitals", "description": "", "question_count": 10,
             "created_at": "2026-01-02T10:00:00", "updated_at": "2026-01-03T10:00:00"},
            {"name": "planets", "title": "Planets", "question_count": 4},
        ]})

    async def scenario():
        catalog = make_catalog(handler)
        try:
            return await catalog.list_quizzes()
        finally:
            await catalog.aclose()

    quizzes = asyncio.run(scenario())
    assert [q.name for q in quizzes] == ["capitals", "planets"]
    assert quizzes[0].question_count == 10


def test_server_errors_propagate():
    async def scenario():
        catalog = make_catalog(lambda request: httpx.Response(500, json={"detail": "boom"}))
        try:
            await catalog.list_quizzes()
        finally:
            await catalog.aclose()

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(scenario())


def test_media_refs_resolve_against_the_api_port():
    cfg = Settings(SERVER_HOST="192.168.1.20", API_PORT=8000)
    assert resolve_media_url("/uploads/mars.png", cfg) == "http://192.168.1.20:8000/uploads/mars.png"
    assert resolve_media_url("uploads/mars.png", cfg) == "http://192.168.1.20:8000/uploads/mars.png"
    assert resolve_media_url("https://cdn.example.org/a.png", cfg) == "https://cdn.example.org/a.png"
    assert resolve_media_url(None, cfg) is None
