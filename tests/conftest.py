import asyncio
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from collectai.database import set_db_path, init_db
from collectai.models.database_models import CommunicationLog
from collectai.services.providers.base import BaseAIBackend, GeneratedContent


@pytest.fixture
def temp_db_path():
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = f.name
    yield path
    Path(path).unlink(missing_ok=True)


@pytest.fixture
def test_settings(temp_db_path):
    from collectai.config import Settings
    return Settings(
        openai_api_key="sk-test-fake",
        gemini_api_key="fake-gemini-key",
        database_url=temp_db_path,
    )


@pytest_asyncio.fixture
async def initialized_db(temp_db_path):
    set_db_path(temp_db_path)
    await init_db()
    yield temp_db_path


class FakeBackend(BaseAIBackend):
    """Scripted backend: returns ``content`` or raises ``error``."""

    def __init__(self, name, content="generated", error=None, delay=0.0, tokens=100):
        self.name = name
        self.content = content
        self.error = error
        self.delay = delay
        self.tokens = tokens
        self.calls = []

    def get_backend_name(self) -> str:
        return self.name

    async def generate(self, prompt, context, options):
        self.calls.append({"prompt": prompt, "context": context, "options": options})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return GeneratedContent(
            content=self.content,
            tokens_used=self.tokens,
            model=f"{self.name}-model",
            cost=0.01,
            prompt_tokens=self.tokens // 2,
            completion_tokens=self.tokens - self.tokens // 2,
        )


@pytest.fixture
def make_message():
    """Factory for CommunicationLog records."""
    counter = iter(range(1, 10_000))

    def _make(direction="inbound", sent_at=None, sentiment=None, thread_id="t1", **kwargs):
        return CommunicationLog(
            id=kwargs.pop("id", f"m{next(counter)}"),
            direction=direction,
            sent_at=sent_at,
            ai_sentiment=sentiment,
            thread_id=thread_id,
            **kwargs,
        )

    return _make
