import asyncio
import json

import httpx
import pytest

from uniai.config import Settings

NOW_MS = 1_700_000_000_000


def sse(*payloads, raw=None) -> bytes:
    """Encode payloads as provider event-stream frames."""
    frames = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        frames.append(f"data: {data}\n\n")
    return "".join(frames).encode("utf-8")


def baidu_frame(result, usage=None, **extra):
    frame = {"id": "as-test", "object": "chat.completion", "result": result, "is_end": usage is not None}
    if usage:
        frame["usage"] = usage
    frame.update(extra)
    return frame


class FakeSource:
    """An upstream body that records how often it was closed."""

    def __init__(self, chunks, error=None, hang=False):
        self._chunks = list(chunks)
        self.error = error
        self.hang = hang
        self.closed = 0

    async def chunks(self):
        for chunk in self._chunks:
            yield chunk
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        if self.hang:
            await asyncio.Event().wait()

    async def close(self):
        self.closed += 1


@pytest.fixture
def mock_env(monkeypatch, tmp_path):
    """Mock environment variables for provider keys."""
    monkeypatch.setenv("BAIDU_API_KEY", "ak-test")
    monkeypatch.setenv("BAIDU_SECRET_KEY", "sk-test")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-openai")
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-test-deepseek")
    monkeypatch.setenv("MID_JOURNEY_API", "http://mj.test")
    monkeypatch.setenv("MID_JOURNEY_TOKEN", "mj-secret")
    monkeypatch.setenv("UNIAI_TOKEN_CACHE_DIR", str(tmp_path))
    monkeypatch.setenv("UNIAI_TIMEOUT", "30")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        baidu_api_key="ak-test",
        baidu_secret_key="sk-test",
        openai_api_key="sk-test-openai",
        deepseek_api_key="sk-test-deepseek",
        mj_api="http://mj.test",
        mj_token="mj-secret",
        token_cache_dir=str(tmp_path),
    )


@pytest.fixture
def mock_client():
    """Build an AsyncClient whose requests are answered by ``handler``."""
    clients = []

    def build(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    return build
