"""
Pytest configuration and shared fixtures
"""
import pytest
from pathlib import Path
import sys
import os

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before importing app
os.environ.setdefault("GEMINI_API_KEY", "test-key")


class DummyGeminiResponse:
    def __init__(self, *, ok: bool = True, status_code: int = 200, text: str = "", data=None):
        self.is_success = ok
        self.status_code = status_code
        self.text = text
        self._data = data if data is not None else {}

    def json(self):
        return self._data


class FakeGemini:
    """
    Stands in for the Gemini REST endpoint: replies are served in order and
    every request is recorded as {"model", "url", "payload"}.
    """

    def __init__(self):
        self.replies = []
        self.calls = []

    def queue(self, *replies):
        self.replies.extend(replies)
        return self

    @property
    def models(self):
        return [call["model"] for call in self.calls]

    async def post(self, _client, *, url, headers, payload):
        model = url.split("/models/", 1)[1].split(":", 1)[0]
        self.calls.append({"model": model, "url": url, "payload": payload})
        if not self.replies:
            raise AssertionError(f"Unexpected Gemini call to {model}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    @staticmethod
    def image(data="AAAA", mime_type="image/png"):
        return DummyGeminiResponse(
            data={
                "candidates": [
                    {
                        "finishReason": "STOP",
                        "content": {"parts": [{"inlineData": {"mimeType": mime_type, "data": data}}]},
                    }
                ]
            }
        )

    @staticmethod
    def text(text, finish_reason="STOP"):
        return DummyGeminiResponse(
            data={
                "candidates": [
                    {
                        "finishReason": finish_reason,
                        "content": {"parts": [{"text": text}]},
                    }
                ]
            }
        )

    @staticmethod
    def blocked(reason="SAFETY", message=None):
        feedback = {"blockReason": reason}
        if message:
            feedback["blockReasonMessage"] = message
        return DummyGeminiResponse(data={"promptFeedback": feedback})

    @staticmethod
    def error(code=503, status="UNAVAILABLE", message="The model is overloaded. Please try again later."):
        body = {"error": {"code": code, "message": message, "status": status}}
        return DummyGeminiResponse(ok=False, status_code=code, text=str(body), data=body)


@pytest.fixture
def fake_gemini(monkeypatch):
    """Route every Gemini call through a FakeGemini instead of the network."""
    from services import gemini

    fake = FakeGemini()
    monkeypatch.setattr(gemini, "_gemini_post_json", fake.post)
    return fake


@pytest.fixture
def recorded_delays(monkeypatch):
    """Skip real backoff sleeps; collect the requested delays (seconds)."""
    from services import retry

    delays = []

    async def fake_delay(seconds):
        delays.append(seconds)

    monkeypatch.setattr(retry, "_delay", fake_delay)
    return delays


@pytest.fixture
def settings():
    from services.config import Settings

    return Settings(api_key="test-key")


@pytest.fixture
def gemini_client(settings):
    from services.gemini import GeminiClient

    return GeminiClient(settings)


@pytest.fixture
def client():
    """Create a test client for the FastAPI app"""
    from fastapi.testclient import TestClient
    import main

    main._rate_buckets.clear()
    return TestClient(main.app)


@pytest.fixture
def sample_image_bytes():
    """Create sample image bytes for testing"""
    from PIL import Image as PILImage  # type: ignore
    import io

    img = PILImage.new("RGB", (512, 512), color=(255, 255, 255))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
