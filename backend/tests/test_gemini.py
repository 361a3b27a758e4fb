import pytest

from services.errors import (
    BlockedRequestError,
    GeminiAPIError,
    IncompleteGenerationError,
    NoImageReturnedError,
)
from services.gemini import extract_image, extract_text
from services.retry import is_retryable_error


def test_extract_image_blocked_includes_reason_and_message():
    response = {"promptFeedback": {"blockReason": "SAFETY", "blockReasonMessage": "X"}}

    with pytest.raises(BlockedRequestError) as excinfo:
        extract_image(response)

    assert "SAFETY" in str(excinfo.value)
    assert "X" in str(excinfo.value)
    assert is_retryable_error(excinfo.value) is False


def test_extract_image_returns_first_candidate_with_image():
    response = {
        "candidates": [
            {"finishReason": "STOP", "content": {"parts": [{"text": "Here you go"}]}},
            {"content": {"parts": [{"inline_data": {"mime_type": "image/jpeg", "data": "BBBB"}}]}},
            {"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": "CCCC"}}]}},
        ]
    }

    assert extract_image(response) == "data:image/jpeg;base64,BBBB"


def test_extract_image_camel_case_parts():
    response = {
        "candidates": [
            {
                "finishReason": "STOP",
                "content": {"parts": [{"text": "ok"}, {"inlineData": {"mimeType": "image/webp", "data": "AAAA"}}]},
            }
        ]
    }

    assert extract_image(response) == "data:image/webp;base64,AAAA"


def test_extract_image_unexpected_finish_reason():
    response = {"candidates": [{"finishReason": "IMAGE_SAFETY", "content": {"parts": [{"text": "Blocked"}]}}]}

    with pytest.raises(IncompleteGenerationError) as excinfo:
        extract_image(response)
    assert "IMAGE_SAFETY" in str(excinfo.value)


def test_extract_image_text_only_reply_includes_text():
    response = {"candidates": [{"finishReason": "STOP", "content": {"parts": [{"text": "I cannot edit this photo."}]}}]}

    with pytest.raises(NoImageReturnedError) as excinfo:
        extract_image(response)

    message = str(excinfo.value)
    assert "did not return an image" in message
    assert "I cannot edit this photo." in message


def test_extract_image_no_candidates_generic_message():
    with pytest.raises(NoImageReturnedError) as excinfo:
        extract_image({"text": "model says hi"})
    assert "did not return an image" in str(excinfo.value)
    assert "model says hi" in str(excinfo.value)

    with pytest.raises(NoImageReturnedError) as excinfo:
        extract_image({})
    assert "safety filters" in str(excinfo.value)


def test_extract_text_joins_first_candidate_parts():
    response = {"candidates": [{"content": {"parts": [{"text": '{"a":'}, {"text": ' "b"}'}]}}]}
    assert extract_text(response) == '{"a": "b"}'
    assert extract_text({"candidates": []}) == ""


@pytest.mark.asyncio
async def test_generate_content_builds_request(fake_gemini, gemini_client):
    fake_gemini.queue(fake_gemini.text('{"ok": true}'))

    data = await gemini_client.generate_content(
        "gemini-2.5-pro",
        [{"text": "hello"}],
        generation_config={"responseMimeType": "application/json"},
        system_instruction="Be a stylist",
    )

    assert extract_text(data) == '{"ok": true}'
    call = fake_gemini.calls[0]
    assert call["model"] == "gemini-2.5-pro"
    assert call["url"].endswith("/models/gemini-2.5-pro:generateContent?key=test-key")
    payload = call["payload"]
    assert payload["contents"][0]["parts"] == [{"text": "hello"}]
    assert payload["systemInstruction"] == {"parts": [{"text": "Be a stylist"}]}
    assert payload["generationConfig"] == {"responseMimeType": "application/json"}


@pytest.mark.asyncio
async def test_generate_content_raises_structured_api_error(fake_gemini, gemini_client):
    fake_gemini.queue(fake_gemini.error(503, "UNAVAILABLE"))

    with pytest.raises(GeminiAPIError) as excinfo:
        await gemini_client.generate_content("gemini-2.5-pro", [{"text": "hello"}])

    assert excinfo.value.code == 503
    assert excinfo.value.status == "UNAVAILABLE"
    assert is_retryable_error(excinfo.value) is True


@pytest.mark.asyncio
async def test_generate_content_non_json_error_body(fake_gemini, gemini_client):
    class HtmlError:
        is_success = False
        status_code = 500
        text = "<html>Internal error</html>"

        def json(self):
            raise ValueError("not json")

    fake_gemini.queue(HtmlError())

    with pytest.raises(GeminiAPIError) as excinfo:
        await gemini_client.generate_content("gemini-2.5-pro", [{"text": "hello"}])

    assert excinfo.value.code == 500
    assert excinfo.value.status is None
    assert is_retryable_error(excinfo.value) is False
