import logging
from typing import Any, Dict, List, Optional

import httpx

from services.config import Settings
from services.errors import (
    BlockedRequestError,
    GeminiAPIError,
    IncompleteGenerationError,
    NoImageReturnedError,
)

logger = logging.getLogger(__name__)

# This module talks to the Gemini API over REST with API key authentication.
# No SDK is required; the key comes from Settings, never from the environment here.


async def _gemini_post_json(
    client: httpx.AsyncClient,
    *,
    url: str,
    headers: Dict[str, str],
    payload: Dict[str, Any],
) -> httpx.Response:
    """
    Thin wrapper for Gemini HTTP calls to make retry logic testable (can be monkeypatched).
    """
    return await client.post(url, headers=headers, json=payload)


class GeminiClient:
    """Minimal async client for `models/{model}:generateContent`."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def _endpoint(self, model: str) -> str:
        return f"{self.settings.base_url}/models/{model}:generateContent"

    async def generate_content(
        self,
        model: str,
        parts: List[Dict[str, Any]],
        *,
        generation_config: Optional[Dict[str, Any]] = None,
        system_instruction: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send one generateContent request and return the decoded JSON body.

        Raises GeminiAPIError for any non-2xx reply, carrying the error
        envelope's code and status so callers can classify it.
        """
        payload: Dict[str, Any] = {
            "contents": [
                {
                    "role": "user",
                    "parts": parts,
                }
            ],
        }
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if generation_config:
            payload["generationConfig"] = generation_config

        logger.info(f"Calling Gemini model {model} with {len(parts)} part(s)")
        async with httpx.AsyncClient(timeout=self.settings.timeout_seconds) as client:
            response = await _gemini_post_json(
                client,
                url=f"{self._endpoint(model)}?key={self.settings.api_key}",
                headers={"Content-Type": "application/json"},
                payload=payload,
            )

        if not response.is_success:
            error_text = response.text
            try:
                body = response.json()
            except ValueError:
                body = None
            logger.error(f"Gemini API error from {model}: {response.status_code} - {error_text[:500]}")
            raise GeminiAPIError.from_response(response.status_code, body, error_text)

        return response.json()


def _inline_data(part: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    # The REST API answers in camelCase, but snake_case shows up too.
    inline = part.get("inlineData") or part.get("inline_data")
    if isinstance(inline, dict) and inline.get("data"):
        return inline
    return None


def _candidate_parts(candidate: Dict[str, Any]) -> List[Dict[str, Any]]:
    content = candidate.get("content") or {}
    return [p for p in (content.get("parts") or []) if isinstance(p, dict)]


def extract_text(response: Dict[str, Any]) -> str:
    """Concatenated text parts of the first candidate ("" when there are none)."""
    candidates = response.get("candidates") or []
    if not candidates:
        top_level = response.get("text")
        return top_level if isinstance(top_level, str) else ""
    texts = [p["text"] for p in _candidate_parts(candidates[0]) if isinstance(p.get("text"), str)]
    return "".join(texts)


def extract_image(response: Dict[str, Any]) -> str:
    """
    Turn a generateContent response into a `data:<mime>;base64,<data>` URI.

    Order of checks:
      1. prompt blocked -> BlockedRequestError (reason + explanation)
      2. first candidate carrying inline image data wins
      3. top candidate finished for a reason other than STOP -> IncompleteGenerationError
      4. otherwise NoImageReturnedError, quoting whatever text came back
    """
    feedback = response.get("promptFeedback") or {}
    block_reason = feedback.get("blockReason")
    if block_reason:
        raise BlockedRequestError(block_reason, feedback.get("blockReasonMessage"))

    candidates = response.get("candidates") or []
    for candidate in candidates:
        for part in _candidate_parts(candidate):
            inline = _inline_data(part)
            if inline:
                mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return f"data:{mime_type};base64,{inline['data']}"

    finish_reason = candidates[0].get("finishReason") if candidates else None
    if finish_reason and finish_reason != "STOP":
        raise IncompleteGenerationError(finish_reason)

    text_feedback = extract_text(response).strip()
    logger.warning(f"Gemini returned no image. Text: {text_feedback[:200]!r}")
    raise NoImageReturnedError(text_feedback or None)
