from typing import Any, Dict, Optional


class What2WearError(Exception):
    """Base class for every error raised by the styling services."""


class MissingAPIKeyError(What2WearError):
    pass


class GeminiAPIError(What2WearError):
    """
    Non-2xx reply from the Gemini REST API.

    Keeps the structured fields of the error envelope
    ({"error": {"code": 503, "status": "UNAVAILABLE", "message": "..."}})
    so retry classification does not need to parse strings.
    """

    def __init__(self, message: str, *, code: Optional[int] = None, status: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.details = details

    @classmethod
    def from_response(cls, status_code: int, body: Optional[Dict[str, Any]], raw_text: str = "") -> "GeminiAPIError":
        error = (body or {}).get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            message = str(error.get("message") or raw_text or "Unknown Gemini API error")
            return cls(
                f"Gemini API error {status_code}: {message}",
                code=error.get("code") or status_code,
                status=error.get("status"),
                details=error.get("details"),
            )
        return cls(f"Gemini API error {status_code}: {raw_text[:500]}", code=status_code)


class GenerationError(What2WearError):
    """The API answered, but the answer is unusable. Never retried."""


class BlockedRequestError(GenerationError):
    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        text = f"The request was blocked. Reason: {reason}."
        if message:
            text += f" {message}"
        super().__init__(text)


class IncompleteGenerationError(GenerationError):
    def __init__(self, finish_reason: str):
        self.finish_reason = finish_reason
        super().__init__(
            f"Image generation stopped unexpectedly. Reason: {finish_reason}. "
            "This is usually related to safety settings."
        )


class NoImageReturnedError(GenerationError):
    def __init__(self, text: Optional[str] = None):
        self.text = text
        if text:
            detail = f'The model responded with text: "{text}"'
        else:
            detail = (
                "This can happen because of safety filters or when the request is too complex. "
                "Please try a different image."
            )
        super().__init__(f"The AI model did not return an image. {detail}")


class InvalidJSONError(GenerationError):
    def __init__(self, detail: Optional[str] = None):
        text = "The AI returned an invalid JSON response."
        if detail:
            text += f" {detail}"
        super().__init__(text)


class RetriesExhaustedError(What2WearError):
    def __init__(self, operation_name: str, attempts: int):
        self.operation_name = operation_name
        self.attempts = attempts
        super().__init__(
            f"{operation_name} failed after {attempts} attempts. "
            "The Gemini service is heavily overloaded. Please try again in a few minutes. "
            "If the problem persists, check your API quota in the Google Cloud Console."
        )


class ImageDecodeError(What2WearError):
    pass


class WardrobeAssetError(What2WearError):
    pass
