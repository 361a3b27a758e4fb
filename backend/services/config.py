import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

from services.errors import MissingAPIKeyError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"
DEFAULT_TEXT_MODELS = ("gemini-2.5-pro", "gemini-2.0-flash")
DEFAULT_OUTFIT_IMAGE_MODELS = ("gemini-2.5-flash-image", "gemini-2.0-flash")
DEFAULT_ALLOWED_ORIGINS = (
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
)


def _split_list(value: Optional[str], default: Tuple[str, ...]) -> Tuple[str, ...]:
    if not value:
        return default
    items = tuple(v.strip() for v in value.split(",") if v.strip())
    return items or default


@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration, built once at startup and never mutated.

    The API key lives here and is handed to GeminiClient explicitly; nothing
    else reads it from the environment.
    """

    api_key: str = field(repr=False)
    base_url: str = DEFAULT_BASE_URL
    image_model: str = DEFAULT_IMAGE_MODEL
    text_models: Tuple[str, ...] = DEFAULT_TEXT_MODELS
    outfit_image_models: Tuple[str, ...] = DEFAULT_OUTFIT_IMAGE_MODELS
    timeout_seconds: float = 120.0
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    max_file_size: int = 10 * 1024 * 1024
    wardrobe_assets_dir: Path = Path("public")

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise MissingAPIKeyError(
                "The API key was not found. Create a `.env` file in the project root and add "
                "your key as `GEMINI_API_KEY=YOUR_KEY` (GOOGLE_API_KEY is also accepted), "
                "then restart the server."
            )

        settings = cls(
            api_key=api_key,
            base_url=os.getenv("GEMINI_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            image_model=os.getenv("GEMINI_IMAGE_MODEL", DEFAULT_IMAGE_MODEL),
            text_models=_split_list(os.getenv("GEMINI_TEXT_MODELS"), DEFAULT_TEXT_MODELS),
            outfit_image_models=_split_list(os.getenv("GEMINI_OUTFIT_IMAGE_MODELS"), DEFAULT_OUTFIT_IMAGE_MODELS),
            timeout_seconds=float(os.getenv("GEMINI_TIMEOUT_SECONDS", 120.0)),
            allowed_origins=_split_list(os.getenv("ALLOWED_ORIGINS"), DEFAULT_ALLOWED_ORIGINS),
            max_file_size=int(os.getenv("MAX_FILE_SIZE", 10 * 1024 * 1024)),
            wardrobe_assets_dir=Path(os.getenv("WARDROBE_ASSETS_DIR", "public")),
        )
        logger.info(
            f"Settings loaded: image_model={settings.image_model}, "
            f"text_models={list(settings.text_models)}, "
            f"outfit_image_models={list(settings.outfit_image_models)}"
        )
        return settings
