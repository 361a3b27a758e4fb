from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from typing import List
import uvicorn
import os
import sys
import logging
import time
from pathlib import Path

# Add current directory to path to find services module
sys.path.insert(0, str(Path(__file__).parent))

from services import stylist, wardrobe
from services.config import Settings
from services.errors import (
    BlockedRequestError,
    GeminiAPIError,
    ImageDecodeError,
    IncompleteGenerationError,
    InvalidJSONError,
    NoImageReturnedError,
    RetriesExhaustedError,
    WardrobeAssetError,
)
from services.gemini import GeminiClient
from services.images import data_url_to_bytes
from services.models import (
    ImageResponse,
    OutfitImageRequest,
    OutfitRecommendation,
    RecommendationRequest,
    WardrobeItem,
)
from services.retry import is_retryable_error

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Missing API key is fatal here, at startup.
settings = Settings.from_env()

app = FastAPI(title="What2Wear API")
app.state.settings = settings
app.state.gemini_client = GeminiClient(settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allowed_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}

_rate_buckets: dict[str, tuple[int, float]] = {}


def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Simple best-effort in-memory rate limiter (per-instance).
    Returns True if allowed, False if rate-limited.
    """
    now = time.time()
    count, expires_at = _rate_buckets.get(key, (0, 0.0))
    if expires_at <= now:
        _rate_buckets[key] = (1, now + window_seconds)
        return True
    if count >= limit:
        return False
    _rate_buckets[key] = (count + 1, expires_at)
    return True


def get_client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip() or "unknown"
    if request.headers.get("x-real-ip"):
        return request.headers["x-real-ip"]
    return request.client.host if request.client else "unknown"


def enforce_rate_limit(request: Request, endpoint: str, limit: int) -> None:
    ip = get_client_ip(request)
    if not check_rate_limit(f"{endpoint}:{ip}", limit=limit, window_seconds=60):
        raise HTTPException(status_code=429, detail="Rate limit exceeded. Please try again shortly.")


def validate_image_file(file: UploadFile) -> tuple[bool, str]:
    """Validate that uploaded file is a valid image"""
    if not file.content_type or file.content_type.lower() not in ALLOWED_IMAGE_TYPES:
        return False, f"Invalid file type. Allowed types: {', '.join(sorted(ALLOWED_IMAGE_TYPES))}"

    if not file.filename:
        return False, "Filename is required"

    file_ext = Path(file.filename).suffix.lower()
    if file_ext not in ALLOWED_EXTENSIONS:
        return False, f"Invalid file extension. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"

    return True, ""


def get_gemini_client(request: Request) -> GeminiClient:
    return request.app.state.gemini_client


def to_http_exception(error: Exception, operation: str) -> HTTPException:
    """Map a stylist failure onto the status code the UI should see."""
    if isinstance(error, (BlockedRequestError, IncompleteGenerationError)):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, ImageDecodeError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, RetriesExhaustedError):
        return HTTPException(status_code=503, detail=str(error))
    if isinstance(error, GeminiAPIError):
        status_code = 503 if is_retryable_error(error) else 502
        return HTTPException(status_code=status_code, detail=str(error))
    if isinstance(error, (NoImageReturnedError, InvalidJSONError)):
        return HTTPException(status_code=502, detail=str(error))

    logger.error(f"Error in {operation}: {type(error).__name__}: {error}", exc_info=True)
    return HTTPException(status_code=500, detail=f"{operation} failed: {error}")


@app.get("/")
async def root():
    return {"message": "What2Wear API is running"}


@app.get("/api/wardrobe", response_model=List[WardrobeItem])
async def list_wardrobe():
    return list(wardrobe.DEFAULT_WARDROBE)


@app.get("/api/wardrobe/{item_id}/image")
async def wardrobe_item_image(item_id: str, request: Request):
    item = wardrobe.get_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Unknown wardrobe item: {item_id}")
    try:
        content, mime_type = await wardrobe.load_item_image(item, request.app.state.settings.wardrobe_assets_dir)
    except WardrobeAssetError as e:
        logger.warning(f"Wardrobe asset unavailable for {item_id}: {e}")
        raise HTTPException(status_code=404, detail=str(e))
    return Response(content=content, media_type=mime_type)


@app.post("/api/model-image", response_model=ImageResponse)
async def model_image(
    request: Request,
    user_image: UploadFile = File(...),
    client: GeminiClient = Depends(get_gemini_client),
):
    """Generate the full-body studio model image from the user's photo."""
    enforce_rate_limit(request, "model-image", limit=10)

    is_valid, error_msg = validate_image_file(user_image)
    if not is_valid:
        raise HTTPException(status_code=400, detail=f"User image validation failed: {error_msg}")

    image_bytes = await user_image.read()
    max_file_size = request.app.state.settings.max_file_size
    if len(image_bytes) > max_file_size:
        raise HTTPException(
            status_code=413,
            detail=f"User image too large. Maximum size: {max_file_size / (1024*1024):.1f}MB"
        )

    try:
        image_url = await stylist.generate_model_image(client, image_bytes)
    except Exception as e:
        raise to_http_exception(e, "Model image generation")
    logger.info(f"Model image generated ({len(image_url)} chars)")
    return {"image_url": image_url}


@app.post("/api/recommendation", response_model=OutfitRecommendation)
async def recommendation(
    request: Request,
    body: RecommendationRequest,
    client: GeminiClient = Depends(get_gemini_client),
):
    """Ask the stylist for the next outfit based on the conversation."""
    enforce_rate_limit(request, "recommendation", limit=30)

    items = wardrobe.select_items(body.wardrobe_ids)
    try:
        return await stylist.get_outfit_recommendation(client, items, body.chat_history)
    except Exception as e:
        raise to_http_exception(e, "Outfit recommendation")


@app.post("/api/outfit-image", response_model=ImageResponse)
async def outfit_image(
    request: Request,
    body: OutfitImageRequest,
    client: GeminiClient = Depends(get_gemini_client),
):
    """Dress the model image in the described outfit."""
    enforce_rate_limit(request, "outfit-image", limit=10)

    try:
        decoded, mime_type = data_url_to_bytes(body.model_image_url)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"model_image_url must be an image data URL: {e}")
    if mime_type.lower() not in ALLOWED_IMAGE_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"model_image_url must be an image data URL. Allowed types: {', '.join(sorted(ALLOWED_IMAGE_TYPES))}"
        )
    if len(decoded) > request.app.state.settings.max_file_size:
        raise HTTPException(status_code=413, detail="Model image too large.")

    try:
        image_url = await stylist.generate_outfit_image(client, body.model_image_url, body.outfit_description)
    except Exception as e:
        raise to_http_exception(e, "Outfit image generation")
    return {"image_url": image_url}


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        timeout_keep_alive=600,  # generation with retries can take minutes
    )
