import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Sequence, TypeVar

from pydantic import ValidationError

from services.errors import InvalidJSONError
from services.gemini import GeminiClient, extract_image, extract_text
from services.images import ImageSource, data_url_to_part, image_to_part
from services.models import ChatMessage, OutfitRecommendation, WardrobeItem
from services.retry import is_retryable_error, with_retry

logger = logging.getLogger(__name__)

T = TypeVar("T")

MODEL_IMAGE_PROMPT = (
    "You are an expert fashion photography AI. Transform the person in this image into a full-body "
    "fashion model photo suitable for an e-commerce website. If only a face is provided, generate a "
    "realistic full-body fashion model that preserves the person's facial features and identity, "
    "placing them in a standard, relaxed model pose. The background must be a clean, neutral studio "
    "backdrop (light gray, #f0f0f0). The person should have a neutral, professional model expression. "
    "Preserve the person's identity, unique features and body type. The final image must be "
    "photorealistic. Return ONLY the final image."
)

STYLIST_SYSTEM_INSTRUCTION = """You are 'What2Wear', an expert AI fashion stylist. Your goal is to create beautiful, detailed outfits that look amazing on the person.

Based on the user's request and the chat history, create a detailed visual description of a complete outfit.

IMPORTANT:
- Write detailed visual descriptions with specific colors, styles and combinations that work well together.
- Describe the complete outfit: tops, bottoms, accessories, shoes, etc.
- Use descriptive, specific language (e.g. 'indigo skinny jeans', not just 'jeans').
- Give a short, friendly explanation of why this outfit is perfect.
- Be creative and have great style.
- The description will be used by an AI to generate an image of the outfit, so be detailed."""

OUTFIT_IMAGE_PROMPT_TEMPLATE = """You are an expert in AI virtual clothing try-on. You are given a 'model image' and a 'detailed outfit description'.

Your task: create a new photorealistic image where the person in the 'model image' wears EXACTLY the described outfit.

OUTFIT DESCRIPTION TO CREATE:
{outfit_description}

**Critical Rules:**
1. **Complete Replacement:** COMPLETELY replace the person's current clothing with the described outfit.
2. **Faithful to the Description:** Follow the description to the letter: colors, styles, specific garments.
3. **Preserve Identity:** The face, hair, body shape, pose and background MUST remain unchanged.
4. **Logical Layering:** Layer garments realistically (jacket over shirt, shirt over trousers, etc).
5. **Realistic Details:** Add natural folds, shadows and lighting that match the original lighting.
6. **Output:** Return ONLY the complete final image. Do not include text or annotations."""

IMAGE_PLACEHOLDER = "[An outfit image was generated]"

RECOMMENDATION_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "outfitDescription": {
            "type": "STRING",
            "description": "A detailed visual description of the complete outfit with specific colors, styles and garments.",
        },
        "reasoning": {
            "type": "STRING",
            "description": "A short, friendly and stylish explanation of why this outfit was chosen.",
        },
    },
    "required": ["outfitDescription", "reasoning"],
}

IMAGE_GENERATION_CONFIG: Dict[str, Any] = {"responseModalities": ["IMAGE"]}


async def call_with_model_fallback(
    models: Sequence[str],
    call: Callable[[str], Awaitable[T]],
    operation_name: str,
) -> T:
    """
    Try `call(model)` for each model in order.

    A retryable failure moves on to the next model; a non-retryable one is
    raised straight away. When the last model fails too, its error propagates.
    """
    if not models:
        raise ValueError(f"{operation_name}: no models configured")

    for index, model in enumerate(models):
        is_last = index == len(models) - 1
        try:
            logger.info(f"[{operation_name}] Trying model {model}")
            return await call(model)
        except Exception as error:
            if is_last or not is_retryable_error(error):
                raise
            logger.warning(f"[{operation_name}] {model} unavailable, falling back to {models[index + 1]}")
    # Unreachable: the loop either returns or raises.
    raise AssertionError("model fallback loop exited without a result")


def format_chat_history(chat_history: Sequence[ChatMessage]) -> str:
    lines = []
    for message in chat_history:
        if message.role == "user":
            lines.append(f"User: {message.content}")
        elif message.is_image_turn:
            lines.append(f"Stylist: {IMAGE_PLACEHOLDER}")
        else:
            lines.append(f"Stylist: {message.content}")
    return "\n".join(lines)


def _wardrobe_summary(wardrobe: Sequence[WardrobeItem]) -> str:
    if not wardrobe:
        return ""
    items = "\n".join(f"- {item.name} ({item.category})" for item in wardrobe)
    return f"Wardrobe pieces available for inspiration:\n{items}\n\n"


def parse_recommendation(raw_text: str) -> OutfitRecommendation:
    json_str = raw_text.strip()
    if not json_str.startswith("{") or not json_str.endswith("}"):
        raise InvalidJSONError()
    try:
        return OutfitRecommendation.model_validate(json.loads(json_str))
    except json.JSONDecodeError as e:
        raise InvalidJSONError(f"Could not parse it: {e.msg}.") from e
    except ValidationError as e:
        missing = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        raise InvalidJSONError(f"Missing or invalid fields: {missing}.") from e


async def generate_model_image(client: GeminiClient, user_photo: ImageSource) -> str:
    """Turn an uploaded photo into a full-body studio model image (data URI)."""

    async def attempt() -> str:
        user_image_part = image_to_part(user_photo)
        response = await client.generate_content(
            client.settings.image_model,
            [user_image_part, {"text": MODEL_IMAGE_PROMPT}],
            generation_config=IMAGE_GENERATION_CONFIG,
        )
        return extract_image(response)

    return await with_retry(attempt, "Model image generation")


async def get_outfit_recommendation(
    client: GeminiClient,
    wardrobe: Sequence[WardrobeItem],
    chat_history: Sequence[ChatMessage],
) -> OutfitRecommendation:
    """Ask the stylist model for the next outfit, given the conversation so far."""
    contents = (
        f"{_wardrobe_summary(wardrobe)}"
        f"This is the conversation history:\n{format_chat_history(chat_history)}\n\n"
        "Based on the user's last message, please suggest a new outfit with a detailed visual description."
    )
    generation_config = {
        "responseMimeType": "application/json",
        "responseSchema": RECOMMENDATION_SCHEMA,
    }

    async def call(model: str) -> OutfitRecommendation:
        response = await client.generate_content(
            model,
            [{"text": contents}],
            generation_config=generation_config,
            system_instruction=STYLIST_SYSTEM_INSTRUCTION,
        )
        return parse_recommendation(extract_text(response))

    async def attempt() -> OutfitRecommendation:
        return await call_with_model_fallback(client.settings.text_models, call, "Outfit recommendation")

    return await with_retry(attempt, "Outfit recommendation")


async def generate_outfit_image(client: GeminiClient, model_image_url: str, outfit_description: str) -> str:
    """Dress the model image in the described outfit and return the new image (data URI)."""
    model_image_part = data_url_to_part(model_image_url)
    prompt = OUTFIT_IMAGE_PROMPT_TEMPLATE.format(outfit_description=outfit_description)
    parts: List[Dict[str, Any]] = [model_image_part, {"text": prompt}]

    async def call(model: str) -> str:
        response = await client.generate_content(model, parts, generation_config=IMAGE_GENERATION_CONFIG)
        return extract_image(response)

    async def attempt() -> str:
        return await call_with_model_fallback(client.settings.outfit_image_models, call, "Outfit image generation")

    return await with_retry(attempt, "Outfit image generation")
