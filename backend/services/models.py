"""Shared pydantic models for the stylist services and the HTTP API."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

WardrobeCategory = Literal["top", "bottom", "outerwear", "dress", "shoes", "accessory"]


class WardrobeItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    url: str
    category: WardrobeCategory


class ChatMessage(BaseModel):
    """
    One conversation turn. Stylist turns may carry a generated outfit image
    (a data URI) instead of text; `is_image` marks those.
    """

    role: Literal["user", "model"]
    content: str
    is_image: bool = False

    @property
    def is_image_turn(self) -> bool:
        return self.is_image or self.content.startswith("data:image/")


class OutfitRecommendation(BaseModel):
    outfitDescription: str = Field(description="A detailed visual description of the complete outfit.")
    reasoning: str = Field(description="A short, friendly explanation of why the outfit was chosen.")


class RecommendationRequest(BaseModel):
    chat_history: List[ChatMessage] = Field(min_length=1)
    wardrobe_ids: Optional[List[str]] = None


class OutfitImageRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_image_url: str
    outfit_description: str = Field(min_length=1)


class ImageResponse(BaseModel):
    image_url: str
