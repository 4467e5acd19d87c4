from __future__ import annotations

from pydantic import BaseModel, Field, ValidationError
from typing import Any, Dict, List, Optional, Union

IMAGE_SIZES = ("1K", "2K", "4K")
ASPECT_RATIOS = ("16:9", "9:16", "1:1", "4:3", "3:4", "3:2", "2:3")


class ImageConfig(BaseModel):
    # Caller values are relayed as given (e.g. an int size); inferred ones are str
    image_size: Any = None
    aspect_ratio: Any = None

    class Config:
        frozen = True

    @classmethod
    def from_raw(cls, raw: Any) -> "ImageConfig":
        """Read a caller-supplied image_config, treating bad shapes as empty."""
        if not isinstance(raw, dict):
            return cls()
        return cls(
            image_size=raw.get("image_size") or None,
            aspect_ratio=raw.get("aspect_ratio") or None,
        )


class ChatMessage(BaseModel):
    role: Optional[str] = None
    content: Any = None  # str | list[dict]

    class Config:
        extra = "allow"


class ImageUrl(BaseModel):
    url: Optional[str] = None

    class Config:
        extra = "allow"


class GeneratedImage(BaseModel):
    image_url: Union[ImageUrl, str, None] = None

    class Config:
        extra = "allow"

    @property
    def url(self) -> Optional[str]:
        if isinstance(self.image_url, ImageUrl):
            return self.image_url.url or None
        return self.image_url or None


class Architecture(BaseModel):
    modality: str = "text+image->text+image"
    input_modalities: List[str] = Field(default_factory=lambda: ["text", "image"])
    output_modalities: List[str] = Field(default_factory=lambda: ["image"])
    tokenizer: str = "Unknown"


class Pricing(BaseModel):
    prompt: str = "0"
    completion: str = "0"
    image: str = "0.04"


class TopProvider(BaseModel):
    context_length: int = 4096
    is_moderated: bool = False


class ModelDescriptor(BaseModel):
    id: str
    name: str
    description: str = ""
    context_length: int = 4096
    architecture: Architecture = Field(default_factory=Architecture)
    pricing: Pricing = Field(default_factory=Pricing)
    top_provider: TopProvider = Field(default_factory=TopProvider)


class ImageCatalogEntry(BaseModel):
    """Entry of the frontend image-model search, keyed by ``slug``."""

    slug: str
    name: Optional[str] = None
    description: Optional[str] = None
    context_length: Optional[int] = None
    input_modalities: Optional[List[str]] = None
    output_modalities: Optional[List[str]] = None

    class Config:
        extra = "ignore"


def parse_messages(raw: Any) -> List[ChatMessage]:
    if not isinstance(raw, list):
        return []
    out: List[ChatMessage] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            out.append(ChatMessage.model_validate(item))
        except ValidationError:
            continue
    return out


def parse_images(raw: Any) -> List[GeneratedImage]:
    if not isinstance(raw, list):
        return []
    out: List[GeneratedImage] = []
    for item in raw:
        try:
            out.append(GeneratedImage.model_validate(item))
        except ValidationError:
            out.append(GeneratedImage())
    return out


def error_envelope(
    message: str, err_type: str, code: Optional[str] = None
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"message": message, "type": err_type}
    if code:
        body["code"] = code
    return {"error": body}
