from __future__ import annotations

import copy
from typing import Any

from .models import parse_images

IMAGE_ALT_TEXT = "Generated Image"


def _markdown_content(original: Any, image_url: str | None) -> str:
    content = ""
    if isinstance(original, str) and original.strip():
        content = original.strip() + "\n\n"
    if image_url:
        content += f"![{IMAGE_ALT_TEXT}]({image_url})"
    return content.strip()


def transform_image_response(data: Any) -> Any:
    """Fold generated images into markdown message content.

    Upstream image models return an ``images`` array next to ``content``; most
    chat clients only render ``content``. Only the first image is kept since
    the router repeats the same picture in later slots.
    """

    if not isinstance(data, dict):
        return data
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return data

    out = copy.deepcopy(data)
    for choice in out["choices"]:
        message = choice.get("message") if isinstance(choice, dict) else None
        if not isinstance(message, dict):
            continue
        images = parse_images(message.get("images"))
        if not images:
            continue
        message["content"] = _markdown_content(message.get("content"), images[0].url)
        message.pop("images", None)
    return out
