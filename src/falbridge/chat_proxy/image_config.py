from __future__ import annotations

import copy
import logging
from typing import Any, Dict

from .capabilities import supports_smart_image_config
from .config import DEFAULT_TABLES, RoutingTables
from .models import ImageConfig
from .prompt_hints import infer_image_config

logger = logging.getLogger(__name__)


def merge_image_config(
    prompt: ImageConfig, requested: ImageConfig, defaults: ImageConfig
) -> ImageConfig:
    """Resolve each field independently: prompt > request > defaults."""
    return ImageConfig(
        image_size=prompt.image_size or requested.image_size or defaults.image_size,
        aspect_ratio=prompt.aspect_ratio
        or requested.aspect_ratio
        or defaults.aspect_ratio,
    )


def apply_smart_image_config(
    body: Dict[str, Any], tables: RoutingTables = DEFAULT_TABLES
) -> Dict[str, Any]:
    """Return a copy of ``body`` whose image_config is fully resolved.

    Only models on the smart-config allow-list are touched; for anything else
    the caller's image_config (or its absence) is passed through untouched.
    """

    if not supports_smart_image_config(body.get("model"), tables):
        return body
    merged = merge_image_config(
        infer_image_config(body.get("messages")),
        ImageConfig.from_raw(body.get("image_config")),
        tables.image_defaults,
    )
    out = copy.copy(body)
    out["image_config"] = merged.model_dump()
    logger.debug(
        "[image-config] %s -> size=%s aspect=%s",
        body.get("model"),
        merged.image_size,
        merged.aspect_ratio,
    )
    return out
