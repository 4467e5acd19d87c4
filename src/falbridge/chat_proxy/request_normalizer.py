from __future__ import annotations

import copy
import logging
from typing import Any, Dict

from .capabilities import is_image_generation_model, resolve_thinking_model
from .config import DEFAULT_TABLES, RoutingTables
from .image_config import apply_smart_image_config

logger = logging.getLogger(__name__)

IMAGE_MODALITIES = ("image", "text")


def apply_thinking_routing(
    body: Dict[str, Any], tables: RoutingTables = DEFAULT_TABLES
) -> Dict[str, Any]:
    model = body.get("model")
    actual = resolve_thinking_model(model, tables)
    if actual is None:
        return body
    logger.info("[normalizer] Routing thinking model %s -> %s", model, actual)
    out = copy.copy(body)
    out["model"] = actual
    out["reasoning"] = {"enabled": True}
    return out


def apply_image_modalities(
    body: Dict[str, Any], tables: RoutingTables = DEFAULT_TABLES
) -> Dict[str, Any]:
    if not is_image_generation_model(body.get("model"), tables):
        return body
    out = copy.copy(body)
    # Any caller-provided list is kept as-is, even an empty one
    if not isinstance(out.get("modalities"), list):
        out["modalities"] = list(IMAGE_MODALITIES)
    return apply_smart_image_config(out, tables)


def normalize_request(
    body: Dict[str, Any], tables: RoutingTables = DEFAULT_TABLES
) -> Dict[str, Any]:
    """Rewrite a parsed chat request for the upstream router.

    The input is deep-copied first so the caller's object is never mutated;
    both rules then operate on the copy in sequence.
    """

    out = copy.deepcopy(body)
    if not out.get("model"):
        return out
    out = apply_thinking_routing(out, tables)
    return apply_image_modalities(out, tables)
