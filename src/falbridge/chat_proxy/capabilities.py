from __future__ import annotations

from typing import Any

from .config import DEFAULT_TABLES, RoutingTables


def is_image_generation_model(
    model: Any, tables: RoutingTables = DEFAULT_TABLES
) -> bool:
    """Return True when the model id looks able to produce images.

    Exact (case-insensitive) hits on the known list win; otherwise fall back
    to naming markers. Marker matching is substring-based, so any id
    containing "flux" counts, including models that only share the word.
    """

    if not isinstance(model, str) or not model:
        return False
    model_l = model.lower()
    if any(known.lower() == model_l for known in tables.known_image_models):
        return True
    return any(marker in model_l for marker in tables.image_model_markers)


def supports_smart_image_config(
    model: Any, tables: RoutingTables = DEFAULT_TABLES
) -> bool:
    """Return True when image_config defaults may be injected for ``model``."""

    if not isinstance(model, str) or not model:
        return False
    model_l = model.lower()
    return any(m.lower() == model_l for m in tables.smart_config_models)


def resolve_thinking_model(
    model: Any, tables: RoutingTables = DEFAULT_TABLES
) -> str | None:
    """Map a virtual thinking model id to its real id, or None if not virtual.

    Alias table entries take priority over the generic ``-thinking`` suffix rule.
    """

    if not isinstance(model, str) or not model:
        return None
    mapped = tables.thinking_aliases.get(model)
    if mapped:
        return mapped
    suffix = "-thinking"
    if model.lower().endswith(suffix):
        return model[: -len(suffix)]
    return None
