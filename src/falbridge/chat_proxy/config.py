from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from .models import ImageConfig

FAL_BASE_URL = "https://fal.run/openrouter/router/openai/v1"
OPENROUTER_MODELS_URL = "https://openrouter.ai/api/v1/models"
OPENROUTER_IMAGE_MODELS_URL = (
    "https://openrouter.ai/api/frontend/models/find?output_modalities=image"
)
FAL_BALANCE_URL = "https://rest.alpha.fal.ai/billing/user_balance"


@dataclass
class ProxyConfig:
    host: str = "0.0.0.0"
    port: int = 8787
    upstream_base_url: str = FAL_BASE_URL
    models_url: str = OPENROUTER_MODELS_URL
    image_models_url: str = OPENROUTER_IMAGE_MODELS_URL
    balance_url: str = FAL_BALANCE_URL
    default_api_key: Optional[str] = None
    user_agent: Optional[str] = None
    # None leaves long-lived streams uncapped
    upstream_timeout_s: Optional[float] = None
    log_path: str = "logs/falbridge.jsonl"
    max_log_bytes: int = 25_000_000
    log_requests: bool = True
    log_level: str = "INFO"
    config_file_path: Optional[str] = None

    @classmethod
    def load(cls) -> "ProxyConfig":
        from .config_loader import load_proxy_config

        return load_proxy_config()


@dataclass(frozen=True)
class RoutingTables:
    """Model routing data shared read-only by every request."""

    thinking_aliases: Mapping[str, str]
    known_image_models: Tuple[str, ...]
    image_model_markers: Tuple[str, ...]
    smart_config_models: Tuple[str, ...]
    image_defaults: ImageConfig = field(
        default_factory=lambda: ImageConfig(image_size="4K", aspect_ratio="1:1")
    )


DEFAULT_TABLES = RoutingTables(
    thinking_aliases=MappingProxyType(
        {
            "deepseek/deepseek-v3.2-thinking": "deepseek/deepseek-v3.2",
            "deepseek/deepseek-chat-v3.1-thinking": "deepseek/deepseek-chat-v3.1:free",
        }
    ),
    known_image_models=(
        "google/gemini-3-pro-image-preview",
        "google/gemini-2.5-flash-image",
        "google/gemini-2.5-flash-image-preview",
        "bytedance-seed/seedream-4.5",
        "openai/gpt-5-image",
        "openai/gpt-5-image-mini",
        "black-forest-labs/flux.2-max",
        "black-forest-labs/flux.2-flex",
        "black-forest-labs/flux.2-pro",
        "sourceful/riverflow-v2-max-preview",
        "sourceful/riverflow-v2-standard-preview",
        "sourceful/riverflow-v2-fast-preview",
    ),
    image_model_markers=("-image", "image-", "seedream", "flux", "riverflow"),
    # Only models verified to honour image_config upstream
    smart_config_models=(
        "google/gemini-3-pro-image-preview",
        "bytedance-seed/seedream-4.5",
    ),
)
