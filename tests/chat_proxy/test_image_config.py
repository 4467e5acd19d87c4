from falbridge.chat_proxy.image_config import (
    apply_smart_image_config,
    merge_image_config,
)
from falbridge.chat_proxy.models import ImageConfig

GEMINI = "google/gemini-3-pro-image-preview"


def _body(text, **extra):
    body = {"model": GEMINI, "messages": [{"role": "user", "content": text}]}
    body.update(extra)
    return body


def test_prompt_hints_fill_both_fields():
    out = apply_smart_image_config(_body("...make it 2K and 16:9..."))
    assert out["image_config"] == {"image_size": "2K", "aspect_ratio": "16:9"}


def test_defaults_apply_without_hints_or_caller_config():
    out = apply_smart_image_config(_body("draw a lighthouse"))
    assert out["image_config"] == {"image_size": "4K", "aspect_ratio": "1:1"}


def test_fields_resolve_independently():
    out = apply_smart_image_config(
        _body("portrait please", image_config={"image_size": "1K", "aspect_ratio": "4:3"})
    )
    # prompt wins for aspect ratio, caller wins for size
    assert out["image_config"] == {"image_size": "1K", "aspect_ratio": "9:16"}


def test_merged_config_replaces_caller_config_entirely():
    out = apply_smart_image_config(
        _body("hello", image_config={"image_size": "2K", "seed": 7})
    )
    assert out["image_config"] == {"image_size": "2K", "aspect_ratio": "1:1"}


def test_malformed_caller_config_counts_as_absent():
    out = apply_smart_image_config(_body("hello", image_config="4K"))
    assert out["image_config"] == {"image_size": "4K", "aspect_ratio": "1:1"}


def test_gate_skips_models_outside_allow_list():
    body = {
        "model": "google/gemini-2.5-flash-image",
        "messages": [{"role": "user", "content": "2k"}],
    }
    assert apply_smart_image_config(body) is body


def test_merge_priority_order():
    merged = merge_image_config(
        ImageConfig(aspect_ratio="3:2"),
        ImageConfig(image_size="2K", aspect_ratio="1:1"),
        ImageConfig(image_size="4K", aspect_ratio="16:9"),
    )
    assert merged == ImageConfig(image_size="2K", aspect_ratio="3:2")


def test_truthy_non_string_caller_values_are_kept():
    out = apply_smart_image_config(
        _body("hello", image_config={"image_size": 2, "aspect_ratio": ""})
    )
    assert out["image_config"] == {"image_size": 2, "aspect_ratio": "1:1"}
