"""Infer image_config hints from the latest user prompt.

Resolution and aspect ratio are detected independently. Each detector is an
ordered chain and the first hit wins, so "2k ... 4k" resolves to 4K and an
explicit ratio always beats a keyword such as "portrait".
"""

from __future__ import annotations

import re
from typing import Any, List, Pattern, Tuple

from .models import ChatMessage, ImageConfig, parse_messages

_COLON = "[:：]"

# ASCII word boundaries so "生成4k图片" still matches
_RESOLUTION_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"\b4k\b", re.IGNORECASE | re.ASCII), "4K"),
    (re.compile(r"\b2k\b", re.IGNORECASE | re.ASCII), "2K"),
    (re.compile(r"\b1k\b", re.IGNORECASE | re.ASCII), "1K"),
]

_ASPECT_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(f"16{_COLON}9"), "16:9"),
    (re.compile(f"9{_COLON}16"), "9:16"),
    (re.compile(f"1{_COLON}1"), "1:1"),
    (re.compile(f"4{_COLON}3"), "4:3"),
    (re.compile(f"3{_COLON}4"), "3:4"),
    (re.compile(f"3{_COLON}2"), "3:2"),
    (re.compile(f"2{_COLON}3"), "2:3"),
    # Semantic keywords only apply when no explicit ratio was given
    (re.compile(r"横(屏|版|图)|landscape|widescreen|宽屏", re.I), "16:9"),
    (re.compile(r"竖(屏|版|图)|portrait|vertical|手机壁纸", re.I), "9:16"),
    (re.compile(r"方(形|图)|square|正方", re.I), "1:1"),
]


def _message_text(message: ChatMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for part in content:
            if isinstance(part, dict) and part.get("type") == "text":
                text = part.get("text")
                return text if isinstance(text, str) else ""
    return ""


def last_user_text(messages: Any) -> str | None:
    """Return the text of the last user message, or None if there is none."""
    user_messages = [m for m in parse_messages(messages) if m.role == "user"]
    if not user_messages:
        return None
    return _message_text(user_messages[-1])


def _first_match(patterns: List[Tuple[Pattern[str], str]], text: str) -> str | None:
    for pattern, value in patterns:
        if pattern.search(text):
            return value
    return None


def infer_image_config(messages: Any) -> ImageConfig:
    text = last_user_text(messages)
    if not text:
        return ImageConfig()
    return ImageConfig(
        image_size=_first_match(_RESOLUTION_PATTERNS, text),
        aspect_ratio=_first_match(_ASPECT_PATTERNS, text),
    )
