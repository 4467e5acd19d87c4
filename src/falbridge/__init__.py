"""falbridge: OpenAI-compatible gateway in front of the fal OpenRouter router."""

__version__ = "1.12.0"
