"""Reverse proxy translating OpenAI-style chat traffic to the fal router.

Request rewriting (thinking aliases, image modalities, image_config), image
response reshaping, merged model listing and billing compatibility endpoints.
"""

__all__ = []
