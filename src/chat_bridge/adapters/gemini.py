"""Gemini adapter.

Gemini is reached through its OpenAI-compatible endpoint, so the request and
response shapes are the OpenAI ones.
"""

from .openai import OpenAIRequestAdapter

GeminiRequestAdapter = OpenAIRequestAdapter
