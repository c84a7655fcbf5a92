"""
Provider collaborators for LLM Cassette.

Real chat model clients the engine calls on record and live paths.
"""

from .openai_client import OpenAIChatProvider

__all__ = ["OpenAIChatProvider"]
