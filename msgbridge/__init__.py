"""Anthropic Messages API bridge for OpenAI-compatible chat backends."""

__version__ = "1.0.0"
