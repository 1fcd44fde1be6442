"""Utility helpers for reelbatch."""

from .logging_config import setup_logging
from .openai_client import get_client, get_model_name, get_provider

__all__ = [
    "setup_logging",
    "get_client",
    "get_model_name",
    "get_provider",
]
