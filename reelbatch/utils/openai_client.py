"""
OpenAI Client Factory for reelbatch text generation.

Supports both OpenAI and Azure OpenAI through environment configuration.

Environment Variables:
    For OpenAI:
        OPENAI_API_KEY: Your OpenAI API key

    For Azure OpenAI:
        AZURE_OPENAI_API_KEY: Your Azure OpenAI API key
        AZURE_OPENAI_ENDPOINT: Your Azure endpoint
        AZURE_OPENAI_API_VERSION: API version (default: 2024-08-01-preview)
        AZURE_OPENAI_DEPLOYMENTS: Comma-separated ``model=deployment`` pairs,
            e.g. ``gpt-4o=writers-4o,gpt-4o-mini=writers-mini``

    Both:
        REELBATCH_OPENAI_TIMEOUT: Request timeout in seconds (default: 60)
        REELBATCH_OPENAI_MAX_RETRIES: SDK-level retries (default: 0)

SDK retries default to 0 because the parallel runner already paces requests
and records failures per task; retrying inside the SDK would issue requests
the rate tracker never sees.

Usage:
    >>> from reelbatch.utils.openai_client import get_client, get_model_name
    >>> client = get_client()
    >>> model = get_model_name("gpt-4o")  # Deployment name on Azure
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Dict

if TYPE_CHECKING:
    from openai import AzureOpenAI, OpenAI

logger = logging.getLogger(__name__)

DEFAULT_AZURE_API_VERSION = "2024-08-01-preview"


@dataclass(frozen=True)
class ClientSettings:
    timeout: float = 60.0
    max_retries: int = 0

    @classmethod
    def from_env(cls) -> "ClientSettings":
        try:
            return cls(
                timeout=float(os.getenv("REELBATCH_OPENAI_TIMEOUT", "60")),
                max_retries=int(os.getenv("REELBATCH_OPENAI_MAX_RETRIES", "0")),
            )
        except ValueError as exc:
            raise ValueError(f"Invalid OpenAI client setting: {exc}") from exc


def is_azure_configured() -> bool:
    """Check if Azure OpenAI is configured via environment variables."""
    return bool(
        os.getenv("AZURE_OPENAI_API_KEY")
        and os.getenv("AZURE_OPENAI_ENDPOINT")
    )


def is_openai_configured() -> bool:
    return bool(os.getenv("OPENAI_API_KEY"))


@lru_cache(maxsize=1)
def get_client() -> "OpenAI | AzureOpenAI":
    """
    Build the text generation client from the environment.

    Prefers Azure OpenAI if configured, falls back to OpenAI. The client is
    cached; call ``get_client.cache_clear()`` after changing the environment.

    Raises:
        ValueError: If neither OpenAI nor Azure OpenAI is configured
    """
    settings = ClientSettings.from_env()

    if is_azure_configured():
        from openai import AzureOpenAI

        endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")
        logger.info("Using Azure OpenAI client: %s", endpoint)
        return AzureOpenAI(
            azure_endpoint=endpoint,
            api_key=os.getenv("AZURE_OPENAI_API_KEY"),
            api_version=os.getenv("AZURE_OPENAI_API_VERSION", DEFAULT_AZURE_API_VERSION),
            timeout=settings.timeout,
            max_retries=settings.max_retries,
        )

    if is_openai_configured():
        from openai import OpenAI

        logger.info("Using OpenAI client (timeout=%.0fs)", settings.timeout)
        return OpenAI(timeout=settings.timeout, max_retries=settings.max_retries)

    raise ValueError(
        "No OpenAI configuration found. Please set either:\n"
        "  - OPENAI_API_KEY for OpenAI, or\n"
        "  - AZURE_OPENAI_API_KEY and AZURE_OPENAI_ENDPOINT for Azure OpenAI"
    )


def parse_deployments(raw: str) -> Dict[str, str]:
    """Parse ``model=deployment`` pairs; malformed entries are skipped with a warning."""
    mapping: Dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        model, sep, deployment = entry.partition("=")
        if not sep or not model.strip() or not deployment.strip():
            logger.warning("Ignoring malformed Azure deployment entry: %r", entry)
            continue
        mapping[model.strip()] = deployment.strip()
    return mapping


def get_model_name(model: str) -> str:
    """
    Get the model name for OpenAI or the deployment name for Azure.

    Models without a configured deployment are passed through unchanged.
    """
    if not is_azure_configured():
        return model
    deployments = parse_deployments(os.getenv("AZURE_OPENAI_DEPLOYMENTS", ""))
    deployment = deployments.get(model, model)
    logger.debug("Azure model mapping: %s -> %s", model, deployment)
    return deployment


def get_provider() -> str:
    """Return "azure" or "openai"."""
    return "azure" if is_azure_configured() else "openai"
