"""Text generation backend used to build parallel runner tasks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from functools import partial
from typing import Any, Dict, List, Mapping, Optional

from ..parallel.runner import ParallelTask
from ..utils.openai_client import get_client, get_model_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationOptions:
    model: str = "gpt-4o"
    temperature: float = 0.4
    max_tokens: int = 2000
    system_prompt: Optional[str] = None


class TextGenerator:
    """
    ``async generate(prompt, options) -> str`` over OpenAI or Azure OpenAI.

    The blocking SDK call runs in the default executor so many generations
    can be in flight on one event loop.
    """

    def __init__(self, client: Any = None, options: GenerationOptions | None = None) -> None:
        self._client = client
        self.options = options or GenerationOptions()

    @property
    def client(self) -> Any:
        """Lazy-load OpenAI/Azure client."""
        if self._client is None:
            self._client = get_client()
        return self._client

    def _build_messages(self, prompt: str, options: GenerationOptions) -> List[Dict[str, str]]:
        messages: List[Dict[str, str]] = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    def generate_sync(self, prompt: str, options: GenerationOptions | None = None) -> str:
        options = options or self.options
        response = self.client.chat.completions.create(
            model=get_model_name(options.model),
            messages=self._build_messages(prompt, options),
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        )
        content = response.choices[0].message.content or ""
        if not content.strip():
            raise ValueError(f"Empty response from {options.model}")
        return content

    async def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(self.generate_sync, prompt, options))


def build_text_tasks(
    prompts: Mapping[str, str],
    generator: TextGenerator,
    options: GenerationOptions | None = None,
) -> List[ParallelTask[str]]:
    """One runner task per ``{task_id: prompt}`` entry, in mapping order."""
    return [
        ParallelTask(id=task_id, execute=partial(generator.generate, prompt, options))
        for task_id, prompt in prompts.items()
    ]


def options_from_dict(data: Mapping[str, Any], base: GenerationOptions | None = None) -> GenerationOptions:
    base = base or GenerationOptions()
    known = {k: v for k, v in data.items() if k in GenerationOptions.__dataclass_fields__}
    unknown = sorted(set(data) - set(known))
    if unknown:
        logger.warning("Ignoring unknown generation options: %s", unknown)
    return replace(base, **known)
