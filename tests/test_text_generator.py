"""
Unit tests for the OpenAI-backed TextGenerator and task builder.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from reelbatch.generation.text import (
    GenerationOptions,
    TextGenerator,
    build_text_tasks,
    options_from_dict,
)
from reelbatch.parallel.runner import ParallelTaskRunner


@pytest.fixture(autouse=True)
def no_azure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AZURE_OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("AZURE_OPENAI_ENDPOINT", raising=False)


def make_client(*contents: str) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create.side_effect = [
        SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=c))])
        for c in contents
    ]
    return client


class TestTextGenerator:
    """Tests for TextGenerator."""

    def test_generate_sync_builds_messages(self) -> None:
        """Test the chat request carries the system and user messages."""
        client = make_client("Once upon a time")
        generator = TextGenerator(
            client=client,
            options=GenerationOptions(system_prompt="You write loglines."),
        )

        text = generator.generate_sync("A heist on a train")

        assert text == "Once upon a time"
        kwargs = client.chat.completions.create.call_args[1]
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["messages"] == [
            {"role": "system", "content": "You write loglines."},
            {"role": "user", "content": "A heist on a train"},
        ]
        assert kwargs["temperature"] == 0.4

    def test_empty_response_raises(self) -> None:
        """Test an empty completion raises."""
        generator = TextGenerator(client=make_client("   "))
        with pytest.raises(ValueError, match="Empty response"):
            generator.generate_sync("anything")

    @pytest.mark.asyncio
    async def test_generate_async(self) -> None:
        """Test async generation returns the completion text."""
        generator = TextGenerator(client=make_client("hello"))
        assert await generator.generate("hi") == "hello"

    def test_missing_configuration(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a missing OpenAI configuration raises."""
        from reelbatch.utils import openai_client

        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        openai_client.get_client.cache_clear()

        with pytest.raises(ValueError, match="No OpenAI configuration found"):
            TextGenerator().client


class TestTextTasks:
    """Tests for build_text_tasks with the parallel runner."""

    @pytest.mark.asyncio
    async def test_tasks_run_through_runner(self) -> None:
        """Test text tasks run through the parallel runner."""
        generator = TextGenerator(client=make_client("one", "two"))
        tasks = build_text_tasks({"scene-1": "p1", "scene-2": "p2"}, generator)

        runner = ParallelTaskRunner(rate_limit_rpm=10_000, sequential_count=2)
        result = await runner.run(tasks)

        assert [t.id for t in tasks] == ["scene-1", "scene-2"]
        assert result.by_id["scene-1"].result == "one"
        assert result.by_id["scene-2"].result == "two"


def test_options_from_dict_ignores_unknown_keys() -> None:
    """Test unknown generation options are ignored."""
    options = options_from_dict({"temperature": 0.9, "style": "noir"})
    assert options.temperature == 0.9
    assert options.model == "gpt-4o"
