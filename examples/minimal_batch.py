import os

from dotenv import load_dotenv

from reelbatch.generation import GenerationOptions, TextGenerator, build_text_tasks
from reelbatch.parallel import format_summary, run_parallel_sync


def main() -> None:
    # Load environment variables from .env if present
    load_dotenv()

    if not (os.getenv("OPENAI_API_KEY") or os.getenv("AZURE_OPENAI_API_KEY")):
        raise RuntimeError(
            "OPENAI_API_KEY is not set. Please set it in your environment or .env file."
        )

    generator = TextGenerator(
        options=GenerationOptions(
            system_prompt="You are a script supervisor. Answer in two sentences.",
        )
    )
    prompts = {
        f"scene_{i:02d}": f"Summarise the dramatic beat of scene {i} of a heist pilot."
        for i in range(1, 9)
    }

    print("▶ Running minimal parallel batch...")
    result = run_parallel_sync(
        build_text_tasks(prompts, generator),
        sequential_count=2,
        batch_size=4,
        on_progress=lambda done, total, task_id: print(f"  {done}/{total} {task_id}"),
    )

    print(format_summary(result))
    for outcome in result.results:
        if outcome.success:
            print(f"\n{outcome.task_id}:\n{outcome.result}")


if __name__ == "__main__":
    main()
