#!/usr/bin/env python3
"""
Run a batch of text generations from a YAML configuration.

Config layout:
    runner:      ParallelRunnerConfig fields (optional)
    generation:  GenerationOptions fields (optional)
    prompts:     mapping of task id -> prompt
    output_dir:  where to write the JSON report (optional)
"""

import argparse
import asyncio
import sys

from dotenv import load_dotenv

from reelbatch.config import load_settings
from reelbatch.generation import TextGenerator, build_text_tasks, options_from_dict
from reelbatch.parallel import ParallelTaskRunner, format_summary, save_run_result, summarize_run
from reelbatch.tracking import MlflowLogger
from reelbatch.utils import get_provider, setup_logging


def main() -> int:
    parser = argparse.ArgumentParser(description="Run text generations in rate-limited batches.")
    parser.add_argument("config", help="Path to batch config YAML")
    parser.add_argument("--output-dir", default=None, help="Override output directory for the report")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    load_dotenv()
    setup_logging(args.log_level)

    settings = load_settings(args.config)
    prompts = settings.extra.get("prompts") or {}
    if not prompts:
        parser.error("config has no prompts")

    options = options_from_dict(settings.extra.get("generation") or {})
    tasks = build_text_tasks(prompts, TextGenerator(options=options))

    run_logger = MlflowLogger()
    runner = ParallelTaskRunner(settings.runner, run_logger=run_logger)
    print(f"Running {len(tasks)} prompts with {options.model} via {get_provider()}")
    result = asyncio.run(
        runner.run(
            tasks,
            on_progress=lambda done, total, task_id: print(f"[{done}/{total}] {task_id}"),
        )
    )

    run_logger.log_task_outcomes(summarize_run(result)["results"])
    print(format_summary(result))
    output_dir = args.output_dir or settings.extra.get("output_dir")
    if output_dir:
        path = save_run_result(result, output_dir, name="text_batch")
        print(f"Report written to {path}")

    return 0 if result.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
