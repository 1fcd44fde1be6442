#!/usr/bin/env python3
"""
Generate one character performance video and wait for it to finish.
"""

import argparse
import asyncio
import sys

from dotenv import load_dotenv

from reelbatch.config import load_settings
from reelbatch.polling import GeminiVideoJobClient
from reelbatch.tracking import MlflowLogger
from reelbatch.utils import setup_logging
from reelbatch.video import VideoGenerator, VideoRequest


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a video with the Veo long-running API.")
    parser.add_argument("--prompt", required=True, help="Video prompt")
    parser.add_argument("--episode", required=True, help="Episode id charged for the credit")
    parser.add_argument("--character", default="", help="Character name, for logging")
    parser.add_argument("--aspect-ratio", default="16:9")
    parser.add_argument("--duration", type=int, default=8, help="Duration in seconds")
    parser.add_argument("--config", default=None, help="Optional settings YAML")
    parser.add_argument("--output", default=None, help="Download the video to this path")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    load_dotenv()
    setup_logging(args.log_level)

    settings = load_settings(args.config)
    client = GeminiVideoJobClient()
    generator = VideoGenerator(client, poller_config=settings.poller, run_logger=MlflowLogger())
    request = VideoRequest(
        prompt=args.prompt,
        character_name=args.character,
        aspect_ratio=args.aspect_ratio,
        duration_seconds=args.duration,
    )

    try:
        response = asyncio.run(generator.generate(request, episode_id=args.episode))
        print(response.message)
        if not response.success:
            if response.error:
                print(f"Details: {response.error}")
            return 1

        print(f"Video URI: {response.video_uri}")
        if args.output and response.video_uri:
            path = client.download(response.video_uri, args.output)
            print(f"Saved to {path}")
        return 0
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
