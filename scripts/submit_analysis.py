#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from analysis_client.application import build_analysis_service
from analysis_client.core.settings import Settings
from analysis_client.domain import SubmissionOutcome


async def _submit(form_name: str, value: str, instruction: str | None) -> int:
    service = build_analysis_service(Settings.from_env())
    try:
        orchestrator = service.form(form_name).orchestrator
        outcome = await orchestrator.submit(value, instruction)
        if outcome is SubmissionOutcome.ACCEPTED:
            await orchestrator.wait()
        state = orchestrator.state()
        print(json.dumps({"outcome": outcome.value, **state}, ensure_ascii=False, indent=2, default=str))
        return 0 if state["status"] == "completed" else 1
    finally:
        await service.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Submit one analysis job and wait for the result")
    parser.add_argument("input", help="TikTok video URL, or a username with --profile")
    parser.add_argument("--profile", action="store_true", help="analyse a creator profile instead of a video")
    parser.add_argument("--prompt", default=None, help="optional custom instruction")
    args = parser.parse_args()

    settings = Settings.from_env()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    form_name = "profile" if args.profile else "video"
    sys.exit(asyncio.run(_submit(form_name, args.input, args.prompt)))


if __name__ == "__main__":
    main()
