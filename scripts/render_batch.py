#!/usr/bin/env python3
"""Render a batch locally with the in-process backend.

Usage:
    python scripts/render_batch.py batch.json

``batch.json`` holds a BatchRequest: combinations (reaction_id, demo_id,
hook_index, ...), hooks, text_settings and audio_settings. Clip ids are
resolved under ``$DATA_DIR/uploads``. Prints the final status of every job.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

from hookreel.config import configure_logging, get_settings
from hookreel.exceptions import ValidationFailure
from hookreel.services.render_service import build_render_service, parse_batch_request


async def render(batch_path: Path) -> int:
    settings = get_settings().model_copy(update={"redis_url": ""})
    service = build_render_service(settings)
    request = parse_batch_request(json.loads(batch_path.read_text(encoding="utf-8")))

    await service.start()
    try:
        submission = service.submit(request)
        print(f"Batch {submission.batch_id}: {submission.message}")
        if submission.skipped:
            print(f"Skipped combinations: {submission.skipped}")
        await service.scheduler.join()
    finally:
        await service.stop()

    failures = 0
    for job_id in submission.job_ids:
        status = service.status(job_id)
        print(json.dumps(status.model_dump(mode="json")))
        if status.result and not status.result.success:
            failures += 1
    return 1 if failures else 0


def main() -> None:
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)

    configure_logging()
    try:
        sys.exit(asyncio.run(render(Path(sys.argv[1]))))
    except ValidationFailure as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
