"""Local stand-in agent CLI for supervisor and orchestrator integration tests.

Installed on ``PATH`` under a real backend's executable name, it replays a
prepared output script instead of calling a model.  Behaviour comes from the
environment because the argument list belongs to the adapter under test:

- ``AGENT_RELAY_SCRIPTED_OUTPUT``: file whose content is written to stdout.
- ``AGENT_RELAY_SCRIPTED_LINE_DELAY``: seconds to sleep between lines.
- ``AGENT_RELAY_SCRIPTED_SLEEP``: seconds to sleep after the output.
- ``AGENT_RELAY_SCRIPTED_STDERR``: text written to stderr before exiting.
- ``AGENT_RELAY_SCRIPTED_EXIT_CODE``: process exit code (default 0).
- ``AGENT_RELAY_SCRIPTED_ARGS_FILE``: where to record argv and cwd as JSON.
"""

from __future__ import annotations

import json
import os
import sys
import time
from pathlib import Path

_ENV_PREFIX = "AGENT_RELAY_SCRIPTED_"


def main(argv: list[str] | None = None) -> int:
    """Replay the configured script and exit with the configured code."""

    args = list(sys.argv[1:] if argv is None else argv)
    args_file = os.getenv(f"{_ENV_PREFIX}ARGS_FILE")
    if args_file:
        Path(args_file).write_text(
            json.dumps({"argv": args, "cwd": os.getcwd()}),
            "utf-8",
        )

    output_path = os.getenv(f"{_ENV_PREFIX}OUTPUT")
    line_delay = float(os.getenv(f"{_ENV_PREFIX}LINE_DELAY", "0"))
    if output_path:
        text = Path(output_path).read_text("utf-8")
        for line in text.splitlines(keepends=True):
            sys.stdout.write(line)
            sys.stdout.flush()
            if line_delay:
                time.sleep(line_delay)

    sleep_seconds = float(os.getenv(f"{_ENV_PREFIX}SLEEP", "0"))
    if sleep_seconds:
        time.sleep(sleep_seconds)

    stderr_text = os.getenv(f"{_ENV_PREFIX}STDERR")
    if stderr_text:
        sys.stderr.write(stderr_text)
        sys.stderr.flush()
    return int(os.getenv(f"{_ENV_PREFIX}EXIT_CODE", "0"))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
