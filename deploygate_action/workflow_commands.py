"""
GitHub Actions workflow commands: logging, secret masking, step outputs.

PURPOSE:
    Every module logs through the standard `logging` module. This file installs
    the one handler that turns log records into the runner's workflow-command
    syntax, so a `logger.warning(...)` shows up as a yellow annotation in the
    job summary and a `logger.error(...)` as a red one.

    It also owns the two other runner contracts the pipeline needs:
      - `::add-mask::` so the runner scrubs a value from all later log lines
      - the `$GITHUB_OUTPUT` file for step outputs

    See: https://docs.github.com/actions/using-workflows/workflow-commands-for-github-actions
"""

import logging
import os
import sys
import uuid
from typing import Optional, TextIO


logger = logging.getLogger(__name__)

_COMMAND_BY_LEVEL = {
    logging.DEBUG: "debug",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "error",
}


def escape_data(value: str) -> str:
    """Escape a command payload (%, CR and LF would otherwise end the command)."""
    if value is None:
        return ""
    return str(value).replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class WorkflowCommandFormatter(logging.Formatter):
    """INFO prints plain lines; other levels become `::<level>::` commands."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        command = _COMMAND_BY_LEVEL.get(record.levelno)
        if command is None:
            return message
        return f"::{command}::{escape_data(message)}"


def configure_logging(level: int = logging.INFO, stream: Optional[TextIO] = None) -> logging.Handler:
    """
    Route the package logger to the runner log.

    Idempotent: calling it twice replaces the previous handler instead of
    printing every line twice. Returns the installed handler.
    """
    root = logging.getLogger("deploygate_action")
    for handler in list(root.handlers):
        if isinstance(handler.formatter, WorkflowCommandFormatter):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(WorkflowCommandFormatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False
    return handler


def mask_value(value: Optional[str], stream: Optional[TextIO] = None) -> None:
    """
    Ask the runner to redact `value` from every later log line.

    Masks are registered per line because the runner matches line by line.
    """
    if not value:
        return
    out = stream or sys.stdout
    for line in str(value).splitlines():
        if line.strip():
            out.write(f"::add-mask::{line}\n")
    out.flush()


def set_output(name: str, value: str) -> bool:
    """
    Append a step output to the `$GITHUB_OUTPUT` file.

    Uses the delimiter form (`name<<DELIM ... DELIM`) so values containing
    newlines cannot inject extra outputs. Returns False when no output file is
    configured (local runs); the value is then only logged at debug level.
    """
    output_path = os.environ.get("GITHUB_OUTPUT")
    if not output_path:
        logger.debug(f"GITHUB_OUTPUT not set, dropping output '{name}'")
        return False

    delimiter = f"ghadelimiter_{uuid.uuid4()}"
    with open(output_path, "a", encoding="utf-8") as f:
        f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
    return True
