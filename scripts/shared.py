#!/usr/bin/env python3
"""Shared script utilities.

Keep scripts tiny: centralize structured logging + GitHub Actions plumbing.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Mapping

TRUE_VALUES = frozenset({"true", "True", "TRUE"})
FALSE_VALUES = frozenset({"false", "False", "FALSE"})


class ConfigurationError(ValueError):
    """Raised when an action input is missing or malformed."""


def configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, sort_keys=True, default=str))


def annotate(kind: str, message: str) -> None:
    """Emit a workflow command annotation (error, warning or notice)."""
    print(f"::{kind}::{message}", file=sys.stderr)


def read_input(name: str, environ: Mapping[str, str] | None = None) -> str:
    """Read an action input the way the runner exposes it (INPUT_<NAME>)."""
    env = os.environ if environ is None else environ
    key = f"INPUT_{name.replace(' ', '_').upper()}"
    return env.get(key, "").strip()


def parse_bool(name: str, value: str, default: bool) -> bool:
    value = value.strip()
    if not value:
        return default
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ConfigurationError(
        f"input '{name}' must be one of true|True|TRUE|false|False|FALSE, got {value!r}"
    )


def write_outputs(outputs: Mapping[str, str], environ: Mapping[str, str] | None = None) -> None:
    env = os.environ if environ is None else environ
    output_path = env.get("GITHUB_OUTPUT", "")
    lines = [f"{name}={value}" for name, value in outputs.items()]
    if not output_path:
        for line in lines:
            print(line)
        return

    with Path(output_path).open("a", encoding="utf-8") as handle:
        for line in lines:
            handle.write(f"{line}\n")


def append_step_summary(markdown: str, environ: Mapping[str, str] | None = None) -> bool:
    env = os.environ if environ is None else environ
    summary_path = env.get("GITHUB_STEP_SUMMARY", "")
    if not summary_path:
        return False

    with Path(summary_path).open("a", encoding="utf-8") as handle:
        handle.write(markdown.rstrip("\n") + "\n")
    return True
