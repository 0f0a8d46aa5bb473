#!/usr/bin/env python3
"""Move floating major (and optionally minor) tags to the commit of a release tag."""

from __future__ import annotations

import argparse
import enum
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from git_tags import (
    DEFAULT_REMOTE,
    GitCli,
    GitTagOps,
    TagOperationError,
    TagOperationResult,
    TagReconciler,
    resolve_working_directory,
    short_sha,
)
from shared import (
    ConfigurationError,
    annotate,
    append_step_summary,
    configure_logging,
    log_event,
    parse_bool,
    read_input,
    write_outputs,
)
from version_info import VersionParseError, create_tag_name, parse_version

LOGGER = logging.getLogger("floating_tags.tag_floating_version")


@dataclass(frozen=True)
class ActionInputs:
    tag: str
    ref_tag: str
    working_directory: Path
    prefix: str = "v"
    update_minor: bool = False
    ignore_prerelease: bool = True
    verbose: bool = False
    remote: str = DEFAULT_REMOTE


class RunStatus(enum.Enum):
    SUCCESS = "success"
    SKIPPED_PRERELEASE = "skipped_prerelease"
    FAILED = "failed"


@dataclass
class RunOutcome:
    status: RunStatus
    message: str
    major: TagOperationResult | None = None
    minor: TagOperationResult | None = None
    verification_warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.SUCCESS

    def outputs(self) -> dict[str, str]:
        values: dict[str, str] = {}
        if self.major is not None:
            values["majorTag"] = self.major.tag_name
        if self.minor is not None:
            values["minorTag"] = self.minor.tag_name
        return values

    def results(self) -> list[TagOperationResult]:
        return [result for result in (self.major, self.minor) if result is not None]


def parse_args(argv: list[str] | None = None, environ: Mapping[str, str] | None = None) -> argparse.Namespace:
    env = os.environ if environ is None else environ
    parser = argparse.ArgumentParser(
        description="Create or move floating version tags (v1, v1.2) to the commit of a release tag."
    )
    parser.add_argument(
        "--tag",
        default=read_input("tag", env),
        help="Release tag to read the version from (default: $INPUT_TAG).",
    )
    parser.add_argument(
        "--ref-tag",
        default=read_input("refTag", env),
        help="Reference the floating tags should point at (default: --tag).",
    )
    parser.add_argument(
        "--prefix",
        default=read_input("prefix", env),
        help="Prefix for floating tag names (default: v).",
    )
    parser.add_argument(
        "--update-minor",
        default=read_input("updateMinor", env),
        help="Also move the major.minor tag: true|false (default: false).",
    )
    parser.add_argument(
        "--ignore-prerelease",
        default=read_input("ignorePrerelease", env),
        help="Fail without touching tags when the release is a prerelease: true|false (default: true).",
    )
    parser.add_argument(
        "--verbose",
        default=read_input("verbose", env),
        help="Debug logging and post-push verification: true|false (default: false).",
    )
    parser.add_argument(
        "--remote",
        default=DEFAULT_REMOTE,
        help="Remote to push floating tags to (default: origin).",
    )
    return parser.parse_args(argv)


def build_inputs(args: argparse.Namespace, environ: Mapping[str, str] | None = None) -> ActionInputs:
    tag = (args.tag or "").strip()
    if not tag:
        raise ConfigurationError("Input required and not supplied: tag")

    return ActionInputs(
        tag=tag,
        ref_tag=(args.ref_tag or "").strip() or tag,
        prefix=args.prefix or "v",
        update_minor=parse_bool("updateMinor", args.update_minor or "", default=False),
        ignore_prerelease=parse_bool("ignorePrerelease", args.ignore_prerelease or "", default=True),
        verbose=parse_bool("verbose", args.verbose or "", default=False),
        remote=args.remote or DEFAULT_REMOTE,
        working_directory=resolve_working_directory(environ),
    )


def _reconcile_floating_tag(
    reconciler: TagReconciler,
    outcome: RunOutcome,
    tag_name: str,
    commit_sha: str,
    verify: bool,
) -> TagOperationResult:
    log_event(LOGGER, logging.INFO, "floating_tag_reconciling", tag=tag_name)
    result, verified = reconciler.reconcile(tag_name, commit_sha, verify=verify)
    if not verified:
        log_event(LOGGER, logging.WARNING, "floating_tag_verification_failed", tag=tag_name)
        outcome.verification_warnings.append(tag_name)
    return result


def run(inputs: ActionInputs, git: GitTagOps) -> RunOutcome:
    """Parse the release tag, then create/move and push the floating tags.

    Parsing and the prerelease gate happen before any git call, so a rejected
    tag never touches the repository.
    """
    log_event(
        LOGGER,
        logging.DEBUG,
        "inputs_loaded",
        tag=inputs.tag,
        ref_tag=inputs.ref_tag,
        prefix=inputs.prefix,
        update_minor=inputs.update_minor,
        ignore_prerelease=inputs.ignore_prerelease,
        verbose=inputs.verbose,
    )
    if inputs.ref_tag != inputs.tag:
        log_event(LOGGER, logging.INFO, "ref_tag_override", tag=inputs.tag, ref_tag=inputs.ref_tag)

    log_event(LOGGER, logging.INFO, "version_extracting", tag=inputs.tag)
    try:
        version = parse_version(inputs.tag)
    except VersionParseError as exc:
        log_event(LOGGER, logging.ERROR, "version_parse_failed", tag=inputs.tag, error=str(exc))
        return RunOutcome(RunStatus.FAILED, str(exc))
    log_event(LOGGER, logging.INFO, "version_extracted", tag=inputs.tag, version=version.version)

    if version.is_prerelease:
        if inputs.ignore_prerelease:
            log_event(
                LOGGER,
                logging.WARNING,
                "prerelease_skipped",
                tag=inputs.tag,
                prerelease=version.prerelease,
            )
            return RunOutcome(
                RunStatus.SKIPPED_PRERELEASE,
                f'Prerelease versions are ignored. Tag "{inputs.tag}" contains prerelease identifier '
                f'"{version.prerelease}"',
            )
        log_event(LOGGER, logging.DEBUG, "prerelease_allowed", tag=inputs.tag, prerelease=version.prerelease)

    reconciler = TagReconciler(git)
    outcome = RunOutcome(RunStatus.SUCCESS, "Successfully created/updated floating version tags")
    try:
        commit_sha = reconciler.resolve_commit(inputs.ref_tag)

        major_name = create_tag_name(inputs.prefix, version.major)
        outcome.major = _reconcile_floating_tag(reconciler, outcome, major_name, commit_sha, inputs.verbose)

        if inputs.update_minor:
            minor_name = create_tag_name(inputs.prefix, version.major, version.minor)
            outcome.minor = _reconcile_floating_tag(reconciler, outcome, minor_name, commit_sha, inputs.verbose)
    except TagOperationError as exc:
        log_event(LOGGER, logging.ERROR, "floating_tag_failed", tag=inputs.tag, error=str(exc))
        return RunOutcome(
            RunStatus.FAILED,
            str(exc),
            major=outcome.major,
            minor=outcome.minor,
            verification_warnings=outcome.verification_warnings,
        )

    log_event(
        LOGGER,
        logging.INFO,
        "floating_tags_done",
        created=[result.tag_name for result in outcome.results() if result.created],
        updated=[result.tag_name for result in outcome.results() if result.updated],
    )
    return outcome


def render_summary(outcome: RunOutcome, tag: str) -> str:
    lines = [
        f"### Floating tags for `{tag}`",
        "",
        "| Tag | Action | Commit |",
        "| --- | --- | --- |",
    ]
    for result in outcome.results():
        lines.append(f"| `{result.tag_name}` | {result.action} | `{short_sha(result.commit_sha)}` |")
    return "\n".join(lines) + "\n"


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        inputs = build_inputs(args)
    except ConfigurationError as exc:
        configure_logging("INFO")
        log_event(LOGGER, logging.ERROR, "configuration_invalid", error=str(exc))
        annotate("error", str(exc))
        return 1

    configure_logging("DEBUG" if inputs.verbose else "INFO")
    git = GitCli(inputs.working_directory, remote=inputs.remote, echo=inputs.verbose)
    outcome = run(inputs, git)

    for tag_name in outcome.verification_warnings:
        annotate("warning", f"Tag {tag_name} verification failed")

    if outcome.status is RunStatus.SKIPPED_PRERELEASE:
        annotate("warning", f"Tag {inputs.tag} is a prerelease version. Skipping due to ignorePrerelease=true")

    try:
        # Tags already pushed before a failure are still reported.
        write_outputs(outcome.outputs())
    except OSError as exc:
        annotate("error", f"failed to write action outputs: {exc}")
        return 1

    if not outcome.ok:
        annotate("error", outcome.message)
        return 1

    try:
        append_step_summary(render_summary(outcome, inputs.tag))
    except OSError as exc:
        annotate("error", f"failed to write step summary: {exc}")
        return 1

    for result in outcome.results():
        print(f"{result.action.capitalize()} {result.tag_name} -> {short_sha(result.commit_sha)}", file=sys.stderr)
    print(outcome.message, file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
