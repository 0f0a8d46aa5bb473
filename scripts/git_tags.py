#!/usr/bin/env python3
"""Create, move and publish floating git tags."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol

from shared import log_event

LOGGER = logging.getLogger("floating_tags.git_tags")

DEFAULT_REMOTE = "origin"
WORKING_DIRECTORY_ENV = "GIT_WORKING_DIRECTORY"
COMMIT_SHA_RE = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")


class TagOperationError(RuntimeError):
    """Base class for git failures that abort a run."""


class GitCommandError(TagOperationError):
    """git could not be run, or failed in a way the caller did not expect."""


class ResolutionError(TagOperationError):
    pass


class PushError(TagOperationError):
    pass


@dataclass(frozen=True)
class TagOperationResult:
    tag_name: str
    commit_sha: str
    created: bool

    @property
    def updated(self) -> bool:
        return not self.created

    @property
    def action(self) -> str:
        return "created" if self.created else "updated"


class GitTagOps(Protocol):
    def resolve_commit(self, ref: str) -> str: ...

    def tag_exists(self, tag_name: str) -> bool: ...

    def create_tag(self, tag_name: str, commit_sha: str) -> None: ...

    def force_update_tag(self, tag_name: str, commit_sha: str) -> None: ...

    def push_tag(self, tag_name: str, force: bool) -> None: ...


def resolve_working_directory(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    override = env.get(WORKING_DIRECTORY_ENV, "").strip()
    return Path(override or os.getcwd()).resolve()


def short_sha(commit_sha: str) -> str:
    return commit_sha[:7]


def git_error_message(exc: subprocess.CalledProcessError) -> str:
    stderr = (exc.stderr or "").strip()
    return stderr or f"git exited with status {exc.returncode}"


class GitCli:
    """GitTagOps backed by the ``git`` executable."""

    def __init__(self, repo_root: Path, *, remote: str = DEFAULT_REMOTE, echo: bool = False):
        self.repo_root = repo_root
        self.remote = remote
        self.echo = echo

    def run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        command = ["git", *args]
        if self.echo:
            log_event(LOGGER, logging.DEBUG, "git_command", command=" ".join(command), cwd=self.repo_root)
        try:
            return subprocess.run(
                command,
                cwd=self.repo_root,
                capture_output=True,
                text=True,
                check=check,
            )
        except OSError as exc:
            raise GitCommandError(f"unable to run git in {self.repo_root}: {exc}") from exc

    def resolve_commit(self, ref: str) -> str:
        try:
            result = self.run("rev-parse", "--verify", f"{ref}^{{commit}}")
        except subprocess.CalledProcessError as exc:
            raise ResolutionError(f'Failed to resolve commit SHA for "{ref}": {git_error_message(exc)}') from exc

        sha = result.stdout.strip()
        if not COMMIT_SHA_RE.match(sha):
            raise ResolutionError(f'Failed to resolve commit SHA for "{ref}": Invalid commit SHA resolved: {sha}')
        return sha

    def tag_exists(self, tag_name: str) -> bool:
        result = self.run("rev-parse", "--verify", "--quiet", f"refs/tags/{tag_name}", check=False)
        if result.returncode == 0:
            return True
        # --quiet exits 1 with no output for a missing ref; anything else is a real failure.
        if result.returncode == 1 and not result.stderr.strip():
            return False
        raise GitCommandError(
            f"unable to check tag {tag_name}: {result.stderr.strip() or f'git exited with status {result.returncode}'}"
        )

    def create_tag(self, tag_name: str, commit_sha: str) -> None:
        self._tag(tag_name, commit_sha)

    def force_update_tag(self, tag_name: str, commit_sha: str) -> None:
        self._tag("-f", tag_name, commit_sha)

    def _tag(self, *args: str) -> None:
        try:
            self.run("tag", *args)
        except subprocess.CalledProcessError as exc:
            raise GitCommandError(f"git tag {' '.join(args)} failed: {git_error_message(exc)}") from exc

    def push_tag(self, tag_name: str, force: bool) -> None:
        args = ["push", self.remote, f"refs/tags/{tag_name}"]
        if force:
            args.append("--force")
        try:
            self.run(*args)
        except subprocess.CalledProcessError as exc:
            raise PushError(f"Failed to push tag {tag_name}: {git_error_message(exc)}") from exc


class TagReconciler:
    """Point floating tags at a commit, overwriting whatever they pointed at before."""

    def __init__(self, git: GitTagOps):
        self.git = git

    def resolve_commit(self, ref: str) -> str:
        log_event(LOGGER, logging.INFO, "commit_resolving", ref=ref)
        sha = self.git.resolve_commit(ref)
        log_event(LOGGER, logging.INFO, "commit_resolved", ref=ref, sha=short_sha(sha))
        log_event(LOGGER, logging.DEBUG, "commit_resolved_full", ref=ref, sha=sha)
        return sha

    def tag_exists(self, tag_name: str) -> bool:
        exists = self.git.tag_exists(tag_name)
        log_event(LOGGER, logging.DEBUG, "tag_exists_checked", tag=tag_name, exists=exists)
        return exists

    def create_or_update_tag(self, tag_name: str, commit_sha: str) -> TagOperationResult:
        if self.tag_exists(tag_name):
            log_event(LOGGER, logging.INFO, "tag_updating", tag=tag_name, sha=short_sha(commit_sha))
            self.git.force_update_tag(tag_name, commit_sha)
            return TagOperationResult(tag_name=tag_name, commit_sha=commit_sha, created=False)

        log_event(LOGGER, logging.INFO, "tag_creating", tag=tag_name, sha=short_sha(commit_sha))
        self.git.create_tag(tag_name, commit_sha)
        return TagOperationResult(tag_name=tag_name, commit_sha=commit_sha, created=True)

    def push_tag(self, tag_name: str, force: bool) -> None:
        log_event(LOGGER, logging.INFO, "tag_pushing", tag=tag_name, force=force)
        self.git.push_tag(tag_name, force)
        log_event(LOGGER, logging.INFO, "tag_pushed", tag=tag_name)

    def verify_tag(self, tag_name: str, expected_sha: str) -> bool:
        try:
            actual_sha = self.git.resolve_commit(f"refs/tags/{tag_name}")
        except TagOperationError as exc:
            log_event(LOGGER, logging.DEBUG, "tag_verification_failed", tag=tag_name, error=str(exc))
            return False

        matches = actual_sha == expected_sha
        log_event(
            LOGGER,
            logging.DEBUG,
            "tag_verified",
            tag=tag_name,
            passed=matches,
            expected=short_sha(expected_sha),
            actual=short_sha(actual_sha),
        )
        return matches

    def reconcile(self, tag_name: str, commit_sha: str, *, verify: bool = False) -> tuple[TagOperationResult, bool]:
        """Create or move ``tag_name``, publish it, and optionally verify it.

        The push is forced whenever the local tag already existed, so a stale
        remote tag is overwritten too. Returns the operation result and whether
        verification passed (always True when ``verify`` is off).
        """
        result = self.create_or_update_tag(tag_name, commit_sha)
        self.push_tag(tag_name, force=result.updated)
        verified = self.verify_tag(tag_name, commit_sha) if verify else True
        return result, verified
