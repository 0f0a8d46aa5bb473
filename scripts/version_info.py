#!/usr/bin/env python3
"""Extract semantic version components from release tags."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from shared import log_event

LOGGER = logging.getLogger("floating_tags.version_info")

TAG_REF_PREFIX = "refs/tags/"
EXPECTED_FORMAT = "v1.2.3 or 1.2.3 (with optional prerelease/build)"
EXACT_VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)(?:-([^+]+))?(?:\+(.+))?\Z", re.ASCII)
# Same pattern without the leading anchor: finds versions behind custom prefixes.
EMBEDDED_VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)(?:-([^+]+))?(?:\+(.+))?\Z", re.ASCII)


class VersionParseError(ValueError):
    def __init__(self, tag: str):
        super().__init__(f"Invalid semantic version format: {tag}. Expected format: {EXPECTED_FORMAT}")
        self.tag = tag


@dataclass(frozen=True)
class VersionInfo:
    major: int
    minor: int
    patch: int
    original: str
    prerelease: str | None = None
    build: str | None = None

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def version(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text


def parse_version(tag: str) -> VersionInfo:
    """Parse ``tag`` into a VersionInfo.

    Accepts ``refs/tags/`` qualified names and a single leading ``v``. When the
    whole remainder is not a version, the first ``N.N.N`` run that extends to
    the end of the string is used instead (e.g. ``release-5.1.0``).
    """
    log_event(LOGGER, logging.DEBUG, "version_parse_started", tag=tag)

    tag_name = tag[len(TAG_REF_PREFIX):] if tag.startswith(TAG_REF_PREFIX) else tag
    if tag_name.startswith("v"):
        log_event(LOGGER, logging.DEBUG, "version_prefix_detected", prefix="v")
        tag_name = tag_name[1:]

    match = EXACT_VERSION_RE.match(tag_name)
    if match is None:
        match = EMBEDDED_VERSION_RE.search(tag_name)
        if match is not None:
            log_event(
                LOGGER,
                logging.DEBUG,
                "version_extracted_from_custom_prefix",
                tag=tag,
                matched=match.group(0),
            )

    if match is None:
        raise VersionParseError(tag)

    major, minor, patch, prerelease, build = match.groups()
    info = VersionInfo(
        major=int(major, 10),
        minor=int(minor, 10),
        patch=int(patch, 10),
        original=tag,
        prerelease=prerelease or None,
        build=build or None,
    )
    log_event(
        LOGGER,
        logging.DEBUG,
        "version_parsed",
        major=info.major,
        minor=info.minor,
        patch=info.patch,
        prerelease=info.prerelease or "none",
        build=info.build or "none",
        is_prerelease=info.is_prerelease,
    )
    return info


def create_tag_name(prefix: str, major: int, minor: int | None = None) -> str:
    if minor is None:
        return f"{prefix}{major}"
    return f"{prefix}{major}.{minor}"
