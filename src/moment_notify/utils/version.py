"""Version utility module."""

import re
from importlib.metadata import PackageNotFoundError, version

from loguru import logger
from pydantic import BaseModel

DISTRIBUTION_NAME = "moment-notify"


class VersionInfo(BaseModel):
    """Version information model."""

    full_version: str
    version: str
    post_count: str | None = None
    git_commit: str | None = None
    is_dirty: bool = False
    build_timestamp: str | None = None


def get_version() -> VersionInfo:
    """Version of the installed distribution, with a fallback for source checkouts."""
    try:
        full_version = version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        logger.debug(f"Distribution {DISTRIBUTION_NAME} not installed, using default version")
        full_version = "0.1.0-dev"

    base_version, post_count, git_commit, is_dirty, build_timestamp = parse_version(full_version)
    return VersionInfo(
        version=base_version,
        full_version=full_version,
        post_count=post_count,
        git_commit=git_commit,
        is_dirty=is_dirty,
        build_timestamp=build_timestamp,
    )


def parse_version(full_version: str) -> tuple[str, str | None, str | None, bool, str | None]:
    """Split a version such as ``0.1.0.post11+ga524f7b.dirty.2025-03-23T21:41:10Z``.

    Returns:
        ``(base version, post count, git commit, dirty flag, build timestamp)``
    """
    base_match = re.match(r"^(\d+\.\d+\.\d+)", full_version)
    post_match = re.search(r"\.post(\d+)", full_version)
    git_match = re.search(r"\+g([a-f0-9]+)", full_version)
    timestamp_match = re.search(r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z)$", full_version)

    return (
        base_match.group(1) if base_match else full_version,
        post_match.group(1) if post_match else None,
        git_match.group(1) if git_match else None,
        ".dirty" in full_version,
        timestamp_match.group(1) if timestamp_match else None,
    )
