"""Tests for version utility module."""

from importlib.metadata import PackageNotFoundError

import pytest

from moment_notify.utils import version as version_module
from moment_notify.utils.version import get_version, parse_version


class TestGetVersion:
    """Version lookup from the installed distribution."""

    def test_installed_version_is_parsed(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(version_module, "version", lambda name: "0.1.0.post11+ga524f7b.dirty.2025-03-23T21:41:10Z")
        result = get_version()

        assert result.version == "0.1.0"
        assert result.post_count == "11"
        assert result.git_commit == "a524f7b"
        assert result.is_dirty is True
        assert result.build_timestamp == "2025-03-23T21:41:10Z"

    def test_source_checkout_falls_back(self, monkeypatch: pytest.MonkeyPatch):
        def missing(name: str) -> str:
            raise PackageNotFoundError(name)

        monkeypatch.setattr(version_module, "version", missing)
        result = get_version()

        assert result.full_version == "0.1.0-dev"
        assert result.version == "0.1.0"
        assert result.git_commit is None


class TestParseVersion:
    @pytest.mark.parametrize(
        "full,expected",
        [
            ("0.1.0.post11+ga524f7b.dirty.2025-03-23T21:41:10Z", ("0.1.0", "11", "a524f7b", True, "2025-03-23T21:41:10Z")),
            ("0.1.0.post11+ga524f7b.2025-03-23T21:41:10Z", ("0.1.0", "11", "a524f7b", False, "2025-03-23T21:41:10Z")),
            ("0.1.0+ga524f7b.dirty", ("0.1.0", None, "a524f7b", True, None)),
            ("1.2.3", ("1.2.3", None, None, False, None)),
        ],
    )
    def test_components(self, full: str, expected: tuple):
        assert parse_version(full) == expected

    def test_unparseable_version_is_kept_whole(self):
        assert parse_version("dev")[0] == "dev"
