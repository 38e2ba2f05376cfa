from __future__ import annotations

import pytest

from plugctl.core.exceptions import NoMatchingPlatformError, NoVersionResolvableError, SelectorError
from plugctl.core.index.models import Platform
from plugctl.core.installation.platform import get_download_target, match_platform, resolve_version


def _platform(selector: dict | None, uri: str = "", **kwargs) -> Platform:
    data = {"uri": uri, **kwargs}
    if selector is not None:
        data["selector"] = selector
    return Platform.model_validate(data)


def test_match_platform_first_match_wins() -> None:
    platforms = [
        _platform({"matchLabels": {"os": "darwin"}}, uri="darwin"),
        _platform({"matchLabels": {"os": "linux"}}, uri="linux-any"),
        _platform({"matchLabels": {"os": "linux", "arch": "amd64"}}, uri="linux-amd64"),
    ]
    platform, found = match_platform(platforms, "linux", "amd64")
    assert found
    assert platform.uri == "linux-any"


def test_match_platform_no_match() -> None:
    platforms = [_platform({"matchLabels": {"os": "windows"}})]
    assert match_platform(platforms, "linux", "amd64") == (None, False)


def test_empty_selector_matches_everything_missing_selector_nothing() -> None:
    assert match_platform([_platform(None, uri="none")], "linux", "amd64") == (None, False)

    platform, found = match_platform([_platform(None), _platform({}, uri="empty")], "linux", "amd64")
    assert found
    assert platform.uri == "empty"


def test_match_expressions() -> None:
    platforms = [
        _platform({"matchExpressions": [{"key": "os", "operator": "In", "values": ["linux", "darwin"]}]}, uri="unix"),
        _platform({"matchExpressions": [{"key": "os", "operator": "NotIn", "values": ["linux"]}]}, uri="other"),
    ]
    assert match_platform(platforms, "darwin", "arm64")[0].uri == "unix"
    assert match_platform(platforms, "windows", "amd64")[0].uri == "other"


def test_malformed_selector_is_an_error() -> None:
    platforms = [_platform({"matchExpressions": [{"key": "os", "operator": "Equals", "values": ["linux"]}]})]
    with pytest.raises(SelectorError):
        match_platform(platforms, "linux", "amd64")


def test_resolve_version_rules() -> None:
    both = _platform({}, uri="https://a/b.tar.gz", sha256="ABCDEF", head="https://a/head.tar.gz")
    head_only = _platform({}, head="https://a/head.tar.gz")
    release_only = _platform({}, uri="https://a/b.tar.gz", sha256="abcdef")

    assert resolve_version(both, force_head=True) == ("HEAD", "https://a/head.tar.gz")
    assert resolve_version(both, force_head=False) == ("abcdef", "https://a/b.tar.gz")
    assert resolve_version(head_only, force_head=False) == ("HEAD", "https://a/head.tar.gz")
    assert resolve_version(release_only, force_head=False) == ("abcdef", "https://a/b.tar.gz")

    with pytest.raises(NoVersionResolvableError):
        resolve_version(release_only, force_head=True)


def test_get_download_target(make_plugin) -> None:
    plugin = make_plugin(sha256="ff" * 32, files=[{"from": "bin/foo", "to": "."}], bin="foo")
    version, uri, files, bin_entry = get_download_target(plugin, False, os_name="linux", arch="amd64")

    assert version == "ff" * 32
    assert uri == "https://example.com/foo.tar.gz"
    assert [f.from_ for f in files] == ["bin/foo"]
    assert bin_entry == "foo"


def test_get_download_target_no_platform(make_plugin) -> None:
    plugin = make_plugin(os_name="darwin")
    with pytest.raises(NoMatchingPlatformError, match="os=linux"):
        get_download_target(plugin, False, os_name="linux", arch="amd64")


def test_second_platform_selected_when_first_does_not_match() -> None:
    platforms = [
        _platform({"matchLabels": {"os": "None"}}, uri="first"),
        _platform({"matchLabels": {"os": "foo"}}, uri="second"),
    ]
    platform, found = match_platform(platforms, "foo", "amd64")
    assert found
    assert platform.uri == "second"
