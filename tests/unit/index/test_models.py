from __future__ import annotations

import pytest
import yaml

from plugctl.core.exceptions import SelectorError
from plugctl.core.index.models import LabelSelector, Plugin, dump_model
from plugctl.core.index.validation import is_safe_plugin_name

MANIFEST = """
apiVersion: plugctl.dev/v1alpha2
kind: Plugin
metadata:
  name: ctx
spec:
  version: v0.9.0
  homepage: https://github.com/ahmetb/kubectx
  shortDescription: Switch between contexts
  platforms:
  - selector:
      matchExpressions:
      - key: os
        operator: In
        values: [linux, darwin]
    uri: https://github.com/ahmetb/kubectx/archive/v0.9.0.tar.gz
    sha256: ABC
    files:
    - from: kubectx-*/kubectx
      to: .
    bin: kubectx
"""


def test_parse_manifest_with_aliases() -> None:
    plugin = Plugin.model_validate(yaml.safe_load(MANIFEST))

    assert plugin.name == "ctx"
    assert plugin.spec.short_description == "Switch between contexts"
    platform = plugin.spec.platforms[0]
    assert platform.files[0].from_ == "kubectx-*/kubectx"
    assert platform.files[0].to == "."
    assert platform.selector.match_expressions[0].values == ["linux", "darwin"]


def test_dump_model_uses_manifest_field_names() -> None:
    plugin = Plugin.model_validate(yaml.safe_load(MANIFEST))
    dumped = dump_model(plugin)

    assert dumped["apiVersion"] == "plugctl.dev/v1alpha2"
    assert dumped["spec"]["shortDescription"] == "Switch between contexts"
    assert dumped["spec"]["platforms"][0]["files"][0]["from"] == "kubectx-*/kubectx"
    assert Plugin.model_validate(dumped) == plugin


def test_match_labels_ignore_extra_labels() -> None:
    selector = LabelSelector.model_validate({"matchLabels": {"os": "linux"}})
    assert selector.matches({"os": "linux", "arch": "arm64"})
    assert not selector.matches({"os": "darwin", "arch": "arm64"})
    assert not selector.matches({"arch": "arm64"})
    assert LabelSelector().matches({"os": "anything"})


def test_expression_operators() -> None:
    selector = LabelSelector.model_validate({"matchExpressions": [
        {"key": "os", "operator": "Exists"},
        {"key": "gpu", "operator": "DoesNotExist"},
        {"key": "arch", "operator": "NotIn", "values": ["386"]},
    ]})
    selector.validate_selector()

    assert selector.matches({"os": "linux", "arch": "amd64"})
    assert not selector.matches({"os": "linux", "arch": "386"})
    assert not selector.matches({"os": "linux", "arch": "amd64", "gpu": "yes"})
    assert not selector.matches({"arch": "amd64"})


@pytest.mark.parametrize("expression", [
    {"key": "os", "operator": "Like", "values": ["linux"]},
    {"key": "os", "operator": "In"},
    {"key": "os", "operator": "Exists", "values": ["linux"]},
    {"key": "", "operator": "Exists"},
])
def test_invalid_expressions(expression: dict) -> None:
    selector = LabelSelector.model_validate({"matchExpressions": [expression]})
    with pytest.raises(SelectorError):
        selector.validate_selector()


@pytest.mark.parametrize("name,safe", [
    ("foo", True),
    ("foo-bar_2", True),
    ("", False),
    ("foo/bar", False),
    ("foo\\bar", False),
    ("..", False),
    ("../foo", False),
    (".hidden", False),
    ("/abs", False),
    ("C:", False),
    ("a\x00b", False),
])
def test_is_safe_plugin_name(name: str, safe: bool) -> None:
    assert is_safe_plugin_name(name) is safe
