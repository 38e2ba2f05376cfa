"""Data models for plugin manifests and receipts"""

from enum import Enum
from typing import Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from plugctl.core.constants import CURRENT_API_VERSION, PLUGIN_KIND
from plugctl.core.exceptions import SelectorError


class _ManifestModel(BaseModel):
    """Base for manifest models: camelCase aliases, accepts field names too"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class SelectorOperator(str, Enum):
    """Operators of a label selector requirement"""
    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"


class LabelSelectorRequirement(_ManifestModel):
    """A key/operator/values expression over labels"""
    key: str
    operator: str
    values: List[str] = Field(default_factory=list)

    def validate_requirement(self) -> None:
        """
        Check that the requirement is well formed

        Raises:
            SelectorError: If operator is unknown or values don't fit it
        """
        if not self.key:
            raise SelectorError("selector requirement has an empty key")
        try:
            operator = SelectorOperator(self.operator)
        except ValueError:
            raise SelectorError(f"unknown selector operator {self.operator!r} for key {self.key!r}")

        if operator in (SelectorOperator.IN, SelectorOperator.NOT_IN) and not self.values:
            raise SelectorError(f"operator {operator.value} for key {self.key!r} requires values")
        if operator in (SelectorOperator.EXISTS, SelectorOperator.DOES_NOT_EXIST) and self.values:
            raise SelectorError(f"operator {operator.value} for key {self.key!r} must not have values")

    def matches(self, labels: Mapping[str, str]) -> bool:
        operator = SelectorOperator(self.operator)
        if operator == SelectorOperator.IN:
            return self.key in labels and labels[self.key] in self.values
        if operator == SelectorOperator.NOT_IN:
            return self.key not in labels or labels[self.key] not in self.values
        if operator == SelectorOperator.EXISTS:
            return self.key in labels
        return self.key not in labels


class LabelSelector(_ManifestModel):
    """Set of label constraints matched against the target environment"""
    match_labels: Dict[str, str] = Field(default_factory=dict, alias="matchLabels")
    match_expressions: List[LabelSelectorRequirement] = Field(
        default_factory=list, alias="matchExpressions"
    )

    def validate_selector(self) -> None:
        """
        Raises:
            SelectorError: If any label or expression is malformed
        """
        for key in self.match_labels:
            if not key:
                raise SelectorError("selector has an empty label key")
        for requirement in self.match_expressions:
            requirement.validate_requirement()

    def matches(self, labels: Mapping[str, str]) -> bool:
        """
        Every matchLabels key must be present in labels with an equal value
        and every expression must hold. Extra labels are ignored; an empty
        selector matches everything.
        """
        for key, value in self.match_labels.items():
            if labels.get(key) != value:
                return False
        return all(requirement.matches(labels) for requirement in self.match_expressions)


class FileOperation(_ManifestModel):
    """Copy a file or glob from the unpacked archive into the install directory"""
    from_: str = Field(alias="from")
    to: str = ""


class Platform(_ManifestModel):
    """One os/arch specific artifact of a plugin"""
    selector: Optional[LabelSelector] = None
    uri: str = ""
    sha256: str = ""
    head: str = ""
    files: List[FileOperation] = Field(default_factory=list)
    bin: str = ""


class PluginSpec(_ManifestModel):
    """Human metadata and platforms of a plugin"""
    version: str = ""
    homepage: str = ""
    short_description: str = Field(default="", alias="shortDescription")
    description: str = ""
    caveats: str = ""
    platforms: List[Platform] = Field(default_factory=list)


class ObjectMeta(_ManifestModel):
    name: str


class Plugin(_ManifestModel):
    """Plugin manifest as read from an index"""
    api_version: str = Field(default=CURRENT_API_VERSION, alias="apiVersion")
    kind: str = PLUGIN_KIND
    metadata: ObjectMeta
    spec: PluginSpec = Field(default_factory=PluginSpec)

    @property
    def name(self) -> str:
        return self.metadata.name


class SourceIndex(_ManifestModel):
    name: str


class ReceiptStatus(_ManifestModel):
    source: SourceIndex


class Receipt(_ManifestModel):
    """Persisted proof of install: manifest snapshot plus the index it came from"""
    plugin: Plugin
    status: ReceiptStatus

    @property
    def name(self) -> str:
        return self.plugin.name


def dump_model(model: BaseModel) -> dict:
    """Serialize a manifest model with its YAML field names"""
    return model.model_dump(mode="json", by_alias=True, exclude_defaults=False)
