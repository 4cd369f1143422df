"""Template Domain Models.

A template is an administrator-edited configuration declaring, per
property, how values are derived and validated. Settings are stored
loosely by the host forms (strings, numbers, booleans, "0"/"1"), so the
models normalise them on load:
- booleans accept true/1/"1"/"true"/"yes"/"on"
- integer bounds treat 0 and "" as not set
- ordering keys accept a mapping or "term asc" lines

Field aliases follow the host storage keys ("o:data_type", "min_values"...).
"""

import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.resource_models import ResourceKind

DEFAULT_TITLE_PROPERTY = "dcterms:title"

# Annotation template option meaning "no template at all".
NO_TEMPLATE = "none"


def value_is_true(value: Any) -> bool:
    """Check if a stored setting is true (true, 1, "1", "true", "yes", "on").

    A value can be neither true nor false.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value == 1
    return isinstance(value, str) and value.strip().lower() in ("1", "true", "yes", "on")


def value_is_false(value: Any) -> bool:
    """Check if a stored setting is false (false, 0, "0", "false", "no", "off")."""
    if isinstance(value, bool):
        return not value
    if isinstance(value, int):
        return value == 0
    return isinstance(value, str) and value.strip().lower() in ("0", "false", "no", "off")


def _optional_bound(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip() or 0)
    except ValueError:
        return None
    return number if number > 0 else None


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _as_list(value: Any) -> List[Any]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, dict):
        return list(value.values())
    return [value]


class DataSetConfig(BaseModel):
    """Settings of one data set of a property binding.

    A binding may hold several data sets, one per data type, each evaluated
    independently.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    data_types: List[str] = Field(default_factory=list, alias="o:data_type")
    label: Optional[str] = Field(None, alias="o:alternate_label")
    comment: Optional[str] = Field(None, alias="o:alternate_comment")
    is_required: bool = Field(False, alias="o:is_required")
    is_private: bool = Field(False, alias="o:is_private")

    default_value: Optional[str] = None
    automatic_value: Optional[str] = None
    automatic_value_issued: Optional[str] = None
    display_value: Optional[str] = None
    unique_value: bool = False
    locked_value: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_values: Optional[int] = None
    max_values: Optional[int] = None
    input_control: Optional[str] = None
    split_separator: Optional[str] = None
    order_by_linked_resource_properties: Dict[str, str] = Field(default_factory=dict)
    custom_vocab_open: bool = False
    value_annotations_template: Optional[str] = None

    @field_validator("data_types", mode="before")
    @classmethod
    def _parse_data_types(cls, v):
        return [str(dt).strip() for dt in _as_list(v) if str(dt).strip()]

    @field_validator(
        "is_required", "is_private", "unique_value", "locked_value", "custom_vocab_open",
        mode="before",
    )
    @classmethod
    def _parse_flag(cls, v):
        return value_is_true(v)

    @field_validator("min_length", "max_length", "min_values", "max_values", mode="before")
    @classmethod
    def _parse_bound(cls, v):
        return _optional_bound(v)

    @field_validator(
        "label", "comment", "default_value", "automatic_value", "display_value",
        "input_control", mode="before",
    )
    @classmethod
    def _parse_text(cls, v):
        return _optional_text(v)

    @field_validator("split_separator", mode="before")
    @classmethod
    def _parse_separator(cls, v):
        # A separator may be a single space, so it is not stripped.
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("automatic_value_issued", "value_annotations_template", mode="before")
    @classmethod
    def _parse_token(cls, v):
        if v is None or isinstance(v, bool):
            return None
        text = str(v).strip()
        return text or None

    @field_validator("order_by_linked_resource_properties", mode="before")
    @classmethod
    def _parse_ordering(cls, v):
        if not v:
            return {}
        if isinstance(v, str):
            v = [line for line in re.split(r"[\r\n]+", v) if line.strip()]
        ordering: Dict[str, str] = {}
        if isinstance(v, dict):
            items = v.items()
        else:
            items = []
            for entry in v:
                parts = str(entry).replace("=", " ").split()
                if parts:
                    items.append((parts[0], parts[1] if len(parts) > 1 else "asc"))
        for term, direction in items:
            direction = str(direction or "asc").strip().lower()
            ordering[str(term).strip()] = "desc" if direction == "desc" else "asc"
        return ordering

    @property
    def primary_data_type(self) -> Optional[str]:
        return self.data_types[0] if self.data_types else None

    @property
    def issue_on_first_publish(self) -> bool:
        return (self.automatic_value_issued or "").lower() == "first"

    def matches_data_type(self, data_type: str) -> bool:
        """A data set without declared data types accepts every value."""
        return not self.data_types or data_type in self.data_types


class PropertyBinding(BaseModel):
    """Link between a template and a property, with its data sets."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    property_term: str = Field(..., alias="term")
    property_id: Optional[int] = None
    data: List[DataSetConfig] = Field(default_factory=lambda: [DataSetConfig()])

    @field_validator("data", mode="before")
    @classmethod
    def _parse_data(cls, v):
        if v is None or v == []:
            return [DataSetConfig()]
        if isinstance(v, dict):
            return [v]
        return v


class TemplateSettings(BaseModel):
    """Template-level settings bag. Read-only to the pipeline."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    use_for_resources: List[ResourceKind] = Field(default_factory=list)
    require_resource_class: bool = False
    closed_class_list: bool = False
    suggested_resource_classes: Dict[str, int] = Field(default_factory=dict)
    media_templates_minimum: Dict[str, int] = Field(default_factory=dict)
    item_sets: List[int] = Field(default_factory=list)
    automatic_values: Optional[str] = None
    value_annotations_template: Optional[str] = None
    title_fallback_properties: List[str] = Field(default_factory=list)

    @field_validator("use_for_resources", mode="before")
    @classmethod
    def _parse_kinds(cls, v):
        return [ResourceKind.parse(kind) for kind in _as_list(v) if kind]

    @field_validator("require_resource_class", "closed_class_list", mode="before")
    @classmethod
    def _parse_flag(cls, v):
        return value_is_true(v)

    @field_validator("suggested_resource_classes", mode="before")
    @classmethod
    def _parse_classes(cls, v):
        if not v:
            return {}
        if isinstance(v, dict):
            return {str(term): int(class_id) for term, class_id in v.items()}
        return {str(class_id): int(class_id) for class_id in _as_list(v)}

    @field_validator("media_templates_minimum", mode="before")
    @classmethod
    def _parse_minimums(cls, v):
        if not v:
            return {}
        minimums = {}
        for key, minimum in dict(v).items():
            number = _optional_bound(minimum)
            if number:
                minimums[str(key)] = number
        return minimums

    @field_validator("item_sets", mode="before")
    @classmethod
    def _parse_item_sets(cls, v):
        ids = []
        for raw in _as_list(v):
            item_set_id = int(raw)
            if item_set_id not in ids:
                ids.append(item_set_id)
        return ids

    @field_validator("automatic_values", mode="before")
    @classmethod
    def _parse_rules(cls, v):
        return _optional_text(v)

    @field_validator("value_annotations_template", mode="before")
    @classmethod
    def _parse_token(cls, v):
        if v is None or isinstance(v, bool):
            return None
        return str(v).strip() or None

    @field_validator("title_fallback_properties", mode="before")
    @classmethod
    def _parse_fallbacks(cls, v):
        if isinstance(v, str):
            v = re.split(r"[\s,]+", v)
        return [str(term).strip() for term in _as_list(v) if str(term).strip()]

    @property
    def default_annotation_template_id(self) -> Optional[int]:
        token = self.value_annotations_template
        return int(token) if token and token.isdigit() else None


class Template(BaseModel):
    """A named, versionless template with its ordered property bindings."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    label: str = ""
    resource_class_id: Optional[int] = None
    title_property: Optional[str] = DEFAULT_TITLE_PROPERTY
    bindings: List[PropertyBinding] = Field(default_factory=list)
    settings: TemplateSettings = Field(default_factory=TemplateSettings)

    def bindings_for(self, term: str) -> List[PropertyBinding]:
        return [b for b in self.bindings if b.property_term == term]

    def first_data_set(self, term: str) -> Optional[DataSetConfig]:
        for binding in self.bindings_for(term):
            if binding.data:
                return binding.data[0]
        return None

    def is_usable_for(self, kind: ResourceKind) -> bool:
        allowed = self.settings.use_for_resources
        return not allowed or kind in allowed

    def has_open_vocabularies(self) -> bool:
        return any(ds.custom_vocab_open for b in self.bindings for ds in b.data)
