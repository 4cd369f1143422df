"""Resource Domain Models.

Defines the fixed shape every pipeline step works on:
- Resource: a content record (item, item set, media, annotation)
- Value: one metadata entry under a property, with exactly one payload
- Annotation: a resource-like sub-record qualifying a single value

Host requests arrive as loose JSON-LD style maps where a property key may be
absent, a scalar, a single object or a list. `Resource.from_dict` converts
them once, so the services never probe for optional keys.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union


class ResourceKind(str, Enum):
    """Structural kind of a resource, named after the host resource names."""

    ITEM = "items"                            # Aggregate: item sets + media
    ITEM_SET = "item_sets"                    # Container
    MEDIA = "media"                           # Leaf attached to an item
    VALUE_ANNOTATION = "value_annotations"    # Sub-record of a value
    ANNOTATION = "annotations"

    @classmethod
    def parse(cls, raw: Any) -> "ResourceKind":
        """Accept resource names and JSON-LD types ("o:Item", "items")."""
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, (list, tuple)):
            for candidate in raw:
                try:
                    return cls.parse(candidate)
                except ValueError:
                    continue
            raise ValueError(f"Unknown resource kind: {raw!r}")
        text = str(raw or "").strip()
        aliases = {
            "o:Item": cls.ITEM,
            "item": cls.ITEM,
            "o:ItemSet": cls.ITEM_SET,
            "item_set": cls.ITEM_SET,
            "o:Media": cls.MEDIA,
            "o:ValueAnnotation": cls.VALUE_ANNOTATION,
            "value_annotation": cls.VALUE_ANNOTATION,
            "o:Annotation": cls.ANNOTATION,
            "annotation": cls.ANNOTATION,
        }
        if text in aliases:
            return aliases[text]
        return cls(text)


class PayloadKind(str, Enum):
    """Main type of a value payload."""

    LITERAL = "literal"
    URI = "uri"
    RESOURCE = "resource"
    ANNOTATION = "annotation"


def main_data_type(data_type: Optional[str]) -> PayloadKind:
    """Map a data type tag to its payload kind.

    Examples:
        "resource:item" -> RESOURCE, "valuesuggest:geonames" -> URI,
        "customvocab:3" -> LITERAL
    """
    dt = (data_type or "literal").strip()
    if dt == "resource" or dt.startswith("resource:"):
        return PayloadKind.RESOURCE
    if dt == "uri" or dt.startswith("valuesuggest"):
        return PayloadKind.URI
    if dt == "annotation" or dt.startswith("annotation:"):
        return PayloadKind.ANNOTATION
    return PayloadKind.LITERAL


# ========================================
# Payload variants
# ========================================

@dataclass
class LiteralPayload:
    text: str
    kind: PayloadKind = field(default=PayloadKind.LITERAL, init=False)

    def dedup_key(self) -> Tuple[str, Any]:
        return (self.kind.value, self.text.strip())


@dataclass
class UriPayload:
    uri: str
    label: Optional[str] = None
    kind: PayloadKind = field(default=PayloadKind.URI, init=False)

    def dedup_key(self) -> Tuple[str, Any]:
        return (self.kind.value, self.uri.strip())


@dataclass
class ResourceRefPayload:
    resource_id: int
    kind: PayloadKind = field(default=PayloadKind.RESOURCE, init=False)

    def dedup_key(self) -> Tuple[str, Any]:
        return (self.kind.value, int(self.resource_id))


@dataclass
class AnnotationRefPayload:
    annotation_id: int
    kind: PayloadKind = field(default=PayloadKind.ANNOTATION, init=False)

    def dedup_key(self) -> Tuple[str, Any]:
        return (self.kind.value, int(self.annotation_id))


Payload = Union[LiteralPayload, UriPayload, ResourceRefPayload, AnnotationRefPayload]


# ========================================
# Values and resources
# ========================================

@dataclass
class Value:
    """One metadata entry under a property.

    Attributes:
        property_term: Property the value belongs to (e.g. "dcterms:title")
        payload: Exactly one payload variant
        data_type: Data type tag (e.g. "literal", "resource:item", "customvocab:3")
        is_public: Visibility of the value
        language: Optional language tag for literals
        annotation: Optional sub-record qualifying this value
    """

    property_term: str
    payload: Payload
    data_type: str = "literal"
    is_public: bool = True
    language: Optional[str] = None
    annotation: Optional["Annotation"] = None
    is_placeholder: bool = False

    @property
    def kind(self) -> PayloadKind:
        return self.payload.kind

    @property
    def is_literal(self) -> bool:
        return self.payload.kind == PayloadKind.LITERAL

    @property
    def is_resource(self) -> bool:
        return self.payload.kind == PayloadKind.RESOURCE

    @property
    def text(self) -> Optional[str]:
        """Literal text, or the label of a URI value."""
        if isinstance(self.payload, LiteralPayload):
            return self.payload.text
        if isinstance(self.payload, UriPayload):
            return self.payload.label
        return None

    @property
    def uri(self) -> Optional[str]:
        return self.payload.uri if isinstance(self.payload, UriPayload) else None

    @property
    def linked_resource_id(self) -> Optional[int]:
        if isinstance(self.payload, ResourceRefPayload):
            return self.payload.resource_id
        return None

    def dedup_key(self) -> Tuple[str, Any]:
        return self.payload.dedup_key()

    def with_text(self, text: str) -> "Value":
        """Copy this literal value with another text, keeping every other attribute."""
        clone = copy.deepcopy(self)
        clone.payload = LiteralPayload(text)
        return clone

    @classmethod
    def literal(cls, property_term: str, text: str, data_type: str = "literal", **kwargs) -> "Value":
        return cls(property_term=property_term, payload=LiteralPayload(text), data_type=data_type, **kwargs)

    @classmethod
    def from_uri(cls, property_term: str, uri: str, label: Optional[str] = None,
                 data_type: str = "uri", **kwargs) -> "Value":
        return cls(property_term=property_term, payload=UriPayload(uri, label), data_type=data_type, **kwargs)

    @classmethod
    def link(cls, property_term: str, resource_id: int, data_type: str = "resource", **kwargs) -> "Value":
        return cls(property_term=property_term, payload=ResourceRefPayload(int(resource_id)),
                   data_type=data_type, **kwargs)

    @classmethod
    def from_dict(cls, property_term: str, data: Any) -> "Value":
        """Build a value from a host map like {"type": "literal", "@value": "x"}.

        A bare scalar is read as a literal.
        """
        if not isinstance(data, dict):
            return cls.literal(property_term, str(data))

        data_type = str(data.get("type") or "").strip()
        is_public = _is_public(data.get("is_public", True))
        language = data.get("@language") or None

        annotation = None
        if data.get("@annotation"):
            annotation = Annotation.from_dict(data["@annotation"])

        if data.get("value_resource_id") not in (None, ""):
            payload: Payload = ResourceRefPayload(int(data["value_resource_id"]))
            data_type = data_type or "resource"
        elif data.get("value_annotation_id") not in (None, ""):
            payload = AnnotationRefPayload(int(data["value_annotation_id"]))
            data_type = data_type or "annotation"
        elif data.get("@id"):
            payload = UriPayload(str(data["@id"]), data.get("o:label") or None)
            data_type = data_type or "uri"
        else:
            payload = LiteralPayload("" if data.get("@value") is None else str(data["@value"]))
            data_type = data_type or "literal"

        return cls(
            property_term=property_term,
            payload=payload,
            data_type=data_type,
            is_public=is_public,
            language=language,
            annotation=annotation,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the host map shape."""
        data: Dict[str, Any] = {"type": self.data_type, "is_public": self.is_public}
        if isinstance(self.payload, LiteralPayload):
            data["@value"] = self.payload.text
        elif isinstance(self.payload, UriPayload):
            data["@id"] = self.payload.uri
            if self.payload.label is not None:
                data["o:label"] = self.payload.label
        elif isinstance(self.payload, ResourceRefPayload):
            data["value_resource_id"] = self.payload.resource_id
        else:
            data["value_annotation_id"] = self.payload.annotation_id
        if self.language:
            data["@language"] = self.language
        if self.annotation is not None:
            data["@annotation"] = self.annotation.to_dict()
        return data


# Keys of a host map that are not property terms.
_RESERVED_PREFIX = ("o:", "@", "o-")


@dataclass
class Resource:
    """A content record, before or after persistence.

    The same shape serves as the field map of a write request (id is None
    until the storage layer assigns one) and as the hydrated entity.
    """

    kind: ResourceKind
    id: Optional[int] = None
    title: Optional[str] = None
    is_public: bool = True
    template_id: Optional[int] = None
    class_id: Optional[int] = None
    values: Dict[str, List[Value]] = field(default_factory=dict)
    item_set_ids: List[int] = field(default_factory=list)
    media: List["Resource"] = field(default_factory=list)

    # ----------------------------------------
    # Value access
    # ----------------------------------------

    def get_values(self, term: str, data_types: Optional[List[str]] = None) -> List[Value]:
        """Values of a property, optionally restricted to some data types."""
        values = self.values.get(term, [])
        if data_types:
            return [v for v in values if v.data_type in data_types]
        return list(values)

    def has_values(self, term: str) -> bool:
        return bool(self.values.get(term))

    def add_value(self, value: Value) -> None:
        self.values.setdefault(value.property_term, []).append(value)

    def set_values(self, term: str, values: List[Value]) -> None:
        self.values[term] = list(values)

    def iter_values(self) -> Iterator[Value]:
        for values in self.values.values():
            yield from values

    def first_text(self, term: str) -> str:
        """Display text of the first value of a property, "" when none."""
        for value in self.values.get(term, []):
            if isinstance(value.payload, UriPayload):
                return value.payload.label or value.payload.uri
            if isinstance(value.payload, LiteralPayload):
                return value.payload.text
            return ""
        return ""

    def first_link(self, term: str) -> Optional[int]:
        """Id linked by the first value of a property, None when it is not a link."""
        for value in self.values.get(term, []):
            if isinstance(value.payload, ResourceRefPayload):
                return value.payload.resource_id
            return None
        return None

    def to_flat(self) -> Dict[str, List[str]]:
        """Flatten to term -> list of texts, used by rule evaluators."""
        flat: Dict[str, List[str]] = {
            "o:is_public": ["1" if self.is_public else "0"],
        }
        if self.class_id is not None:
            flat["o:resource_class"] = [str(self.class_id)]
        if self.template_id is not None:
            flat["o:resource_template"] = [str(self.template_id)]
        for term, values in self.values.items():
            texts = []
            for value in values:
                if isinstance(value.payload, LiteralPayload):
                    texts.append(value.payload.text)
                elif isinstance(value.payload, UriPayload):
                    texts.append(value.payload.uri)
                elif isinstance(value.payload, ResourceRefPayload):
                    texts.append(str(value.payload.resource_id))
            flat[term] = texts
        return flat

    # ----------------------------------------
    # Conversion
    # ----------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any], kind: Any = None) -> "Resource":
        """Build a resource from a host map.

        Args:
            data: Map with "o:*" keys and property terms
            kind: Resource kind, read from "@type" when omitted
        """
        resource_kind = ResourceKind.parse(kind if kind is not None else data.get("@type", "items"))

        template = data.get("o:resource_template")
        resource_class = data.get("o:resource_class")
        item_sets = data.get("o:item_set") or []
        if isinstance(item_sets, dict):
            item_sets = [item_sets]

        resource = cls(
            kind=resource_kind,
            id=_ref_id(data.get("o:id")),
            title=data.get("o:title") or None,
            is_public=_is_public(data.get("o:is_public", True)),
            template_id=_ref_id(template),
            class_id=_ref_id(resource_class),
            item_set_ids=[i for i in (_ref_id(s) for s in item_sets) if i is not None],
        )
        for media in data.get("o:media") or []:
            resource.media.append(Resource.from_dict(media, kind=ResourceKind.MEDIA))

        for key, raw in data.items():
            if key.startswith(_RESERVED_PREFIX) or ":" not in key:
                continue
            if raw is None:
                continue
            entries = raw if isinstance(raw, list) else [raw]
            resource.values[key] = [Value.from_dict(key, entry) for entry in entries]
        return resource

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "@type": self.kind.value,
            "o:is_public": self.is_public,
        }
        if self.id is not None:
            data["o:id"] = self.id
        if self.title is not None:
            data["o:title"] = self.title
        if self.template_id is not None:
            data["o:resource_template"] = {"o:id": self.template_id}
        if self.class_id is not None:
            data["o:resource_class"] = {"o:id": self.class_id}
        if self.item_set_ids:
            data["o:item_set"] = [{"o:id": i} for i in self.item_set_ids]
        if self.media:
            data["o:media"] = [m.to_dict() for m in self.media]
        for term, values in self.values.items():
            data[term] = [v.to_dict() for v in values]
        return data


@dataclass
class Annotation(Resource):
    """Resource-like sub-record attached to a single value."""

    kind: ResourceKind = ResourceKind.VALUE_ANNOTATION

    @classmethod
    def from_dict(cls, data: Dict[str, Any], kind: Any = None) -> "Annotation":
        base = Resource.from_dict(data, kind=ResourceKind.VALUE_ANNOTATION)
        return cls(
            kind=ResourceKind.VALUE_ANNOTATION,
            id=base.id,
            title=base.title,
            is_public=base.is_public,
            template_id=base.template_id,
            class_id=base.class_id,
            values=base.values,
        )


def _is_public(raw: Any) -> bool:
    """Host visibility flags: "0", "false", "private" and empty values are private."""
    return bool(raw) and str(raw).strip().lower() not in ("0", "false", "private")


def _ref_id(raw: Any) -> Optional[int]:
    """Read an id from 12, "12" or {"o:id": 12}."""
    if isinstance(raw, dict):
        raw = raw.get("o:id")
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None
