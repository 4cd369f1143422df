"""Pre-Hydration Enricher.

Derives and injects the values a user did not type, before the storage
layer persists a resource:
- automatic item sets (items only)
- automatic values from the template rule text (needs a rule evaluator)
- exploding delimited literals into several values
- fixed automatic values and the "issued on first publication" date
- ordering of linked resources by a property of the linked resources

Every step fails open: an error is logged and the field map keeps its
state from before that step. Steps compute their result first and assign
it once, so a failing step never leaves a half-updated property.
"""

import inspect
import json
import logging
import re
from functools import cmp_to_key
from typing import Any, Callable, Dict, List, Optional

from domain.ports import Clock, ResourceStore, RuleEvaluator
from domain.resource_models import (
    LiteralPayload,
    Payload,
    PayloadKind,
    Resource,
    ResourceKind,
    ResourceRefPayload,
    UriPayload,
    Value,
    main_data_type,
)
from domain.template_models import DEFAULT_TITLE_PROPERTY, DataSetConfig, Template

logger = logging.getLogger(__name__)

ISSUED_DATE_FORMAT = "%Y-%m-%d"


def natural_key(text: str) -> List[Any]:
    """Case-insensitive natural sort key ("item2" before "item10")."""
    return [int(chunk) if chunk.isdigit() else chunk for chunk in re.split(r"(\d+)", text.lower())]


def natural_compare(a: str, b: str) -> int:
    key_a, key_b = natural_key(a), natural_key(b)
    return (key_a > key_b) - (key_a < key_b)


def display_title(resource: Optional[Resource]) -> str:
    """Title a linked resource is shown with, "" when it is missing."""
    if resource is None:
        return ""
    return resource.title or resource.first_text(DEFAULT_TITLE_PROPERTY)


def is_duplicate(value: Value, existing: List[Value]) -> bool:
    """Check a value against others by its payload key (id, URI or trimmed text)."""
    key = value.dedup_key()
    return any(other.dedup_key() == key for other in existing)


class PreHydrationEnricher:
    """Mutates a not-yet-persisted resource using its template."""

    def __init__(
        self,
        resource_store: ResourceStore,
        clock: Clock,
        rule_evaluator: Optional[RuleEvaluator] = None,
    ):
        """
        Initialize the enricher.

        Args:
            resource_store: Storage used to check that referenced ids exist
            clock: Source of the current date
            rule_evaluator: Optional evaluator of template rule text
        """
        self.resource_store = resource_store
        self.clock = clock
        self.rule_evaluator = rule_evaluator
        self._missing_evaluator_logged = False

    async def enrich(self, template: Template, resource: Resource) -> Resource:
        """
        Apply every enrichment step of the template to the resource.

        Never raises: a failing step is logged and skipped.

        Returns:
            The same resource, enriched
        """
        if resource.kind == ResourceKind.ITEM:
            await self._fail_open("append_automatic_item_sets", self.append_automatic_item_sets, template, resource)
        await self._fail_open(
            "apply_automatic_values_from_template", self.apply_automatic_values_from_template, template, resource
        )

        for binding in template.bindings:
            term = binding.property_term
            for data_set in binding.data:
                await self._fail_open("explode_delimited_literal", self.explode_delimited_literal, data_set, term, resource)
                await self._fail_open(
                    "derive_automatic_property_value", self.append_automatic_property_values, data_set, term, resource
                )
                await self._fail_open(
                    "reorder_by_linked_resource_property", self.reorder_by_linked_resource_property, data_set, term, resource
                )

        return resource

    async def _fail_open(self, step: str, func: Callable, *args) -> None:
        try:
            result = func(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Enrichment step '{step}' failed, field map left unchanged: {e}")

    # ========================================
    # Template level
    # ========================================

    async def append_automatic_item_sets(self, template: Template, resource: Resource) -> Resource:
        """Append the template's item sets that exist and are not yet set. Idempotent."""
        configured = template.settings.item_sets
        if not configured:
            return resource

        new_ids = [i for i in configured if i not in resource.item_set_ids]
        if not new_ids:
            return resource

        existing = set(await self.resource_store.existing_ids(new_ids, kind=ResourceKind.ITEM_SET))
        missing = [i for i in new_ids if i not in existing]
        if missing:
            logger.debug(f"Automatic item sets not found for template {template.id}: {missing}")

        appended = [i for i in new_ids if i in existing]
        if appended:
            resource.item_set_ids = resource.item_set_ids + appended
        return resource

    def apply_automatic_values_from_template(self, template: Template, resource: Resource) -> Resource:
        """Append the values derived from the template rule text, skipping duplicates."""
        rule_text = (template.settings.automatic_values or "").strip()
        if not rule_text:
            return resource

        if self.rule_evaluator is None:
            if not self._missing_evaluator_logged:
                logger.warning("Automatic values are configured but no rule evaluator is available")
                self._missing_evaluator_logged = True
            return resource

        derived = self.rule_evaluator.evaluate(rule_text, resource.to_flat())

        additions: Dict[str, List[Value]] = {}
        for value in derived:
            term = value.property_term
            pending = additions.setdefault(term, [])
            if not is_duplicate(value, resource.get_values(term) + pending):
                pending.append(value)

        for term, values in additions.items():
            if values:
                resource.set_values(term, resource.get_values(term) + values)
        return resource

    # ========================================
    # Property level
    # ========================================

    def explode_delimited_literal(self, data_set: DataSetConfig, term: str, resource: Resource) -> Resource:
        """Split literal values on the configured separator.

        Each trimmed, non-empty fragment becomes a value keeping the other
        attributes of the original value.
        """
        separator = data_set.split_separator
        if not separator or data_set.primary_data_type != "literal":
            return resource

        values = resource.values.get(term)
        if not values:
            return resource

        exploded: List[Value] = []
        for value in values:
            if not value.is_literal or value.data_type != "literal":
                exploded.append(value)
                continue
            fragments = [f.strip() for f in value.payload.text.split(separator)]
            exploded.extend(value.with_text(f) for f in fragments if f)

        resource.set_values(term, exploded)
        return resource

    async def append_automatic_property_values(self, data_set: DataSetConfig, term: str, resource: Resource) -> Resource:
        values = await self.derive_automatic_property_values(data_set, term, resource)
        if values:
            resource.set_values(term, resource.get_values(term) + values)
        return resource

    async def derive_automatic_property_values(
        self, data_set: DataSetConfig, term: str, resource: Resource
    ) -> List[Value]:
        """
        Compute the automatic values of one data set.

        Returns:
            New values, not yet appended: the fixed automatic value when it
            resolves and is not a duplicate, and today's date when the data
            set issues a date on first publication of a public resource that
            has no value for the property.
        """
        values: List[Value] = []
        is_public = not data_set.is_private

        if data_set.automatic_value:
            value = await self._resolve_fixed_expression(data_set.automatic_value, data_set, term, is_public)
            if value is not None and not is_duplicate(value, resource.get_values(term)):
                values.append(value)

        # There is no persisted "issued" marker: emptying the property and
        # saving again issues a new date.
        if data_set.issue_on_first_publish and resource.is_public and not values and not resource.has_values(term):
            issued = self.clock.today().strftime(ISSUED_DATE_FORMAT)
            values.append(Value.literal(term, issued, is_public=is_public))

        return values

    async def _resolve_fixed_expression(
        self, expression: str, data_set: DataSetConfig, term: str, is_public: bool
    ) -> Optional[Value]:
        """Resolve a fixed literal, URI or resource expression.

        The expression is either a JSON object such as
        {"type": "uri", "@id": "https://example.org", "o:label": "Example"}
        or a plain string typed by the first data type of the data set.
        """
        expression = expression.strip()
        default_type = data_set.primary_data_type or "literal"
        language = None
        label = None

        payload = None
        if expression.startswith("{"):
            try:
                payload = json.loads(expression)
            except ValueError:
                payload = None

        if isinstance(payload, dict):
            data_type = str(payload.get("type") or default_type)
            if data_set.data_types and data_type not in data_set.data_types:
                logger.debug(f"Automatic value type {data_type} is not declared for {term}")
                return None
            kind = main_data_type(data_type)
            if kind == PayloadKind.RESOURCE:
                raw = payload.get("value_resource_id")
            elif kind == PayloadKind.URI:
                raw = payload.get("@id")
                label = payload.get("o:label")
            else:
                raw = payload.get("@value")
                language = payload.get("@language")
        else:
            data_type = default_type
            kind = main_data_type(data_type)
            raw = expression

        if raw is None or not str(raw).strip():
            return None

        payload: Payload
        if kind == PayloadKind.RESOURCE:
            try:
                resource_id = int(str(raw).strip())
            except ValueError:
                return None
            if not await self.resource_store.resource_exists(resource_id):
                logger.debug(f"Automatic value for {term} references missing resource #{resource_id}")
                return None
            payload = ResourceRefPayload(resource_id)
        elif kind == PayloadKind.URI:
            payload = UriPayload(str(raw).strip(), label)
        elif kind == PayloadKind.ANNOTATION:
            return None
        else:
            payload = LiteralPayload(str(raw))

        return Value(
            property_term=term,
            payload=payload,
            data_type=data_type,
            is_public=is_public,
            language=language,
        )

    async def reorder_by_linked_resource_property(
        self, data_set: DataSetConfig, term: str, resource: Resource
    ) -> Resource:
        """Stable multi-key sort of linked resources by their own properties.

        Missing texts sort after present ones, values that do not link a
        resource sort last, and final ties keep the original order.
        """
        ordering = data_set.order_by_linked_resource_properties
        values = resource.values.get(term) or []
        if not ordering or len(values) < 2:
            return resource

        linked: Dict[int, Optional[Resource]] = {}
        for value in values:
            linked_id = value.linked_resource_id
            if linked_id is not None and linked_id not in linked:
                linked[linked_id] = await self.resource_store.get_resource(linked_id)

        # An ordering property may itself link a resource: its title is the text.
        titles: Dict[int, str] = {}
        for target in list(linked.values()):
            if target is None:
                continue
            for prop in ordering:
                ref_id = target.first_link(prop)
                if ref_id is not None and ref_id not in titles:
                    titles[ref_id] = display_title(await self.resource_store.get_resource(ref_id))

        def linked_text(resource_id: int, prop: str) -> str:
            target = linked.get(resource_id)
            if target is None:
                return ""
            ref_id = target.first_link(prop)
            if ref_id is not None:
                return titles.get(ref_id, "").strip()
            return target.first_text(prop).strip()

        def compare(a: Value, b: Value) -> int:
            a_id, b_id = a.linked_resource_id, b.linked_resource_id
            if a_id is None and b_id is None:
                return 0
            if a_id is None:
                return 1
            if b_id is None:
                return -1
            for prop, direction in ordering.items():
                a_text, b_text = linked_text(a_id, prop), linked_text(b_id, prop)
                if not a_text and not b_text:
                    continue
                if not a_text:
                    return 1
                if not b_text:
                    return -1
                result = natural_compare(a_text, b_text)
                if result:
                    return -result if direction == "desc" else result
            return 0

        resource.set_values(term, sorted(values, key=cmp_to_key(compare)))
        return resource
