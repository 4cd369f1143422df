"""
Post-Hydration Validator

Inspects a hydrated resource against its template and accumulates every
violation before the write is accepted or rejected.

Checks:
- template level: allowed resource kinds, required class, closed class list
- media minimums per media template id or label (items only)
- per data set: input pattern, length, value count, uniqueness

The validator never mutates the resource.
"""

import logging
import re
from collections import Counter
from typing import Dict, List, Optional, Pattern

from domain.ports import ResourceStore, TemplateRepository
from domain.resource_models import Resource, ResourceKind, Value
from domain.template_models import DataSetConfig, Template
from domain.violation_models import (
    CLASS_KEY,
    MEDIA_KEY,
    TEMPLATE_KEY,
    ViolationCode,
    ViolationSet,
)

logger = logging.getLogger(__name__)

# Global inline flags must stay at the very start once the fragment is anchored.
LEADING_FLAGS = re.compile(r"^(?:\(\?[aiLmsux]+\))+")

MSG_TEMPLATE_NOT_ALLOWED = "This template cannot be used for this resource."
MSG_CLASS_REQUIRED = "A class is required."
MSG_CLASS_SINGLE = "The class should be {resource_class}."
MSG_CLASS_LIST = "The class should be one of {resource_classes}."
MSG_MEDIA_MINIMUM = "The minimum number of files or medias is {min}."
MSG_INPUT_PATTERN = 'The value "{value}" for term {property} does not follow the input pattern "{pattern}".'
MSG_MIN_LENGTH = (
    "The value for term {property} is shorter ({length} characters) than the minimal size ({number} characters)."
)
MSG_MAX_LENGTH = (
    "The value for term {property} is longer ({length} characters) than the maximal size ({number} characters)."
)
MSG_MIN_VALUES = "The number of values ({count}) for term {property} is lower than the minimal number of {number}."
MSG_MAX_VALUES = "The number of values ({count}) for term {property} is greater than the maximal number of {number}."
MSG_UNIQUE_VALUE = "The value for term {property} should be unique, but already set for resource #{resource_id}."


class PostHydrationValidator:
    """Validates hydrated resources against template constraints."""

    def __init__(self, resource_store: ResourceStore, template_repository: TemplateRepository):
        self.resource_store = resource_store
        self.template_repository = template_repository
        # Compiled input patterns; None marks a pattern that cannot be compiled.
        self._patterns: Dict[str, Optional[Pattern]] = {}

    async def validate(
        self,
        template: Template,
        resource: Resource,
        enforce_min_values: bool = False,
    ) -> ViolationSet:
        """
        Validate a resource against a template.

        Args:
            template: Template of the resource
            resource: Hydrated resource (id assigned when persisted)
            enforce_min_values: Enforce minimum value counts of required
                properties (strict programmatic writes)

        Returns:
            Every violation found, empty when the resource is valid
        """
        violations = ViolationSet()

        self.validate_template_constraints(template, resource, violations)
        if resource.kind == ResourceKind.ITEM:
            await self.validate_media_minimums(template, resource, violations)

        for binding in template.bindings:
            term = binding.property_term
            for data_set in binding.data:
                self.validate_input_pattern(template, data_set, term, resource, violations)
                self.validate_length(data_set, term, resource, violations)
                self.validate_value_count(data_set, term, resource, violations, enforce_min_values)
                await self.validate_uniqueness(data_set, term, resource, violations)

        if violations:
            logger.info(f"Resource #{resource.id} breaks template {template.id}: {len(violations)} violation(s)")
        return violations

    # ========================================
    # Template level
    # ========================================

    def validate_template_constraints(self, template: Template, resource: Resource, violations: ViolationSet) -> None:
        settings = template.settings

        if not template.is_usable_for(resource.kind):
            violations.add(TEMPLATE_KEY, ViolationCode.TEMPLATE_NOT_ALLOWED, MSG_TEMPLATE_NOT_ALLOWED)

        if settings.require_resource_class and resource.class_id is None:
            violations.add(CLASS_KEY, ViolationCode.CLASS_REQUIRED, MSG_CLASS_REQUIRED)

        suggested = settings.suggested_resource_classes
        if settings.closed_class_list and resource.class_id is not None and suggested:
            if resource.class_id not in suggested.values():
                if len(suggested) == 1:
                    violations.add(
                        CLASS_KEY, ViolationCode.CLASS_NOT_ALLOWED, MSG_CLASS_SINGLE,
                        resource_class=next(iter(suggested)),
                    )
                else:
                    violations.add(
                        CLASS_KEY, ViolationCode.CLASS_NOT_ALLOWED, MSG_CLASS_LIST,
                        resource_classes=", ".join(suggested),
                    )

    async def validate_media_minimums(self, template: Template, resource: Resource, violations: ViolationSet) -> None:
        """Check media counts against minimums keyed by media template id and label.

        Stops at the first failure: a single violation is reported on o:media.
        """
        minimums = template.settings.media_templates_minimum
        if not minimums:
            return

        total = sum(minimums.values())
        if len(resource.media) < total:
            violations.add(MEDIA_KEY, ViolationCode.MEDIA_MINIMUM, MSG_MEDIA_MINIMUM, min=total)
            return

        counts: Counter = Counter()
        labels: Dict[int, str] = {}
        for media in resource.media:
            template_id = media.template_id or 0
            if template_id and template_id not in labels:
                media_template = await self.template_repository.get_template(template_id)
                labels[template_id] = media_template.label if media_template else ""
            counts[str(template_id)] += 1
            counts[labels.get(template_id, "")] += 1

        for key, minimum in minimums.items():
            if counts.get(key, 0) < minimum:
                logger.debug(f"Media minimum not met for {key!r}: {counts.get(key, 0)} < {minimum}")
                violations.add(MEDIA_KEY, ViolationCode.MEDIA_MINIMUM, MSG_MEDIA_MINIMUM, min=total)
                break

    # ========================================
    # Data set level
    # ========================================

    def _matching_values(self, data_set: DataSetConfig, term: str, resource: Resource) -> List[Value]:
        return [v for v in resource.get_values(term) if data_set.matches_data_type(v.data_type)]

    def _matching_literals(self, data_set: DataSetConfig, term: str, resource: Resource) -> List[Value]:
        return [v for v in self._matching_values(data_set, term, resource) if v.is_literal]

    def compile_input_pattern(self, fragment: str, template_label: str = "") -> Optional[Pattern]:
        """Compile an html-style input pattern as a whole-string pattern.

        Returns None (and logs once) when the fragment is not a valid pattern.
        """
        if fragment not in self._patterns:
            try:
                flags = LEADING_FLAGS.match(fragment)
                prefix = flags.group(0) if flags else ""
                body = fragment[len(prefix):]
                self._patterns[fragment] = re.compile(f"{prefix}^(?:{body})$")
            except re.error as e:
                logger.warning(
                    f'The html input pattern "{fragment}" for template {template_label} cannot be processed: {e}'
                )
                self._patterns[fragment] = None
        return self._patterns[fragment]

    def validate_input_pattern(
        self, template: Template, data_set: DataSetConfig, term: str, resource: Resource, violations: ViolationSet
    ) -> None:
        fragment = data_set.input_control
        if not fragment:
            return

        pattern = self.compile_input_pattern(fragment, template.label)
        if pattern is None:
            return

        for value in self._matching_literals(data_set, term, resource):
            text = value.payload.text
            if not pattern.fullmatch(text):
                violations.add(
                    term, ViolationCode.INPUT_PATTERN, MSG_INPUT_PATTERN,
                    value=text, property=term, pattern=fragment,
                )

    def validate_length(self, data_set: DataSetConfig, term: str, resource: Resource, violations: ViolationSet) -> None:
        min_length, max_length = data_set.min_length, data_set.max_length
        if not min_length and not max_length:
            return

        for value in self._matching_literals(data_set, term, resource):
            # len() counts code points, not bytes.
            length = len(value.payload.text)
            if min_length and length < min_length:
                violations.add(
                    term, ViolationCode.MIN_LENGTH, MSG_MIN_LENGTH,
                    property=term, length=length, number=min_length,
                )
            if max_length and length > max_length:
                violations.add(
                    term, ViolationCode.MAX_LENGTH, MSG_MAX_LENGTH,
                    property=term, length=length, number=max_length,
                )

    def validate_value_count(
        self,
        data_set: DataSetConfig,
        term: str,
        resource: Resource,
        violations: ViolationSet,
        enforce_min_values: bool = False,
    ) -> None:
        """Minimum applies to required data sets in strict mode only; maximum always."""
        min_values, max_values = data_set.min_values, data_set.max_values
        if not min_values and not max_values:
            return

        count = len(self._matching_values(data_set, term, resource))

        if enforce_min_values and data_set.is_required and min_values and count < min_values:
            violations.add(
                term, ViolationCode.MIN_VALUES, MSG_MIN_VALUES,
                count=count, property=term, number=min_values,
            )

        if max_values and count > max_values:
            violations.add(
                term, ViolationCode.MAX_VALUES, MSG_MAX_VALUES,
                count=count, property=term, number=max_values,
            )

    async def validate_uniqueness(
        self, data_set: DataSetConfig, term: str, resource: Resource, violations: ViolationSet
    ) -> None:
        if not data_set.unique_value:
            return

        values = resource.get_values(term)
        if not values:
            return

        conflict_id = await self.resource_store.find_conflicting_resource(
            term, values, exclude_resource_id=resource.id
        )
        if conflict_id:
            violations.add(
                term, ViolationCode.UNIQUE_VALUE, MSG_UNIQUE_VALUE,
                property=term, resource_id=conflict_id,
            )
