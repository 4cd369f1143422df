"""Tests for the post-hydration validator."""

import logging

import pytest

from application.services.post_hydration_validator import PostHydrationValidator
from conftest import make_item, make_template
from domain.resource_models import Resource, ResourceKind, Value
from domain.violation_models import CLASS_KEY, MEDIA_KEY, TEMPLATE_KEY, ViolationCode


def binding(term, **data):
    return {"term": term, "data": [data]}


def literals(term, *texts):
    return [Value.literal(term, text) for text in texts]


@pytest.fixture
def validator(resource_store, template_repository):
    return PostHydrationValidator(resource_store, template_repository)


# ========================================
# Template level
# ========================================

class TestTemplateConstraints:
    """Tests for resource kind and class checks."""

    @pytest.mark.asyncio
    async def test_template_not_usable_for_kind(self, validator):
        template = make_template(settings={"use_for_resources": ["media"]})

        violations = await validator.validate(template, make_item())

        assert violations.by_key() == {TEMPLATE_KEY: ["This template cannot be used for this resource."]}

    @pytest.mark.asyncio
    async def test_class_required(self, validator):
        template = make_template(settings={"require_resource_class": "1"})

        violations = await validator.validate(template, make_item())

        assert violations.by_key() == {CLASS_KEY: ["A class is required."]}

    @pytest.mark.asyncio
    async def test_closed_class_list_single(self, validator):
        template = make_template(settings={
            "closed_class_list": True,
            "suggested_resource_classes": {"bibo:Book": 40},
        })
        item = make_item()
        item.class_id = 41

        violations = await validator.validate(template, item)

        assert violations.by_key() == {CLASS_KEY: ["The class should be bibo:Book."]}

    @pytest.mark.asyncio
    async def test_closed_class_list_several(self, validator):
        template = make_template(settings={
            "closed_class_list": True,
            "suggested_resource_classes": {"bibo:Book": 40, "bibo:Manuscript": 42},
        })
        item = make_item()
        item.class_id = 41

        violations = await validator.validate(template, item)
        assert violations.by_key() == {CLASS_KEY: ["The class should be one of bibo:Book, bibo:Manuscript."]}

        item.class_id = 42
        assert not await validator.validate(template, item)


class TestMediaMinimums:
    """Tests for media minimums keyed by template id and label."""

    @pytest.fixture
    def template(self, template_repository):
        template_repository.add(make_template(template_id=2, label="Page scan"))
        return make_template(settings={"media_templates_minimum": {"2": 1, "Page scan": 1}})

    def item_with_media(self, *template_ids):
        item = make_item()
        item.media = [Resource(kind=ResourceKind.MEDIA, template_id=t) for t in template_ids]
        return item

    @pytest.mark.asyncio
    async def test_too_few_media(self, validator, template):
        violations = await validator.validate(template, self.item_with_media(2))

        assert violations.by_key() == {MEDIA_KEY: ["The minimum number of files or medias is 2."]}

    @pytest.mark.asyncio
    async def test_id_and_label_share_the_count(self, validator, template):
        assert not await validator.validate(template, self.item_with_media(2, 2))
        assert not await validator.validate(template, self.item_with_media(2, None))

    @pytest.mark.asyncio
    async def test_unmatched_media(self, validator, template):
        violations = await validator.validate(template, self.item_with_media(None, None))

        assert violations.codes() == [ViolationCode.MEDIA_MINIMUM]
        assert violations.for_key(MEDIA_KEY)[0].params == {"min": 2}

    @pytest.mark.asyncio
    async def test_media_are_not_checked(self, validator, template):
        media = Resource(kind=ResourceKind.MEDIA)
        assert not await validator.validate(template, media)


# ========================================
# Data set level
# ========================================

class TestInputPattern:
    """Tests for html-style input patterns."""

    @pytest.fixture
    def template(self):
        return make_template(bindings=[binding("dcterms:identifier", input_control="[A-Z]{3}-\\d{4}")])

    @pytest.mark.asyncio
    async def test_whole_value_must_match(self, validator, template):
        item = make_item(dcterms__identifier=literals("dcterms:identifier", "ABC-1234", "abc-1234", "ABC-12345"))

        violations = await validator.validate(template, item)

        assert [v.params["value"] for v in violations] == ["abc-1234", "ABC-12345"]
        assert violations.by_key()["dcterms:identifier"][0] == (
            'The value "abc-1234" for term dcterms:identifier does not follow the input pattern "[A-Z]{3}-\\d{4}".'
        )

    @pytest.mark.asyncio
    async def test_non_literal_values_are_ignored(self, validator, template):
        item = make_item(dcterms__identifier=[Value.from_uri("dcterms:identifier", "https://example.org/x")])
        assert not await validator.validate(template, item)

    @pytest.mark.asyncio
    async def test_leading_inline_flags(self, validator, caplog):
        template = make_template(bindings=[binding("dcterms:identifier", input_control="(?i)(?s)[a-z]{3}")])
        item = make_item(dcterms__identifier=literals("dcterms:identifier", "ABC", "abc", "abcd"))

        with caplog.at_level(logging.WARNING):
            violations = await validator.validate(template, item)

        assert [v.params["value"] for v in violations] == ["abcd"]
        assert "cannot be processed" not in caplog.text

    def test_scoped_flags_stay_in_the_body(self, validator):
        pattern = validator.compile_input_pattern("(?i:ab)c")

        assert pattern.fullmatch("ABc")
        assert not pattern.fullmatch("ABC")

    @pytest.mark.asyncio
    async def test_invalid_pattern_is_skipped(self, validator, caplog):
        template = make_template(bindings=[binding("dcterms:identifier", input_control="[A-")])
        item = make_item(dcterms__identifier=literals("dcterms:identifier", "anything"))

        with caplog.at_level(logging.WARNING):
            violations = await validator.validate(template, item)
            await validator.validate(template, item)

        assert not violations
        assert len([r for r in caplog.records if "cannot be processed" in r.message]) == 1


class TestLength:
    """Tests for length bounds counted in characters."""

    @pytest.mark.asyncio
    async def test_length_counts_characters(self, validator):
        template = make_template(bindings=[binding("dcterms:title", min_length=3, max_length=5)])
        item = make_item(dcterms__title=literals("dcterms:title", "ét", "été", "ééééé", "éééééé"))

        violations = await validator.validate(template, item)

        assert violations.codes() == [ViolationCode.MIN_LENGTH, ViolationCode.MAX_LENGTH]
        assert violations.by_key()["dcterms:title"] == [
            "The value for term dcterms:title is shorter (2 characters) than the minimal size (3 characters).",
            "The value for term dcterms:title is longer (6 characters) than the maximal size (5 characters).",
        ]

    @pytest.mark.asyncio
    async def test_only_matching_data_types_are_checked(self, validator):
        template = make_template(bindings=[binding("dcterms:subject", **{"o:data_type": ["customvocab:1"], "max_length": 3})])
        item = make_item(dcterms__subject=[
            Value.literal("dcterms:subject", "too long"),
            Value.literal("dcterms:subject", "long too", data_type="customvocab:1"),
        ])

        violations = await validator.validate(template, item)

        assert len(violations) == 1
        assert violations.for_key("dcterms:subject")[0].params["length"] == 8


class TestValueCount:
    """Tests for value count bounds."""

    @pytest.fixture
    def template(self):
        return make_template(bindings=[binding(
            "dcterms:subject", **{"o:is_required": True, "min_values": 2, "max_values": 3},
        )])

    @pytest.mark.parametrize("count,strict,expected", [
        (1, True, [ViolationCode.MIN_VALUES]),
        (1, False, []),
        (2, True, []),
        (3, True, []),
        (4, True, [ViolationCode.MAX_VALUES]),
        (4, False, [ViolationCode.MAX_VALUES]),
    ])
    @pytest.mark.asyncio
    async def test_bounds(self, validator, template, count, strict, expected):
        item = make_item(dcterms__subject=literals("dcterms:subject", *[f"s{i}" for i in range(count)]))

        violations = await validator.validate(template, item, enforce_min_values=strict)

        assert violations.codes() == expected

    @pytest.mark.asyncio
    async def test_minimum_needs_required(self, validator):
        template = make_template(bindings=[binding("dcterms:subject", min_values=2)])
        item = make_item(dcterms__subject=literals("dcterms:subject", "one"))

        assert not await validator.validate(template, item, enforce_min_values=True)

    @pytest.mark.asyncio
    async def test_message(self, validator, template):
        item = make_item(dcterms__subject=literals("dcterms:subject", "a", "b", "c", "d"))

        violations = await validator.validate(template, item)

        assert violations.by_key()["dcterms:subject"] == [
            "The number of values (4) for term dcterms:subject is greater than the maximal number of 3.",
        ]


class TestUniqueness:
    """Tests for unique values across resources."""

    @pytest.fixture
    def template(self):
        return make_template(bindings=[binding("dcterms:identifier", unique_value=True)])

    @pytest.fixture
    def existing(self, resource_store):
        item = make_item(dcterms__identifier=literals("dcterms:identifier", "ABC-1234"))
        item.id = 5
        return resource_store.add(item)

    @pytest.mark.asyncio
    async def test_conflict_with_another_resource(self, validator, template, existing):
        item = make_item(dcterms__identifier=literals("dcterms:identifier", "ABC-1234"))

        violations = await validator.validate(template, item)

        assert violations.by_key() == {"dcterms:identifier": [
            "The value for term dcterms:identifier should be unique, but already set for resource #5.",
        ]}

    @pytest.mark.asyncio
    async def test_resource_does_not_conflict_with_itself(self, validator, template, existing):
        assert not await validator.validate(template, existing)

    @pytest.mark.asyncio
    async def test_other_values_do_not_conflict(self, validator, template, existing):
        item = make_item(dcterms__identifier=literals("dcterms:identifier", "ABC-1234 ", "XYZ-0001"))
        assert not await validator.validate(template, item)

    @pytest.mark.asyncio
    async def test_same_value_under_another_property(self, validator, template, existing):
        item = make_item(dcterms__alternative=literals("dcterms:alternative", "ABC-1234"))
        assert not await validator.validate(template, item)
