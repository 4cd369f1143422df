"""
Shared fixtures for the write pipeline tests.

- in-memory storage adapters
- a fixed clock
- a template factory accepting host-style settings
"""

from datetime import date
from typing import Any, Dict, List, Optional

import pytest

from application.rules import MappingRuleEvaluator
from composition_root import build_write_pipeline
from config.pipeline_config import PipelineConfig
from domain.ports import Vocabulary
from domain.resource_models import Resource, ResourceKind, Value
from domain.template_models import Template
from infrastructure.in_memory_store import (
    InMemoryResourceStore,
    InMemoryTemplateRepository,
    InMemoryVocabularyStore,
)
from infrastructure.system_clock import FixedClock

TODAY = date(2024, 5, 17)


def make_template(
    template_id: int = 1,
    bindings: Optional[List[Dict[str, Any]]] = None,
    settings: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> Template:
    """Build a template from host-style dictionaries."""
    data = {
        "id": template_id,
        "label": kwargs.pop("label", f"Template {template_id}"),
        "bindings": bindings or [],
        "settings": settings or {},
    }
    data.update(kwargs)
    return Template.model_validate(data)


def make_item(template_id: Optional[int] = None, **values: List[Value]) -> Resource:
    """Build an item; keyword names use "__" for ":" (dcterms__title)."""
    return Resource(
        kind=ResourceKind.ITEM,
        template_id=template_id,
        values={term.replace("__", ":"): list(vals) for term, vals in values.items()},
    )


@pytest.fixture
def clock():
    return FixedClock(TODAY)


@pytest.fixture
def resource_store():
    return InMemoryResourceStore()


@pytest.fixture
def template_repository():
    return InMemoryTemplateRepository()


@pytest.fixture
def vocabulary_store():
    return InMemoryVocabularyStore([
        Vocabulary(id=1, label="Subjects", terms=["History", "Science"]),
        Vocabulary(id=2, label="Places", terms=["https://example.org/paris"], value_type="uri"),
    ])


@pytest.fixture
def pipeline_config():
    return PipelineConfig()


@pytest.fixture
def pipeline(template_repository, resource_store, vocabulary_store, clock, pipeline_config):
    """Write pipeline wired on in-memory adapters."""
    return build_write_pipeline(
        template_repository=template_repository,
        resource_store=resource_store,
        vocabulary_store=vocabulary_store,
        rule_evaluator=MappingRuleEvaluator(),
        clock=clock,
        config=pipeline_config,
    )
