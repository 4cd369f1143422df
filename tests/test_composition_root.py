"""Tests for pipeline wiring."""

import logging
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

import infrastructure.database as database_package

from application.services.resource_write_pipeline import ResourceWritePipeline
from composition_root import (
    bootstrap_write_pipeline,
    configure_logging,
    create_template_repository,
    shutdown_write_pipeline,
)
from config.pipeline_config import DatabaseSection, PipelineConfig
from domain.resource_models import Resource, ResourceKind, Value
from domain.violation_models import TemplateViolationError, ViolationCode
from infrastructure.in_memory_store import InMemoryResourceStore, InMemoryTemplateRepository
from infrastructure.yaml_template_repository import YamlTemplateRepository

SHIPPED_TEMPLATES = Path(__file__).parents[1] / "config" / "templates.yaml"


class TestCompositionRoot:

    def test_template_repository_choice(self, tmp_path):
        assert isinstance(create_template_repository(PipelineConfig()), InMemoryTemplateRepository)
        yaml_config = PipelineConfig(templates_path=str(tmp_path / "templates.yaml"))
        assert isinstance(create_template_repository(yaml_config), YamlTemplateRepository)

    def test_configure_logging_accepts_unknown_level(self):
        configure_logging("not-a-level")
        assert logging.getLogger().handlers

    @pytest.mark.asyncio
    async def test_bootstrap_memory_backend(self):
        pipeline = await bootstrap_write_pipeline(PipelineConfig(templates_path=str(SHIPPED_TEMPLATES)))

        assert isinstance(pipeline, ResourceWritePipeline)
        assert isinstance(pipeline.resource_store, InMemoryResourceStore)
        assert pipeline.enricher.rule_evaluator is not None

    @pytest.mark.asyncio
    async def test_shipped_book_template(self):
        pipeline = await bootstrap_write_pipeline(PipelineConfig(templates_path=str(SHIPPED_TEMPLATES)))
        item = Resource(kind=ResourceKind.ITEM, template_id=1, class_id=41)
        item.add_value(Value.literal("dcterms:identifier", "abc-1"))
        item.add_value(Value.literal("dcterms:subject", "History; Maps"))

        with pytest.raises(TemplateViolationError) as exc_info:
            await pipeline.save(item)

        codes = exc_info.value.violations.codes()
        assert ViolationCode.CLASS_NOT_ALLOWED in codes
        assert ViolationCode.MEDIA_MINIMUM in codes
        assert ViolationCode.INPUT_PATTERN in codes
        assert [v.text for v in item.get_values("dcterms:subject")] == ["History", "Maps"]
        assert item.first_text("dcterms:type") == "Text"


class TestShutdown:
    """Tests for releasing the storage opened at bootstrap."""

    @pytest.mark.asyncio
    async def test_sql_backend_closes_the_engine(self, monkeypatch):
        close = AsyncMock()
        monkeypatch.setattr(database_package, "close_database", close)

        await shutdown_write_pipeline(PipelineConfig(database=DatabaseSection(backend="sql")))

        close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_memory_backend_has_nothing_to_close(self, monkeypatch):
        close = AsyncMock()
        monkeypatch.setattr(database_package, "close_database", close)

        await shutdown_write_pipeline(PipelineConfig())

        close.assert_not_awaited()
