
# src/composition_root.py

import logging
from typing import Optional

from application.rules import MappingRuleEvaluator
from application.services.custom_vocab_expander import CustomVocabExpander
from application.services.post_hydration_validator import PostHydrationValidator
from application.services.pre_hydration_enricher import PreHydrationEnricher
from application.services.resource_write_pipeline import ResourceWritePipeline
from application.services.title_fallback_resolver import TitleFallbackResolver
from application.services.value_annotation_resolver import ValueAnnotationResolver
from config.pipeline_config import PipelineConfig, get_pipeline_config
from domain.ports import Clock, ResourceStore, RuleEvaluator, TemplateRepository, VocabularyStore
from infrastructure.in_memory_store import (
    InMemoryResourceStore,
    InMemoryTemplateRepository,
    InMemoryVocabularyStore,
)
from infrastructure.system_clock import SystemClock
from infrastructure.yaml_template_repository import YamlTemplateRepository

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Install a stream handler on the root logger, unless one is already configured."""
    level_name = (level or get_pipeline_config().log_level or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )


# --- Pipeline Factory Functions ---

def build_write_pipeline(
    template_repository: TemplateRepository,
    resource_store: ResourceStore,
    vocabulary_store: VocabularyStore,
    rule_evaluator: Optional[RuleEvaluator] = None,
    clock: Optional[Clock] = None,
    config: Optional[PipelineConfig] = None,
) -> ResourceWritePipeline:
    """Wires the pipeline stages around the given storage adapters."""
    enricher = PreHydrationEnricher(
        resource_store=resource_store,
        clock=clock or SystemClock(),
        rule_evaluator=rule_evaluator,
    )
    return ResourceWritePipeline(
        template_repository=template_repository,
        resource_store=resource_store,
        enricher=enricher,
        validator=PostHydrationValidator(resource_store, template_repository),
        vocab_expander=CustomVocabExpander(vocabulary_store),
        annotation_resolver=ValueAnnotationResolver(template_repository, resource_store, enricher),
        title_resolver=TitleFallbackResolver(resource_store),
        config=config or get_pipeline_config(),
    )


def create_template_repository(config: PipelineConfig) -> TemplateRepository:
    """YAML templates when a path is configured, otherwise an empty in-memory repository."""
    if config.templates_path:
        return YamlTemplateRepository(config.templates_path)
    return InMemoryTemplateRepository()


async def bootstrap_write_pipeline(config: Optional[PipelineConfig] = None) -> ResourceWritePipeline:
    """Initializes the write pipeline from environment and configuration files."""
    from dotenv import load_dotenv

    load_dotenv()

    config = config or get_pipeline_config()
    configure_logging(config.log_level)
    logger = logging.getLogger(__name__)

    template_repository = create_template_repository(config)

    if config.database.backend == "sql":
        from infrastructure.database import (
            DatabaseConfig,
            SqlResourceStore,
            SqlVocabularyStore,
            init_database,
        )

        session_factory = await init_database(DatabaseConfig.from_env(url=config.database.url))
        resource_store: ResourceStore = SqlResourceStore(session_factory)
        vocabulary_store: VocabularyStore = SqlVocabularyStore(session_factory)
        logger.info("Write pipeline using PostgreSQL storage")
    else:
        resource_store = InMemoryResourceStore()
        vocabulary_store = InMemoryVocabularyStore()
        logger.info("Write pipeline using in-memory storage")

    return build_write_pipeline(
        template_repository=template_repository,
        resource_store=resource_store,
        vocabulary_store=vocabulary_store,
        rule_evaluator=MappingRuleEvaluator(),
        config=config,
    )


async def shutdown_write_pipeline(config: Optional[PipelineConfig] = None) -> None:
    """Releases what `bootstrap_write_pipeline` opened (the SQL engine and its pool)."""
    config = config or get_pipeline_config()
    if config.database.backend != "sql":
        return

    from infrastructure.database import close_database

    await close_database()
