"""
Resource Write Pipeline

Statically ordered stages of a resource write:
1. pre_hydrate: enrichment of the field map, then of value annotations
2. (storage layer persists the resource)
3. post_hydrate: title fallback, open vocabulary growth, validation;
   hard violations abort the enclosing transaction
4. (commit)
5. post_commit: annotation template linking, as a second write

The context of one write is built once and passed to every stage.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from application.services.custom_vocab_expander import CustomVocabExpander
from application.services.post_hydration_validator import PostHydrationValidator
from application.services.pre_hydration_enricher import PreHydrationEnricher
from application.services.title_fallback_resolver import TitleFallbackResolver
from application.services.value_annotation_resolver import ValueAnnotationResolver
from config.pipeline_config import PipelineConfig
from domain.ports import ResourceStore, TemplateRepository
from domain.resource_models import Resource
from domain.template_models import Template
from domain.violation_models import TemplateViolationError, ViolationSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteOptions:
    """Caller-supplied options of one write."""
    skip_validation: bool = False
    # None: use the configured default
    enforce_min_values: Optional[bool] = None


@dataclass(frozen=True)
class WriteContext:
    """Immutable snapshot of everything a write needs from configuration."""
    template: Template
    default_annotation_template: Optional[Template]
    skip_validation: bool
    enforce_min_values: bool


@dataclass
class WriteReport:
    """Outcome of the post-hydration stage."""
    resource: Resource
    violations: ViolationSet = field(default_factory=ViolationSet)
    notices: ViolationSet = field(default_factory=ViolationSet)
    title_filled: bool = False
    validated: bool = False

    @property
    def accepted(self) -> bool:
        return not self.violations.has_errors()


class ResourceWritePipeline:
    """Orchestrates enrichment, validation and post-commit linking."""

    def __init__(
        self,
        template_repository: TemplateRepository,
        resource_store: ResourceStore,
        enricher: PreHydrationEnricher,
        validator: PostHydrationValidator,
        vocab_expander: CustomVocabExpander,
        annotation_resolver: ValueAnnotationResolver,
        title_resolver: TitleFallbackResolver,
        config: Optional[PipelineConfig] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            template_repository: Source of templates
            resource_store: Storage layer, used by save()
            enricher: Pre-hydration enrichment
            validator: Post-hydration validation
            vocab_expander: Open vocabulary growth
            annotation_resolver: Value annotation templates
            title_resolver: Title fallback
            config: Pipeline configuration (defaults when omitted)
        """
        self.template_repository = template_repository
        self.resource_store = resource_store
        self.enricher = enricher
        self.validator = validator
        self.vocab_expander = vocab_expander
        self.annotation_resolver = annotation_resolver
        self.title_resolver = title_resolver
        self.config = config or PipelineConfig()

    async def build_context(
        self,
        resource: Resource,
        options: Optional[WriteOptions] = None,
    ) -> Optional[WriteContext]:
        """
        Read the template of a resource and freeze the write settings.

        Returns:
            The write context, or None when the resource has no (existing) template
        """
        options = options or WriteOptions()
        if resource.template_id is None:
            return None

        template = await self.template_repository.get_template(resource.template_id)
        if template is None:
            logger.warning(f"Template #{resource.template_id} not found, resource written without template rules")
            return None

        default_annotation_template = await self.annotation_resolver.default_template_for(template)
        enforce_min_values = (
            self.config.enforce_min_values if options.enforce_min_values is None else options.enforce_min_values
        )

        return WriteContext(
            template=template,
            default_annotation_template=default_annotation_template,
            skip_validation=options.skip_validation or self.config.skip_checks,
            enforce_min_values=enforce_min_values,
        )

    async def pre_hydrate(self, context: WriteContext, resource: Resource) -> Resource:
        """Enrich the field map and its value annotations. Never raises."""
        resource = await self.enricher.enrich(context.template, resource)
        try:
            resource = await self.annotation_resolver.resolve_for_hydration(
                context.template, resource, context.default_annotation_template
            )
        except Exception as e:
            logger.warning(f"Annotation enrichment failed, annotations left unchanged: {e}")
        return resource

    async def post_hydrate(self, context: WriteContext, resource: Resource) -> WriteReport:
        """
        Fill the title, grow open vocabularies, then validate.

        Vocabularies grow even when validation is skipped.

        Raises:
            TemplateViolationError: When the resource breaks template constraints
        """
        report = WriteReport(resource=resource)

        if not resource.title:
            title = await self.title_resolver.resolve_title(context.template, resource)
            if title:
                resource.title = title
                report.title_filled = True

        try:
            report.notices.extend(await self.vocab_expander.expand(context.template, resource))
        except Exception as e:
            logger.error(f"Open vocabulary update failed for resource #{resource.id}: {e}")

        if context.skip_validation:
            logger.debug(f"Validation skipped for resource #{resource.id}")
            return report

        report.violations = await self.validator.validate(
            context.template, resource, enforce_min_values=context.enforce_min_values
        )
        report.validated = True
        if report.violations.has_errors():
            raise TemplateViolationError(report.violations)
        return report

    async def post_commit(self, context: WriteContext, resource: Resource) -> None:
        """Link value annotations to their templates; errors are logged only."""
        try:
            await self.annotation_resolver.link_after_commit(
                resource, context.template, context.default_annotation_template
            )
        except Exception as e:
            logger.error(f"Failed to link annotation templates of resource #{resource.id}: {e}")

    async def save(self, resource: Resource, options: Optional[WriteOptions] = None) -> WriteReport:
        """
        Run the whole write against the resource store.

        Raises:
            TemplateViolationError: Nothing is persisted
        """
        context = await self.build_context(resource, options)
        if context is None:
            async with self.resource_store.transaction():
                saved = await self.resource_store.save(resource)
            return WriteReport(resource=saved)

        resource = await self.pre_hydrate(context, resource)

        async with self.resource_store.transaction():
            saved = await self.resource_store.save(resource)
            report = await self.post_hydrate(context, saved)
            if report.title_filled:
                report.resource = await self.resource_store.save(report.resource)

        await self.post_commit(context, report.resource)
        logger.info(f"Resource #{report.resource.id} saved with template {context.template.id}")
        return report
