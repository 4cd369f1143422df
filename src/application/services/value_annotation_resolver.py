"""
Value Annotation Resolver

Value annotations are sub-records qualifying a single value. Their template
is resolved per property binding:
1. the binding's annotation template option, unless it is the template
   level default (then the default is used as is)
2. otherwise the template level default
3. the option "none" (or an unknown id) means no template at all

Two entry points:
- resolve_for_hydration: enriches each annotation field map before storage
- link_after_commit: stores the resolved template and class on persisted
  annotations, once they have received an id
"""

import logging
from typing import Dict, Optional, Tuple

from application.services.pre_hydration_enricher import PreHydrationEnricher
from domain.ports import ResourceStore, TemplateRepository
from domain.resource_models import Annotation, Resource
from domain.template_models import Template

logger = logging.getLogger(__name__)


class ValueAnnotationResolver:
    """Resolves and links the templates of value annotations."""

    def __init__(
        self,
        template_repository: TemplateRepository,
        resource_store: ResourceStore,
        enricher: PreHydrationEnricher,
    ):
        self.template_repository = template_repository
        self.resource_store = resource_store
        self.enricher = enricher

    async def default_template_for(self, template: Template) -> Optional[Template]:
        """Template level default annotation template, when it exists."""
        default_id = template.settings.default_annotation_template_id
        if default_id is None:
            return None
        default_template = await self.template_repository.get_template(default_id)
        if default_template is None:
            logger.debug(f"Default annotation template #{default_id} of template {template.id} not found")
        return default_template

    async def resolve_option(self, option: Optional[str], default_template: Optional[Template]) -> Optional[Template]:
        """Resolve a binding option (empty, numeric id or "none") to a template."""
        default_id = default_template.id if default_template else None
        if not option:
            return default_template
        if option.isdigit():
            if int(option) == default_id:
                return default_template
            return await self.template_repository.get_template(int(option))
        return None

    async def resolve_for_hydration(
        self,
        template: Template,
        resource: Resource,
        default_template: Optional[Template] = None,
    ) -> Resource:
        """
        Apply the enrichment steps to the annotations of every bound value.

        A value without annotation receives one only when enrichment
        produced values for it.

        Args:
            template: Template of the owning resource
            resource: Field map of the owning resource
            default_template: Template level default annotation template

        Returns:
            The same resource with enriched annotations
        """
        for binding in template.bindings:
            term = binding.property_term
            for data_set in binding.data:
                if not resource.has_values(term):
                    continue
                annotation_template = await self.resolve_option(data_set.value_annotations_template, default_template)
                if annotation_template is None:
                    continue

                for value in resource.values[term]:
                    annotation = value.annotation if value.annotation is not None else Annotation()
                    await self.enricher.enrich(annotation_template, annotation)
                    if value.annotation is None and any(annotation.values.values()):
                        value.annotation = annotation

        return resource

    async def link_after_commit(
        self,
        resource: Resource,
        template: Template,
        default_template: Optional[Template] = None,
    ) -> int:
        """
        Set or clear the template and class of each persisted annotation.

        Runs as a second write after the main commit; errors propagate to the
        caller, which logs them without undoing the committed resource.

        Returns:
            Number of annotations updated
        """
        if default_template is None:
            default_template = await self.default_template_for(template)

        resolved: Dict[str, Optional[Template]] = {}
        updated = 0
        for value in resource.iter_values():
            annotation = value.annotation
            if annotation is None:
                continue

            term = value.property_term
            if term not in resolved:
                data_set = template.first_data_set(term)
                option = data_set.value_annotations_template if data_set else None
                resolved[term] = await self.resolve_option(option, default_template)
            annotation_template = resolved[term]

            if annotation_template is not None:
                target: Tuple[Optional[int], Optional[int]] = (annotation_template.id, annotation_template.resource_class_id)
            else:
                target = (None, None)
            if (annotation.template_id, annotation.class_id) != target:
                annotation.template_id, annotation.class_id = target
                updated += 1

        if updated:
            await self.resource_store.save(resource)
            logger.debug(f"Linked {updated} annotation template(s) on resource #{resource.id}")
        return updated
