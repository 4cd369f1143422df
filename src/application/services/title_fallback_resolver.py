"""Title Fallback Resolver.

Computes a missing display title from the template title property, then the
template fallback properties, in order.
"""

import logging
from typing import List, Optional

from domain.ports import ResourceStore
from domain.resource_models import Resource
from domain.template_models import DEFAULT_TITLE_PROPERTY, Template

logger = logging.getLogger(__name__)


class TitleFallbackResolver:
    def __init__(self, resource_store: ResourceStore):
        self.resource_store = resource_store

    def candidate_properties(self, template: Template) -> List[str]:
        candidates = [template.title_property or DEFAULT_TITLE_PROPERTY]
        for term in template.settings.title_fallback_properties:
            if term not in candidates:
                candidates.append(term)
        return candidates

    async def resolve_title(self, template: Template, resource: Resource) -> Optional[str]:
        """Return the current title, or the first non-empty fallback text, or None.

        A linked resource value contributes the title of the linked resource.
        """
        if resource.title:
            return resource.title

        for term in self.candidate_properties(template):
            for value in resource.get_values(term):
                linked_id = value.linked_resource_id
                if linked_id is not None:
                    linked = await self.resource_store.get_resource(linked_id)
                    text = linked.title if linked is not None else None
                else:
                    text = value.text
                if text:
                    logger.debug(f"Title of resource #{resource.id} taken from {term}")
                    return text
        return None
