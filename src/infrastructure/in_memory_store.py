"""In-Memory Storage Adapters.

Dictionary-backed implementations of the storage ports, used for tests,
demos and single-process tools:
- InMemoryResourceStore: resources with id assignment and snapshot transactions
- InMemoryTemplateRepository: templates by id
- InMemoryVocabularyStore: vocabularies with append-only term lists
"""

import copy
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from domain.ports import ResourceStore, TemplateRepository, Vocabulary, VocabularyStore
from domain.resource_models import Resource, ResourceKind, Value
from domain.template_models import Template

logger = logging.getLogger(__name__)


def match_key(value: Value) -> Tuple[str, Any]:
    """Exact payload key used by uniqueness lookups (literal text is not trimmed)."""
    if value.linked_resource_id is not None:
        return ("resource", value.linked_resource_id)
    if value.uri is not None:
        return ("uri", value.uri)
    if value.is_literal:
        return ("literal", value.payload.text)
    return value.dedup_key()


class InMemoryResourceStore(ResourceStore):
    """Resource store kept in a dictionary. Not thread safe."""

    def __init__(self, resources: Optional[List[Resource]] = None):
        self._resources: Dict[int, Resource] = {}
        self._next_id = 1
        self._transaction_depth = 0
        for resource in resources or []:
            self.add(resource)

    def _assign_id(self, resource: Resource) -> None:
        if resource.id is None:
            resource.id = self._next_id
        self._next_id = max(self._next_id, resource.id + 1)

    def add(self, resource: Resource) -> Resource:
        """Store a resource synchronously, assigning ids where missing."""
        self._assign_id(resource)
        for media in resource.media:
            self._assign_id(media)
            self._resources[media.id] = copy.deepcopy(media)
        for value in resource.iter_values():
            if value.annotation is not None:
                self._assign_id(value.annotation)
        self._resources[resource.id] = copy.deepcopy(resource)
        return resource

    async def save(self, resource: Resource) -> Resource:
        stored = self.add(resource)
        logger.debug(f"Saved {resource.kind.value} #{resource.id}")
        return stored

    async def get_resource(self, resource_id: int) -> Optional[Resource]:
        resource = self._resources.get(resource_id)
        return copy.deepcopy(resource) if resource is not None else None

    async def resource_exists(self, resource_id: int) -> bool:
        return resource_id in self._resources

    async def existing_ids(self, resource_ids: List[int], kind: Optional[ResourceKind] = None) -> List[int]:
        return sorted(
            i for i in set(resource_ids)
            if i in self._resources and (kind is None or self._resources[i].kind == kind)
        )

    async def find_conflicting_resource(
        self,
        property_term: str,
        values: List[Value],
        exclude_resource_id: Optional[int] = None,
    ) -> Optional[int]:
        wanted = {match_key(v) for v in values}
        if not wanted:
            return None
        for resource_id in sorted(self._resources):
            if resource_id == exclude_resource_id:
                continue
            for value in self._resources[resource_id].get_values(property_term):
                if match_key(value) in wanted:
                    return resource_id
        return None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Snapshot on entry of the outermost transaction, restore it on error."""
        if self._transaction_depth:
            self._transaction_depth += 1
            try:
                yield
            finally:
                self._transaction_depth -= 1
            return

        # Ids are never reused, so the id counter is not restored.
        snapshot = copy.deepcopy(self._resources)
        self._transaction_depth = 1
        try:
            yield
        except Exception:
            self._resources = snapshot
            logger.debug("Transaction rolled back")
            raise
        finally:
            self._transaction_depth = 0

    def __len__(self) -> int:
        return len(self._resources)


class InMemoryTemplateRepository(TemplateRepository):
    def __init__(self, templates: Optional[List[Template]] = None):
        self._templates: Dict[int, Template] = {t.id: t for t in templates or []}

    def add(self, template: Template) -> None:
        self._templates[template.id] = template

    async def get_template(self, template_id: int) -> Optional[Template]:
        return self._templates.get(template_id)

    async def list_templates(self) -> List[Template]:
        return [self._templates[i] for i in sorted(self._templates)]


class InMemoryVocabularyStore(VocabularyStore):
    def __init__(self, vocabularies: Optional[List[Vocabulary]] = None):
        self._vocabularies: Dict[int, Vocabulary] = {v.id: v for v in vocabularies or []}

    async def list_vocabularies(self) -> List[Vocabulary]:
        return [copy.deepcopy(self._vocabularies[i]) for i in sorted(self._vocabularies)]

    async def get_vocabulary(self, vocabulary_id: int) -> Optional[Vocabulary]:
        vocabulary = self._vocabularies.get(vocabulary_id)
        return copy.deepcopy(vocabulary) if vocabulary is not None else None

    async def append_terms(self, vocabulary_id: int, terms: List[str]) -> Vocabulary:
        vocabulary = self._vocabularies.get(vocabulary_id)
        if vocabulary is None:
            raise KeyError(f"Vocabulary #{vocabulary_id} not found")
        vocabulary.terms = vocabulary.terms + [t for t in terms if t not in vocabulary.terms]
        return copy.deepcopy(vocabulary)
