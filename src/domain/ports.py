"""Ports to the collaborators of the pipeline.

The pipeline never owns storage: templates, resources and vocabularies are
reached through these interfaces. Storage-facing ports are async; rule
evaluation and the clock are plain calls.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import AsyncContextManager, Dict, List, Optional

from domain.resource_models import Resource, ResourceKind, Value
from domain.template_models import Template

VOCABULARY_DATA_TYPE_PREFIX = "customvocab:"


@dataclass
class Vocabulary:
    """A closed term list that may be opened to growth by a template."""

    id: int
    label: str
    terms: List[str] = field(default_factory=list)
    value_type: str = "literal"

    @property
    def data_type(self) -> str:
        return f"{VOCABULARY_DATA_TYPE_PREFIX}{self.id}"


class TemplateRepository(ABC):
    """Read access to templates and their ordered bindings."""

    @abstractmethod
    async def get_template(self, template_id: int) -> Optional[Template]:
        """Return the template, or None when it does not exist."""

    @abstractmethod
    async def list_templates(self) -> List[Template]:
        """Return every template."""

    async def templates_for_kind(self, kind: ResourceKind) -> List[Template]:
        """Templates usable for a resource kind.

        A template that does not restrict its resource kinds is usable
        everywhere.
        """
        return [t for t in await self.list_templates() if t.is_usable_for(kind)]


class ResourceStore(ABC):
    """Storage layer for resources and their children."""

    @abstractmethod
    async def get_resource(self, resource_id: int) -> Optional[Resource]:
        """Return a persisted resource, or None."""

    @abstractmethod
    async def resource_exists(self, resource_id: int) -> bool:
        """Check that an id resolves, whatever the resource kind."""

    @abstractmethod
    async def existing_ids(self, resource_ids: List[int], kind: Optional[ResourceKind] = None) -> List[int]:
        """Return the subset of ids that exist (optionally of one kind), sorted."""

    @abstractmethod
    async def find_conflicting_resource(
        self,
        property_term: str,
        values: List[Value],
        exclude_resource_id: Optional[int] = None,
    ) -> Optional[int]:
        """Return the id of another resource holding one of these payloads.

        A payload matches on linked resource id, URI, or exact literal text,
        under the same property.
        """

    @abstractmethod
    async def save(self, resource: Resource) -> Resource:
        """Create or update a resource; assigns ids to it and its annotations."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        """Context in which writes become visible atomically, or not at all."""


class VocabularyStore(ABC):
    """Term lists of vocabularies."""

    @abstractmethod
    async def list_vocabularies(self) -> List[Vocabulary]:
        """Return every vocabulary with its current terms."""

    @abstractmethod
    async def append_terms(self, vocabulary_id: int, terms: List[str]) -> Vocabulary:
        """Append terms at the end of the list, keeping the existing order."""


class RuleEvaluator(ABC):
    """Evaluates a transformation-rule text against a flat field map."""

    @abstractmethod
    def evaluate(self, rule_text: str, fields: Dict[str, List[str]]) -> List[Value]:
        """Return the derived values, each carrying its property term."""


class Clock(ABC):
    """Source of the current date."""

    @abstractmethod
    def today(self) -> date:
        """Return the current date."""
