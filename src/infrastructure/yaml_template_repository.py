"""YAML Template Repository.

Loads administrator-edited templates from a YAML file:

    templates:
      - id: 1
        label: Book
        settings:
          require_resource_class: true
        bindings:
          - term: dcterms:identifier
            data:
              - o:data_type: [literal]
                unique_value: true
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from domain.ports import TemplateRepository
from domain.template_models import Template

logger = logging.getLogger(__name__)


class YamlTemplateRepository(TemplateRepository):
    """Read-only template repository backed by a YAML document."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._templates: Optional[Dict[int, Template]] = None

    @staticmethod
    def parse(data: Dict[str, Any]) -> List[Template]:
        """Build templates from a parsed document; raises pydantic.ValidationError on bad structure."""
        return [Template.model_validate(entry) for entry in (data or {}).get("templates") or []]

    def load(self) -> Dict[int, Template]:
        if not self.path.exists():
            logger.warning(f"Template file not found: {self.path}")
            self._templates = {}
            return self._templates

        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        self._templates = {t.id: t for t in self.parse(data)}
        logger.info(f"Loaded {len(self._templates)} template(s) from {self.path}")
        return self._templates

    def _loaded(self) -> Dict[int, Template]:
        if self._templates is None:
            self.load()
        return self._templates

    async def get_template(self, template_id: int) -> Optional[Template]:
        return self._loaded().get(template_id)

    async def list_templates(self) -> List[Template]:
        templates = self._loaded()
        return [templates[i] for i in sorted(templates)]
