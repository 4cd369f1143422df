"""
Custom Vocab Expander

Grows open vocabularies with the new literal terms of a saved resource.
Failures are reported as warnings and never block the write.

Known limitation: two saves introducing the same new term at the same time
read the same term list, so one append may be lost.
"""

import logging
from typing import Dict, List

from domain.ports import VocabularyStore, Vocabulary
from domain.resource_models import Resource
from domain.template_models import Template
from domain.violation_models import ViolationCode, ViolationSet, ViolationSeverity

logger = logging.getLogger(__name__)

MSG_APPEND_FAILED = 'Unable to append new descriptors to custom vocab "{custom_vocab}": {error}'


class CustomVocabExpander:
    """Appends unknown terms to the vocabularies a template opens."""

    def __init__(self, vocabulary_store: VocabularyStore):
        self.vocabulary_store = vocabulary_store

    async def expand(self, template: Template, resource: Resource) -> ViolationSet:
        """
        Append new terms of open-vocabulary properties.

        Returns:
            Warning violations for failed appends, keyed by property term
        """
        violations = ViolationSet()
        if not template.has_open_vocabularies():
            return violations

        vocabularies: Dict[str, Vocabulary] = {
            v.data_type: v
            for v in await self.vocabulary_store.list_vocabularies()
            if v.value_type == "literal"
        }
        if not vocabularies:
            return violations

        new_terms: Dict[str, List[str]] = {}
        terms_by_property: Dict[str, str] = {}
        for binding in template.bindings:
            term = binding.property_term
            for data_set in binding.data:
                if not data_set.custom_vocab_open:
                    continue
                for value in resource.get_values(term):
                    vocabulary = vocabularies.get(value.data_type)
                    if vocabulary is None or not value.is_literal:
                        continue
                    if not data_set.matches_data_type(value.data_type):
                        continue
                    text = value.payload.text.strip()
                    pending = new_terms.setdefault(value.data_type, [])
                    if text and text not in vocabulary.terms and text not in pending:
                        pending.append(text)
                        terms_by_property[value.data_type] = term

        for data_type, terms in new_terms.items():
            if not terms:
                continue
            vocabulary = vocabularies[data_type]
            try:
                await self.vocabulary_store.append_terms(vocabulary.id, terms)
                logger.info(f'New descriptors appended to custom vocab "{vocabulary.label}": {", ".join(terms)}')
            except Exception as e:
                logger.error(f'Failed to append to custom vocab "{vocabulary.label}": {e}')
                violations.add(
                    terms_by_property[data_type], ViolationCode.VOCABULARY_APPEND, MSG_APPEND_FAILED,
                    severity=ViolationSeverity.WARNING,
                    custom_vocab=vocabulary.label, error=str(e),
                )

        return violations
