"""Automatic Value Rules.

Default rule evaluator for the template-level "automatic values" text.

Rule text holds one mapping per line:

    source = target

where target is `term [^^datatype] [@language] [public|private] [~ pattern]`.

- source is a key of the flat field map: a property term, "o:is_public",
  "o:resource_class"... or "~" for a constant
- pattern may embed "{{ value }}", replaced by each source value; without a
  pattern the source value is copied
- blank lines, "#" comments and "[section]" headers are ignored

Example:

    ~ = dcterms:type ^^literal ~ Text
    dcterms:identifier = dcterms:source ^^uri ~ https://example.org/{{ value }}
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from domain.ports import RuleEvaluator
from domain.resource_models import (
    LiteralPayload,
    PayloadKind,
    ResourceRefPayload,
    UriPayload,
    Value,
    main_data_type,
)

logger = logging.getLogger(__name__)

CONSTANT_SOURCE = "~"

_TERM_RE = re.compile(r"^[a-zA-Z][\w-]*:[\w-]+$")
_VALUE_PLACEHOLDER_RE = re.compile(r"\{\{\s*value\s*\}\}")


@dataclass
class MappingRule:
    """One parsed line of rule text."""
    source: str
    term: str
    data_type: str = "literal"
    language: Optional[str] = None
    is_public: bool = True
    pattern: Optional[str] = None


def _fix_end_of_line(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\n\r", "\n").replace("\r", "\n")


def parse_target(target: str) -> Optional[MappingRule]:
    """Parse `term ^^datatype @lang public ~ pattern` (source left empty)."""
    head, tilde, pattern = target.partition("~")
    tokens = head.split()
    if not tokens or not _TERM_RE.match(tokens[0]):
        return None

    rule = MappingRule(source="", term=tokens[0])
    for token in tokens[1:]:
        if token.startswith("^^") and len(token) > 2:
            rule.data_type = token[2:]
        elif token.startswith("@") and len(token) > 1:
            rule.language = token[1:]
        elif token in ("public", "private"):
            rule.is_public = token == "public"
        else:
            return None

    if tilde:
        rule.pattern = pattern.strip() or None
    return rule


def parse_rules(rule_text: str) -> List[MappingRule]:
    """Parse rule text into mapping rules, skipping unparseable lines."""
    rules: List[MappingRule] = []
    for line in _fix_end_of_line(rule_text or "").split("\n"):
        line = line.strip()
        if not line or line.startswith(("#", "[")):
            continue

        # The separator "=" may appear inside the pattern, so it is searched
        # before the first "~", except for constants.
        if line.startswith(CONSTANT_SOURCE):
            pos = line.find("=")
        else:
            pos = line.split("~", 1)[0].rfind("=")
        if pos < 0:
            logger.debug(f"Skipping rule line without mapping: {line!r}")
            continue

        source = line[:pos].strip()
        target = line[pos + 1:].strip()
        rule = parse_target(target) if source and target else None
        if rule is None:
            logger.debug(f"Skipping unparseable rule line: {line!r}")
            continue
        rule.source = source
        rules.append(rule)
    return rules


class MappingRuleEvaluator(RuleEvaluator):
    """Evaluates mapping rules against a flat field map."""

    def evaluate(self, rule_text: str, fields: Dict[str, List[str]]) -> List[Value]:
        values: List[Value] = []
        for rule in parse_rules(rule_text):
            if rule.source == CONSTANT_SOURCE:
                if not rule.pattern:
                    continue
                sources = [""]
            else:
                sources = fields.get(rule.source, [])

            for source in sources:
                text = _VALUE_PLACEHOLDER_RE.sub(lambda _m: source, rule.pattern) if rule.pattern else source
                value = self._build_value(rule, text.strip())
                if value is not None:
                    values.append(value)
        return values

    def _build_value(self, rule: MappingRule, text: str) -> Optional[Value]:
        if not text:
            return None

        kind = main_data_type(rule.data_type)
        if kind == PayloadKind.RESOURCE:
            try:
                payload = ResourceRefPayload(int(text))
            except ValueError:
                logger.debug(f"Rule for {rule.term} produced a non-numeric resource id: {text!r}")
                return None
        elif kind == PayloadKind.URI:
            payload = UriPayload(text)
        else:
            payload = LiteralPayload(text)

        return Value(
            property_term=rule.term,
            payload=payload,
            data_type=rule.data_type,
            is_public=rule.is_public,
            language=rule.language if kind == PayloadKind.LITERAL else None,
        )
