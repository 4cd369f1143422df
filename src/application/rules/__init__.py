"""Automatic Value Rules Package.

Provides the default evaluator for template-level automatic value rules.
"""

from .automatic_value_rules import (
    MappingRule,
    MappingRuleEvaluator,
    parse_rules,
)

__all__ = [
    "MappingRule",
    "MappingRuleEvaluator",
    "parse_rules",
]
