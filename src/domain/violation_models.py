"""Violation Domain Models.

Structured, property-keyed validation failures. The validator accumulates
every violation of a write before the write is accepted or rejected.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

# Keys for violations that are not scoped to a property.
TEMPLATE_KEY = "o:resource_template"
CLASS_KEY = "o:resource_class"
MEDIA_KEY = "o:media"


class ViolationSeverity(str, Enum):
    """ERROR rejects the write, WARNING is reported only."""

    ERROR = "error"
    WARNING = "warning"


class ViolationCode(str, Enum):
    """Rule that produced a violation."""

    TEMPLATE_NOT_ALLOWED = "template_not_allowed"
    CLASS_REQUIRED = "class_required"
    CLASS_NOT_ALLOWED = "class_not_allowed"
    MEDIA_MINIMUM = "media_minimum"
    INPUT_PATTERN = "input_pattern"
    MIN_LENGTH = "min_length"
    MAX_LENGTH = "max_length"
    MIN_VALUES = "min_values"
    MAX_VALUES = "max_values"
    UNIQUE_VALUE = "unique_value"
    VOCABULARY_APPEND = "vocabulary_append"


@dataclass
class Violation:
    """One validation failure.

    Attributes:
        key: Property term, or a structural key (template, class, media)
        code: Rule that failed
        template: Message with {placeholders}
        params: Values for the placeholders
        severity: ERROR blocks the write, WARNING does not
    """

    key: str
    code: ViolationCode
    template: str
    params: Dict[str, Any] = field(default_factory=dict)
    severity: ViolationSeverity = ViolationSeverity.ERROR

    @property
    def message(self) -> str:
        message = self.template
        for name, value in self.params.items():
            message = message.replace("{" + name + "}", str(value))
        return message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "code": self.code.value,
            "message": self.message,
            "params": self.params,
            "severity": self.severity.value,
        }

    def __str__(self) -> str:
        return f"{self.key}: {self.message}"


class ViolationSet:
    """Ordered collection of violations, grouped by key on demand."""

    def __init__(self, violations: Optional[List[Violation]] = None):
        self._violations: List[Violation] = list(violations or [])

    def add(
        self,
        key: str,
        code: ViolationCode,
        template: str,
        severity: ViolationSeverity = ViolationSeverity.ERROR,
        **params: Any,
    ) -> Violation:
        violation = Violation(key=key, code=code, template=template, params=params, severity=severity)
        self._violations.append(violation)
        return violation

    def extend(self, other: "ViolationSet") -> None:
        self._violations.extend(other)

    @property
    def errors(self) -> List[Violation]:
        return [v for v in self._violations if v.severity == ViolationSeverity.ERROR]

    @property
    def warnings(self) -> List[Violation]:
        return [v for v in self._violations if v.severity == ViolationSeverity.WARNING]

    def has_errors(self) -> bool:
        return any(v.severity == ViolationSeverity.ERROR for v in self._violations)

    def for_key(self, key: str) -> List[Violation]:
        return [v for v in self._violations if v.key == key]

    def codes(self) -> List[ViolationCode]:
        return [v.code for v in self._violations]

    def by_key(self) -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = {}
        for violation in self._violations:
            grouped.setdefault(violation.key, []).append(violation.message)
        return grouped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_errors": self.has_errors(),
            "violations": [v.to_dict() for v in self._violations],
        }

    def __iter__(self) -> Iterator[Violation]:
        return iter(self._violations)

    def __len__(self) -> int:
        return len(self._violations)

    def __bool__(self) -> bool:
        return bool(self._violations)

    def __repr__(self) -> str:
        return f"ViolationSet({self._violations!r})"


class TemplateViolationError(Exception):
    """Raised when a write breaks template constraints; nothing is persisted."""

    def __init__(self, violations: ViolationSet):
        self.violations = violations
        details = "; ".join(str(v) for v in violations.errors)
        super().__init__(f"Resource rejected by template constraints: {details}")
