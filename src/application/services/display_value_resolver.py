"""
Display Value Resolver

Read-only view of a resource for display:
- properties ordered by the template bindings, then the remaining ones
- optional removal of private values (and of properties left empty)
- one placeholder value for empty properties whose data set declares a
  display text, e.g. "[unknown photographer]"
"""

from typing import Dict, List, Optional

from domain.resource_models import Resource, Value
from domain.template_models import Template


class DisplayValueResolver:
    """Builds the ordered display values of a resource."""

    def display_values(
        self,
        template: Optional[Template],
        resource: Resource,
        hide_private: bool = False,
    ) -> Dict[str, List[Value]]:
        """
        Args:
            template: Template of the resource, if any
            resource: Resource to display
            hide_private: Drop private values, as on public sites

        Returns:
            Ordered mapping of property term to values to display
        """
        values: Dict[str, List[Value]] = {term: list(vals) for term, vals in resource.values.items()}

        if hide_private:
            values = {
                term: [v for v in vals if v.is_public]
                for term, vals in values.items()
            }
            values = {term: vals for term, vals in values.items() if vals}

        if template is None or not template.bindings:
            return values

        ordered: Dict[str, List[Value]] = {}
        for binding in template.bindings:
            term = binding.property_term
            if term in ordered:
                continue
            if values.get(term):
                ordered[term] = values[term]
                continue
            for data_set in binding.data:
                display_text = (data_set.display_value or "").strip()
                if display_text:
                    # Only one placeholder even when several data sets declare one.
                    ordered[term] = [
                        Value.literal(term, display_text, is_public=True, is_placeholder=True)
                    ]
                    break

        for term, vals in values.items():
            if term not in ordered and vals:
                ordered[term] = vals
        return ordered
