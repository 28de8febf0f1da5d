"""
Rule Matcher

Answers "which rule mappings satisfy these criteria" against one snapshot.
Set criteria fields must equal the row's field (case-sensitive, on the
stored full names); unset fields match anything. Results keep catalog
insertion order.
"""

from typing import List, Optional

import structlog

from crd_catalog.catalog import CatalogSnapshot
from crd_catalog.models import RuleCriteria, RuleMapping

logger = structlog.get_logger(__name__)


class RuleMatcher:
    """Read-only rule queries over a published snapshot."""

    def __init__(self, snapshot: CatalogSnapshot):
        self._snapshot = snapshot

    def find_rules(self, criteria: Optional[RuleCriteria] = None) -> List[RuleMapping]:
        criteria = criteria or RuleCriteria()
        if criteria.is_empty():
            return self.find_all()
        matches = [rule for rule in self._snapshot.rules if criteria.matches(rule)]
        logger.debug("Rule lookup", criteria=criteria.as_dict(), matches=len(matches))
        return matches

    def find_all(self) -> List[RuleMapping]:
        return list(self._snapshot.rules)

    def find_first(self, criteria: RuleCriteria) -> Optional[RuleMapping]:
        """The first matching row in catalog order, if any."""
        for rule in self._snapshot.rules:
            if criteria.matches(rule):
                return rule
        return None
