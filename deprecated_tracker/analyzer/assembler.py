"""Merge declaration and usage items into the final result set."""
from typing import List, Optional, Sequence

from ..models import DeprecatedItem
from ..policy.suppression import SuppressionPolicy


class ResultAssembler:
    """Order, filter, de-duplicate and assign severity."""

    def __init__(self, policy: SuppressionPolicy, default_severity: Optional[str] = None):
        self.policy = policy
        self.default_severity = default_severity or policy.config.default_severity

    def _member_ignored(self, item: DeprecatedItem) -> bool:
        if self.policy.is_member_ignored(item.file_path, item.name):
            return True
        declaration = item.deprecated_declaration
        if declaration is not None:
            return self.policy.is_member_ignored(declaration.file_path, declaration.name)
        return False

    def assemble(self, declarations: Sequence[DeprecatedItem],
                 usages: Sequence[DeprecatedItem]) -> List[DeprecatedItem]:
        """Declarations first, then usages, each in discovery order.

        One item per syntactic position; ignored members are dropped.
        """
        results = []
        seen = set()
        for item in list(declarations) + list(usages):
            if self.policy.is_file_ignored(item.file_path) or self._member_ignored(item):
                continue
            key = item.position_key
            if key in seen:
                continue
            seen.add(key)
            results.append(item.with_severity(item.severity or self.default_severity))
        return results
