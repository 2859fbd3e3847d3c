"""Aggregate statistics over scan results."""
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from ..models import DECLARATION_KINDS, USAGE_KIND, DeprecatedItem

TOP_LIMIT = 10
QUICK_WIN_MAX_USAGES = 2


@dataclass
class DeprecationStatistics:
    total_items: int = 0
    total_declarations: int = 0
    total_usages: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)
    top_most_used: List[Dict[str, Any]] = field(default_factory=list)
    hotspot_files: List[Dict[str, Any]] = field(default_factory=list)
    quick_wins: List[Dict[str, Any]] = field(default_factory=list)
    needs_attention: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalItems': self.total_items,
            'totalDeclarations': self.total_declarations,
            'totalUsages': self.total_usages,
            'byKind': dict(self.by_kind),
            'topMostUsed': list(self.top_most_used),
            'hotspotFiles': list(self.hotspot_files),
            'quickWins': list(self.quick_wins),
            'needsAttention': list(self.needs_attention),
        }


class StatisticsCalculator:
    """Read-only aggregation over a result list."""

    def calculate_statistics(self, items: Sequence[DeprecatedItem]) -> DeprecationStatistics:
        usages = [item for item in items if item.kind == USAGE_KIND]
        usage_counts = self._usage_counts(usages)
        return DeprecationStatistics(
            total_items=len(items),
            total_declarations=len(items) - len(usages),
            total_usages=len(usages),
            by_kind=self._by_kind(items),
            top_most_used=self._top_most_used(usage_counts),
            hotspot_files=self._hotspot_files(items),
            quick_wins=self._quick_wins(usage_counts),
            needs_attention=self._needs_attention(items),
        )

    @staticmethod
    def _by_kind(items: Sequence[DeprecatedItem]) -> Dict[str, int]:
        by_kind = {kind: 0 for kind in DECLARATION_KINDS}
        for item in items:
            if item.kind in by_kind:
                by_kind[item.kind] += 1
        return by_kind

    @staticmethod
    def _usage_counts(usages: Sequence[DeprecatedItem]) -> List[Dict[str, Any]]:
        """Usage count per linked declaration, in first-seen order."""
        groups: 'OrderedDict[str, Dict[str, Any]]' = OrderedDict()
        for item in usages:
            declaration = item.deprecated_declaration
            key = f"{declaration.name}|{declaration.file_path}"
            if key not in groups:
                groups[key] = {
                    'name': declaration.name,
                    'filePath': declaration.file_path,
                    'fileName': declaration.file_name,
                    'usageCount': 0,
                }
            groups[key]['usageCount'] += 1
        return list(groups.values())

    @staticmethod
    def _top_most_used(counts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        # sorted() is stable: ties keep first-seen order
        return sorted(counts, key=lambda c: -c['usageCount'])[:TOP_LIMIT]

    @staticmethod
    def _hotspot_files(items: Sequence[DeprecatedItem]) -> List[Dict[str, Any]]:
        files: 'OrderedDict[str, Dict[str, Any]]' = OrderedDict()
        for item in items:
            entry = files.setdefault(item.file_path, {
                'fileName': item.file_name,
                'filePath': item.file_path,
                'count': 0,
            })
            entry['count'] += 1
        return sorted(files.values(), key=lambda f: -f['count'])[:TOP_LIMIT]

    @staticmethod
    def _quick_wins(counts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        wins = [c for c in counts if c['usageCount'] <= QUICK_WIN_MAX_USAGES]
        return sorted(wins, key=lambda c: c['usageCount'])[:TOP_LIMIT]

    @staticmethod
    def _needs_attention(items: Sequence[DeprecatedItem]) -> List[Dict[str, Any]]:
        missing = [item for item in items if item.kind != USAGE_KIND and not item.deprecation_reason]
        return [
            {'name': item.name, 'filePath': item.file_path, 'fileName': item.file_name, 'kind': item.kind}
            for item in missing[:TOP_LIMIT]
        ]
