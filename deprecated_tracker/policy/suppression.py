"""Layered suppression decisions for files, members and packages.

A SuppressionPolicy is built once per scan from frozen inputs. Pattern
compilation happens in the constructor (invalid globs become warnings), after
which every query is a pure function of those inputs.
"""
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from .ignore_rules import IgnoreRules
from .pattern_matcher import PatternMatcher, normalize_path
from .tracker_config import DeprecatedTrackerConfig

BUILTIN_MARKER = '@deprecated'


@dataclass(frozen=True)
class MarkerSpec:
    """One tag that marks a declaration as deprecated."""
    tag: str
    matcher: 're.Pattern[str]'
    builtin: bool = False

    @classmethod
    def for_tag(cls, tag: str, builtin: bool = False) -> 'MarkerSpec':
        # The tag must not continue into a longer word (@deprecatedSince)
        matcher = re.compile(re.escape(tag) + r'(?![\w$-])')
        return cls(tag=tag, matcher=matcher, builtin=builtin)


def package_name_from_specifier(specifier: str) -> str:
    """Package part of a bare module specifier ('@scope/pkg/sub' -> '@scope/pkg')."""
    parts = specifier.replace('\\', '/').split('/')
    if specifier.startswith('@') and len(parts) >= 2:
        return '/'.join(parts[:2])
    return parts[0]


def package_name_from_path(file_path: str) -> Optional[str]:
    """Package owning a file below node_modules, using the innermost node_modules."""
    parts = normalize_path(file_path).split('/')
    if 'node_modules' not in parts:
        return None
    index = len(parts) - 1 - parts[::-1].index('node_modules')
    rest = parts[index + 1:]
    if not rest:
        return None
    if rest[0].startswith('@') and len(rest) >= 2:
        return f"{rest[0]}/{rest[1]}"
    return rest[0]


class SuppressionPolicy:
    """Decide whether files, members or packages are excluded from results."""

    def __init__(self, config: DeprecatedTrackerConfig, ignore_rules: IgnoreRules,
                 project_root: str | Path | None = None):
        """Initialize the policy.

        Args:
            config: Scan configuration (trusted packages, include/exclude globs, tags)
            ignore_rules: Ignore snapshot for this scan
            project_root: Used to also match file globs against relative paths
        """
        self.config = config
        self.ignore_rules = ignore_rules
        self.project_root = normalize_path(str(project_root)) if project_root else None

        self._include = PatternMatcher(config.include_patterns)
        self._exclude = PatternMatcher(config.exclude_patterns)
        self._ignored_file_patterns = PatternMatcher(ignore_rules.file_patterns)
        self._ignored_member_patterns = PatternMatcher(ignore_rules.method_patterns)
        self._trusted = tuple(p.strip().rstrip('/') for p in config.trusted_packages if p.strip())

        self.warnings: List[str] = []
        for matcher in (self._include, self._exclude,
                        self._ignored_file_patterns, self._ignored_member_patterns):
            self.warnings.extend(matcher.warnings)

        self.marker_specs: Tuple[MarkerSpec, ...] = self._build_marker_specs()

    def _build_marker_specs(self) -> Tuple[MarkerSpec, ...]:
        specs = [MarkerSpec.for_tag(BUILTIN_MARKER, builtin=True)]
        seen = {BUILTIN_MARKER.lower()}
        for tag in self.config.enabled_tags:
            key = tag.tag.strip().lower()
            if key and key not in seen:
                seen.add(key)
                specs.append(MarkerSpec.for_tag(tag.tag.strip()))
        return tuple(specs)

    @property
    def marker_tags(self) -> List[str]:
        return [spec.tag for spec in self.marker_specs]

    def _path_forms(self, path: str) -> Tuple[str, ...]:
        normalized = normalize_path(path)
        if self.project_root and normalized.startswith(self.project_root + '/'):
            return normalized, normalized[len(self.project_root) + 1:]
        if self.project_root and not os.path.isabs(normalized):
            return normalize_path(f"{self.project_root}/{normalized}"), normalized
        return (normalized,)

    def is_file_included(self, path: str) -> bool:
        """Apply config include/exclude globs; exclusion wins."""
        forms = self._path_forms(path)
        if self._exclude.matches(*forms):
            return False
        if self._include:
            return self._include.matches(*forms)
        # Only invalid include patterns configured: nothing can match them
        return not self.config.include_patterns

    def is_file_ignored(self, path: str) -> bool:
        """True if the file is explicitly ignored or matches an ignore glob."""
        forms = self._path_forms(path)
        if any(form in self.ignore_rules.files for form in forms):
            return True
        return self._ignored_file_patterns.matches(*forms)

    def is_member_ignored(self, path: str, name: str) -> bool:
        """True if ``name`` is ignored in ``path``, globally, or by a member glob."""
        if not name:
            return False
        if name in self.ignore_rules.methods_global:
            return True
        for form in self._path_forms(path):
            if name in self.ignore_rules.methods.get(form, ()):
                return True
        return self._ignored_member_patterns.matches(name)

    def is_package_trusted(self, module_or_package: Optional[str]) -> bool:
        """True if a module specifier or package name belongs to a trusted package.

        'rxjs/operators' is covered by 'rxjs'; '@angular/core' is covered by
        '@angular'. Relative specifiers are never trusted.
        """
        if not module_or_package or module_or_package.startswith('.'):
            return False
        specifier = module_or_package.replace('\\', '/')
        for trusted in self._trusted:
            if specifier == trusted or specifier.startswith(trusted + '/'):
                return True
        return False

    def is_path_in_trusted_package(self, file_path: str) -> bool:
        package = package_name_from_path(file_path)
        if package is None:
            return False
        # @types/lodash describes lodash
        if package.startswith('@types/'):
            typed = package[len('@types/'):]
            if '__' in typed:
                typed = '@' + typed.replace('__', '/', 1)
            if self.is_package_trusted(typed):
                return True
        return self.is_package_trusted(package)
