"""Workspace ignore rules and their persistent store."""
import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Tuple

from loguru import logger

from .pattern_matcher import normalize_path

IGNORE_FILE_NAME = 'ignore_rules.json'


def _unique(values: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for value in values:
        if isinstance(value, str) and value and value not in seen:
            seen.append(value)
    return tuple(seen)


@dataclass(frozen=True)
class IgnoreRules:
    """Frozen snapshot of every ignore axis for one scan.

    Attributes:
        files: Normalized absolute paths of ignored files
        methods: Normalized file path -> member names ignored in that file
        methods_global: Member names ignored in every file
        file_patterns: Glob patterns for ignored files
        method_patterns: Glob patterns for ignored member names
    """
    files: FrozenSet[str] = frozenset()
    methods: Mapping[str, FrozenSet[str]] = field(default_factory=lambda: MappingProxyType({}))
    methods_global: FrozenSet[str] = frozenset()
    file_patterns: Tuple[str, ...] = ()
    method_patterns: Tuple[str, ...] = ()

    def __hash__(self):
        return hash((self.files, tuple(sorted(self.methods)), self.methods_global,
                     self.file_patterns, self.method_patterns))

    @classmethod
    def build(cls, files: Iterable[str] = (), methods: Mapping[str, Iterable[str]] = None,
              methods_global: Iterable[str] = (), file_patterns: Iterable[str] = (),
              method_patterns: Iterable[str] = ()) -> 'IgnoreRules':
        """Create a snapshot from loosely-typed collections, normalizing paths."""
        normalized_methods: Dict[str, FrozenSet[str]] = {}
        for path, names in (methods or {}).items():
            names = frozenset(n for n in names if isinstance(n, str) and n)
            if names:
                key = normalize_path(path)
                normalized_methods[key] = normalized_methods.get(key, frozenset()) | names
        return cls(
            files=frozenset(normalize_path(p) for p in files if isinstance(p, str) and p),
            methods=MappingProxyType(normalized_methods),
            methods_global=frozenset(n for n in methods_global if isinstance(n, str) and n),
            file_patterns=_unique(file_patterns),
            method_patterns=_unique(method_patterns),
        )

    def is_empty(self) -> bool:
        return not (self.files or self.methods or self.methods_global
                    or self.file_patterns or self.method_patterns)

    def to_dict(self) -> Dict:
        return {
            'files': sorted(self.files),
            'methods': {path: sorted(names) for path, names in sorted(self.methods.items())},
            'methodsGlobal': sorted(self.methods_global),
            'filePatterns': list(self.file_patterns),
            'methodPatterns': list(self.method_patterns),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> 'IgnoreRules':
        methods = data.get('methods') or {}
        if not isinstance(methods, dict):
            methods = {}
        return cls.build(
            files=data.get('files') or (),
            methods={k: v for k, v in methods.items() if isinstance(v, list)},
            methods_global=data.get('methodsGlobal') or (),
            file_patterns=data.get('filePatterns') or (),
            method_patterns=data.get('methodPatterns') or (),
        )


class IgnoreManager:
    """Mutate and persist ignore rules for a workspace.

    Every mutator rewrites ``ignore_rules.json`` atomically. Scans never hold a
    reference to this object; they receive ``snapshot()`` instead.
    """

    def __init__(self, state_dir: str | Path):
        """Initialize the store.

        Args:
            state_dir: Directory holding ignore_rules.json (created on first write)
        """
        self.state_dir = Path(state_dir)
        self.rules_path = self.state_dir / IGNORE_FILE_NAME

    def snapshot(self) -> IgnoreRules:
        """Read the current rules from disk.

        Returns:
            Frozen IgnoreRules (empty when nothing is stored or the file is corrupt)
        """
        if not self.rules_path.exists():
            return IgnoreRules()
        try:
            with open(self.rules_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (IOError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read ignore rules from {self.rules_path}: {e}")
            return IgnoreRules()
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed ignore rules in {self.rules_path}")
            return IgnoreRules()
        return IgnoreRules.from_dict(data)

    get_all_rules = snapshot

    def _save(self, rules: IgnoreRules) -> IgnoreRules:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        temp_path = self.rules_path.with_suffix('.tmp')
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(rules.to_dict(), f, indent=2, ensure_ascii=False)
        temp_path.replace(self.rules_path)
        return rules

    def _update(self, **changes) -> IgnoreRules:
        data = self.snapshot().to_dict()
        data.update(changes)
        return self._save(IgnoreRules.from_dict(data))

    def ignore_file(self, file_path: str) -> IgnoreRules:
        rules = self.snapshot()
        return self._update(files=sorted(rules.files | {normalize_path(file_path)}))

    def remove_file_ignore(self, file_path: str) -> IgnoreRules:
        rules = self.snapshot()
        return self._update(files=sorted(rules.files - {normalize_path(file_path)}))

    def ignore_method(self, file_path: str, method_name: str) -> IgnoreRules:
        """Ignore ``method_name`` in ``file_path`` only."""
        methods = self.snapshot().to_dict()['methods']
        key = normalize_path(file_path)
        methods[key] = sorted(set(methods.get(key, [])) | {method_name})
        return self._update(methods=methods)

    def ignore_method_globally(self, method_name: str) -> IgnoreRules:
        rules = self.snapshot()
        return self._update(methodsGlobal=sorted(rules.methods_global | {method_name}))

    def remove_method_ignore(self, method_name: str, file_path: str | None = None) -> IgnoreRules:
        """Stop ignoring a member name.

        Args:
            method_name: Member name to un-ignore
            file_path: Restrict removal to this file; when None the name is
                removed from every file and from the global list
        """
        rules = self.snapshot()
        data = rules.to_dict()
        target = normalize_path(file_path) if file_path else None
        methods = {}
        for path, names in data['methods'].items():
            if target is None or path == target:
                names = [n for n in names if n != method_name]
            if names:
                methods[path] = names
        changes = {'methods': methods}
        if target is None:
            changes['methodsGlobal'] = sorted(rules.methods_global - {method_name})
        return self._update(**changes)

    def add_file_pattern(self, pattern: str) -> IgnoreRules:
        rules = self.snapshot()
        return self._update(filePatterns=list(rules.file_patterns) + [pattern])

    def remove_file_pattern(self, pattern: str) -> IgnoreRules:
        rules = self.snapshot()
        return self._update(filePatterns=[p for p in rules.file_patterns if p != pattern])

    def add_method_pattern(self, pattern: str) -> IgnoreRules:
        rules = self.snapshot()
        return self._update(methodPatterns=list(rules.method_patterns) + [pattern])

    def remove_method_pattern(self, pattern: str) -> IgnoreRules:
        rules = self.snapshot()
        return self._update(methodPatterns=[p for p in rules.method_patterns if p != pattern])

    def clear_all(self) -> IgnoreRules:
        return self._save(IgnoreRules())
