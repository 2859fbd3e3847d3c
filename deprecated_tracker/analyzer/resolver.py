import json
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .config_parser import CompilerPaths

SOURCE_EXTENSIONS = ['.ts', '.tsx', '.d.ts', '.mts', '.cts', '.js', '.jsx', '.mjs', '.cjs']
DECLARATION_EXTENSIONS = ['.d.ts', '.d.mts', '.d.cts', '.ts', '.tsx']

# ESM TypeScript writes './a.js' for a source file './a.ts'
JS_TO_TS_EXTENSIONS = {
    '.js': ['.ts', '.tsx', '.d.ts'],
    '.jsx': ['.tsx'],
    '.mjs': ['.mts', '.d.mts'],
    '.cjs': ['.cts', '.d.cts'],
}


class ModuleResolver:
    """
    Resolves module specifiers to absolute file paths on disk following the
    TypeScript resolution rules: relative paths, tsconfig `paths` aliases,
    `baseUrl`, and declaration files of packages under node_modules.
    """

    def __init__(self, project_root: Path, compiler_paths: Optional[CompilerPaths] = None,
                 skip_package: Optional[Callable[[str], bool]] = None):
        """
        Args:
            project_root: Absolute project root; node_modules lookup stops here.
            compiler_paths: baseUrl/paths settings from tsconfig.json.
            skip_package: Predicate for bare specifiers that must not be loaded
                (trusted packages).
        """
        self.root = project_root.resolve()
        self.compiler_paths = compiler_paths or CompilerPaths()
        self.skip_package = skip_package
        self._cache: Dict[Tuple[str, str], Optional[Path]] = {}

    def resolve(self, current_file: str | Path, specifier: str) -> Optional[Path]:
        """
        Determines the absolute file path of an imported module.

        Args:
            current_file: The absolute path of the file containing the import.
            specifier: The string used in the import statement (e.g., './utils', 'lodash').
        """
        if not specifier:
            return None
        current_dir = str(Path(current_file).parent)
        key = (current_dir, specifier)
        if key not in self._cache:
            self._cache[key] = self._resolve_uncached(Path(current_dir), specifier)
        return self._cache[key]

    def is_bare(self, specifier: str) -> bool:
        return not (specifier.startswith('.') or specifier.startswith('/'))

    def _resolve_uncached(self, current_dir: Path, specifier: str) -> Optional[Path]:
        # 1. Relative / absolute paths
        if not self.is_bare(specifier):
            candidate = (current_dir / specifier).resolve()
            return self._probe_path(candidate)

        # 2. Path aliases (tsconfig)
        resolved = self._resolve_alias(specifier)
        if resolved is not None:
            return resolved

        # 3. baseUrl
        if self.compiler_paths.base_url is not None:
            resolved = self._probe_path(self.compiler_paths.base_url / specifier)
            if resolved is not None:
                return resolved

        # 4. Packages
        if self.skip_package is not None and self.skip_package(specifier):
            return None
        return self._resolve_package(current_dir, specifier)

    def _resolve_alias(self, specifier: str) -> Optional[Path]:
        base = self.compiler_paths.paths_base
        if base is None:
            return None

        # Exact aliases first, then the longest wildcard prefix
        matches: List[Tuple[int, str, List[str]]] = []
        for alias, targets in self.compiler_paths.paths.items():
            if '*' not in alias:
                if alias == specifier:
                    matches.append((len(alias) + 1000, '', targets))
                continue
            prefix, _, suffix = alias.partition('*')
            if (specifier.startswith(prefix) and specifier.endswith(suffix)
                    and len(specifier) >= len(prefix) + len(suffix)):
                captured = specifier[len(prefix):len(specifier) - len(suffix)]
                matches.append((len(prefix), captured, targets))

        for _, captured, targets in sorted(matches, key=lambda m: -m[0]):
            for target in targets:
                candidate = base / target.replace('*', captured)
                resolved = self._probe_path(candidate)
                if resolved is not None:
                    return resolved
        return None

    def _probe_path(self, path: Path) -> Optional[Path]:
        """
        Probes for file existence using TS/JS resolution rules:
        1. Exact match
        2. Extensions (.ts, .tsx, .d.ts, .js, ...)
        3. '.js' written for a '.ts' source
        4. Directory index files
        """
        if path.is_file() and path.suffix.lower() in {'.ts', '.tsx', '.mts', '.cts', '.js', '.jsx', '.mjs', '.cjs'}:
            return path.resolve()

        for ext in SOURCE_EXTENSIONS:
            candidate = path.with_name(path.name + ext)
            if candidate.is_file():
                return candidate.resolve()

        suffix = path.suffix.lower()
        for ext in JS_TO_TS_EXTENSIONS.get(suffix, []):
            candidate = path.with_name(path.name[:-len(suffix)] + ext)
            if candidate.is_file():
                return candidate.resolve()

        if path.is_dir():
            package_json = path / 'package.json'
            if package_json.is_file():
                resolved = self._resolve_package_entry(path)
                if resolved is not None:
                    return resolved
            for ext in SOURCE_EXTENSIONS:
                index_file = path / f"index{ext}"
                if index_file.is_file():
                    return index_file.resolve()

        return None

    def _split_package(self, specifier: str) -> Tuple[str, str]:
        parts = specifier.split('/')
        if specifier.startswith('@') and len(parts) >= 2:
            return '/'.join(parts[:2]), '/'.join(parts[2:])
        return parts[0], '/'.join(parts[1:])

    def _node_modules_dirs(self, current_dir: Path):
        directory = current_dir
        while True:
            candidate = directory / 'node_modules'
            if candidate.is_dir():
                yield candidate
            if directory == self.root or directory.parent == directory:
                break
            if self.root not in directory.parents:
                break
            directory = directory.parent

    def _resolve_package(self, current_dir: Path, specifier: str) -> Optional[Path]:
        package, subpath = self._split_package(specifier)
        if package.startswith('@types/'):
            types_name = package
        elif package.startswith('@'):
            types_name = '@types/' + package[1:].replace('/', '__')
        else:
            types_name = '@types/' + package

        for node_modules in self._node_modules_dirs(current_dir):
            for name in (package, types_name):
                package_dir = node_modules / name
                if not package_dir.is_dir():
                    continue
                if subpath:
                    resolved = self._probe_declaration(package_dir / subpath)
                else:
                    resolved = self._resolve_package_entry(package_dir)
                if resolved is not None:
                    return resolved
        return None

    def _resolve_package_entry(self, package_dir: Path) -> Optional[Path]:
        package_json = package_dir / 'package.json'
        if package_json.is_file():
            try:
                data = json.loads(package_json.read_text(encoding='utf-8'))
            except (IOError, OSError, json.JSONDecodeError):
                data = {}
            if isinstance(data, dict):
                for key in ('types', 'typings'):
                    entry = data.get(key)
                    if isinstance(entry, str):
                        resolved = self._probe_declaration(package_dir / entry)
                        if resolved is not None:
                            return resolved
                main = data.get('main')
                if isinstance(main, str):
                    resolved = self._probe_declaration(package_dir / main)
                    if resolved is not None:
                        return resolved
        return self._probe_declaration(package_dir / 'index')

    def _probe_declaration(self, path: Path) -> Optional[Path]:
        """Like _probe_path, but only accepts TypeScript sources and declaration files."""
        if path.is_file() and path.name.endswith(('.d.ts', '.d.mts', '.d.cts', '.ts', '.tsx')):
            return path.resolve()
        stem = path
        for suffix in ('.js', '.mjs', '.cjs'):
            if path.name.endswith(suffix):
                stem = path.with_name(path.name[:-len(suffix)])
                break
        for ext in DECLARATION_EXTENSIONS:
            candidate = stem.with_name(stem.name + ext)
            if candidate.is_file():
                return candidate.resolve()
        if path.is_dir():
            for ext in DECLARATION_EXTENSIONS:
                index_file = path / f"index{ext}"
                if index_file.is_file():
                    return index_file.resolve()
        return None
