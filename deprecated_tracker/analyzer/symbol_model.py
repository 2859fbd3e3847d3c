"""Project-wide symbol model: parsed files, declarations and bound references."""
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from loguru import logger

from ..errors import ScanCancelledError
from ..policy.pattern_matcher import normalize_path
from ..policy.suppression import SuppressionPolicy
from .config_parser import CompilerPaths
from .extractor import SourceFile, Symbol, SymbolExtractor
from .graph_builder import DependencyGraphBuilder, discover_files, is_source_file, relative_display
from .import_tracker import (
    ASSIGNMENT_EXPORT, DEFAULT_EXPORT, NAMESPACE_IMPORT, ImportBinding, ImportTracker, ModuleInterface,
)
from .parser import LanguageParser, ParserPool, read_source
from .reference_tracker import (
    InheritanceMap, InstanceType, ModuleType, Reference, ReferenceBinder, Scope, StaticType,
    TypeResolver, hoist_declarations,
)
from .resolver import ModuleResolver

EXTERNAL_EXTENSIONS = ('.d.ts', '.d.mts', '.d.cts', '.ts', '.tsx', '.mts', '.cts')
_UNRESOLVED = object()


@dataclass(eq=False)
class ModuleRecord:
    """Everything known about one loaded file."""
    source_file: SourceFile
    symbols: List[Symbol]
    by_name_start: Dict[int, Symbol]
    interface: ModuleInterface
    is_target: bool = False
    scope: Optional[Scope] = None


def read_source_file(path: Path, project_root: Path, parser: LanguageParser,
                     is_external: bool = False) -> Tuple[Optional[SourceFile], Optional[str]]:
    """Read and parse one file.

    Returns:
        (SourceFile, None) on success, (None, warning) when the file must be skipped
    """
    display = relative_display(path, project_root)
    try:
        source = read_source(path)
    except OSError as e:
        return None, f"Skipping unreadable file {display}: {e}"
    except UnicodeDecodeError:
        return None, f"Skipping {display}: not valid UTF-8"

    tree = parser.parse_source(source)
    if tree.root_node.has_error:
        return None, f"Skipping {display}: syntax errors"

    return SourceFile(
        path=normalize_path(str(path)),
        relative_path=display,
        source=source,
        tree=tree,
        language=parser.language,
        is_external=is_external,
    ), None


class SymbolModel:
    """Addressable symbol graph for one scan.

    Target files are parsed up front and have their references bound; other
    project files and external declaration files are loaded on demand when an
    import resolves to them.
    """

    def __init__(self, project_root: Path, policy: SuppressionPolicy, resolver: ModuleResolver,
                 eligible_paths: Iterable[str] = ()):
        """Initialize an empty model.

        Args:
            project_root: Absolute project root
            policy: Suppression policy of the scan
            resolver: Module specifier resolver
            eligible_paths: Project files that may be loaded lazily for resolution
        """
        self.project_root = project_root
        self.policy = policy
        self.resolver = resolver
        self.eligible_paths: Set[str] = set(eligible_paths)

        self.modules: Dict[str, ModuleRecord] = {}
        self.targets: List[str] = []
        self.references: List[Reference] = []
        self.references_by_symbol: Dict[Symbol, List[Reference]] = defaultdict(list)
        self.warnings: List[str] = []

        self.graph_builder = DependencyGraphBuilder(project_root, resolver)
        self.types = TypeResolver(self)
        self.inheritance = InheritanceMap(self._resolve_heritage)

        self._root_prefix = normalize_path(str(project_root)) + '/'
        self._failed: Set[str] = set()
        self._parsers = ParserPool()
        self._member_scopes: Dict[tuple, Scope] = {}
        self._import_cache: Dict[ImportBinding, object] = {}

    @property
    def module_graph(self):
        return self.graph_builder.graph

    @property
    def symbols(self) -> List[Symbol]:
        """Declarations of all target files in discovery order."""
        return [symbol for path in self.targets for symbol in self.modules[path].symbols]

    def _warn(self, message: str):
        logger.warning(message)
        self.warnings.append(message)

    def mark_failed(self, path: str, warning: Optional[str] = None):
        """Remember a file that could not be loaded so it is never retried."""
        self._failed.add(path)
        if warning:
            self._warn(warning)

    # -- loading ------------------------------------------------------------

    def add_module(self, source_file: SourceFile, is_target: bool = False) -> ModuleRecord:
        """Extract declarations and import/export bindings of a parsed file."""
        extractor = SymbolExtractor(source_file)
        symbols = extractor.extract()
        interface = ImportTracker(source_file).analyze()
        record = ModuleRecord(
            source_file=source_file,
            symbols=symbols,
            by_name_start=extractor.by_name_start,
            interface=interface,
            is_target=is_target,
        )
        self.modules[source_file.path] = record
        if is_target:
            self.targets.append(source_file.path)
        if not source_file.is_external:
            self.graph_builder.add_file(source_file, interface.specifiers)
        return record

    def _is_external(self, path: str) -> bool:
        return '/node_modules/' in path or not path.startswith(self._root_prefix)

    def load_module(self, path: str) -> Optional[ModuleRecord]:
        """Record for ``path``, parsing it on first use."""
        record = self.modules.get(path)
        if record is not None or path in self._failed:
            return record

        is_external = self._is_external(path)
        if is_external and not path.endswith(EXTERNAL_EXTENSIONS):
            self._failed.add(path)
            return None
        if not is_external and path not in self.eligible_paths:
            self._failed.add(path)
            return None

        parser = self._parsers.for_path(path)
        if parser is None:
            self._failed.add(path)
            return None

        source_file, warning = read_source_file(Path(path), self.project_root, parser, is_external)
        if source_file is None:
            self._failed.add(path)
            if is_external:
                logger.debug(warning)
            else:
                self._warn(warning)
            return None
        logger.debug(f"Loaded {'declaration file' if is_external else 'module'} {source_file.relative_path}")
        return self.add_module(source_file)

    # -- cross-file resolution ------------------------------------------------

    def resolve_module_path(self, from_file: str, specifier: str) -> Optional[str]:
        """Absolute path of the loaded module a specifier denotes, or None."""
        target = self.resolver.resolve(from_file, specifier)
        if target is None:
            return None
        path = normalize_path(str(target))
        return path if self.load_module(path) is not None else None

    def resolve_import(self, binding: ImportBinding):
        """Symbol or ModuleType an import binding refers to (None when unresolved)."""
        cached = self._import_cache.get(binding, _UNRESOLVED)
        if cached is not _UNRESOLVED:
            return cached
        self._import_cache[binding] = None

        result = None
        target = self.resolve_module_path(binding.file_path, binding.source)
        if target is not None:
            if binding.imported in (NAMESPACE_IMPORT, ASSIGNMENT_EXPORT):
                result = self.resolve_export(target, ASSIGNMENT_EXPORT) or ModuleType(target)
            elif binding.imported == DEFAULT_EXPORT:
                result = (self.resolve_export(target, DEFAULT_EXPORT)
                          or self.resolve_export(target, ASSIGNMENT_EXPORT))
            else:
                result = self.resolve_export(target, binding.imported)

        self._import_cache[binding] = result
        return result

    def resolve_export(self, path: str, name: str, visited: Optional[Set[Tuple[str, str]]] = None):
        """Follow exports, re-exports and `export *` to the exporting declaration.

        Returns:
            Symbol, ModuleType (for `export * as ns`), or None when missing,
            cyclic, or ambiguous between several `export *` sources
        """
        record = self.load_module(path)
        if record is None:
            return None
        visited = visited if visited is not None else set()
        if (path, name) in visited:
            return None
        visited.add((path, name))

        entry = record.interface.exports.get(name)
        if entry is not None:
            if entry.kind == 'local':
                return self._resolve_local_export(path, entry.local_name)
            target = self.resolve_module_path(path, entry.source)
            if target is None:
                return None
            if entry.kind == 'namespace':
                return ModuleType(target)
            return self.resolve_export(target, entry.imported, visited)

        if name in (DEFAULT_EXPORT, ASSIGNMENT_EXPORT):
            return None

        found = []
        for source in record.interface.star_exports:
            target = self.resolve_module_path(path, source)
            if target is None:
                continue
            result = self.resolve_export(target, name, visited)
            if result is not None and not any(result is f or result == f for f in found):
                found.append(result)
        if len(found) > 1:
            logger.debug(f"Ambiguous export {name!r} in {record.source_file.relative_path}")
        return found[0] if len(found) == 1 else None

    def _resolve_local_export(self, path: str, local_name: str):
        bindings = self.module_scope(path).bindings.get(local_name, ())
        symbol = next((b for b in bindings if isinstance(b, Symbol)), None)
        if symbol is not None:
            return symbol
        imported = next((b for b in bindings if isinstance(b, ImportBinding)), None)
        if imported is not None:
            return self.resolve_import(imported)
        return None

    # -- scopes ---------------------------------------------------------------

    def module_scope(self, path: str) -> Scope:
        record = self.modules[path]
        if record.scope is None:
            scope = Scope(record=record)
            for binding in record.interface.imports.values():
                scope.declare(binding.local_name, binding)
            hoist_declarations(record.source_file.tree.root_node, scope)
            record.scope = scope
        return record.scope

    def member_scope(self, symbol: Symbol) -> Scope:
        """Scope in which a declaration's annotation and initializer are evaluated."""
        container = symbol.container
        key = (symbol.file_path, container, symbol.is_static)
        scope = self._member_scopes.get(key)
        if scope is None:
            parent = self.module_scope(symbol.file_path)
            if container is not None and container.kind == 'namespace':
                scope = Scope(parent)
                for member in container.static_members.values():
                    scope.declare(member.name, member)
            elif container is not None and container.kind in ('class', 'interface'):
                this_type = StaticType(container) if symbol.is_static else InstanceType(container)
                scope = Scope(parent, this_type=this_type, class_symbol=container)
            else:
                scope = parent
            self._member_scopes[key] = scope
        return scope

    def _resolve_heritage(self, symbol: Symbol) -> List[Tuple[str, Symbol]]:
        scope = self.member_scope(symbol)
        parents = []
        for relation, node in symbol.heritage:
            if node.type in ('type_identifier', 'generic_type', 'nested_type_identifier'):
                resolved = self.types.resolve_type(node, scope)
                parent = resolved.symbol if isinstance(resolved, InstanceType) else None
            else:
                resolved = self.types.infer(node, scope)
                parent = resolved.symbol if isinstance(resolved, StaticType) else None
            if parent is not None and parent.kind in ('class', 'interface'):
                parents.append((relation, parent))
        return parents

    # -- binding ------------------------------------------------------------

    def bind_references(self, cancel_event: Optional[threading.Event] = None):
        """Bind every reference in the target files, file by file."""
        for path in self.targets:
            if cancel_event is not None and cancel_event.is_set():
                raise ScanCancelledError("Scan cancelled")
            for reference in ReferenceBinder(self, self.modules[path]).bind():
                self.references.append(reference)
                self.references_by_symbol[reference.symbol].append(reference)
        logger.debug(f"Bound {len(self.references)} references in {len(self.targets)} files")

    def usages_of(self, symbol: Symbol) -> List[Reference]:
        return self.references_by_symbol.get(symbol, [])


class SymbolModelBuilder:
    """Parse a project in parallel and build its SymbolModel."""

    def __init__(self, project_root: str | Path, policy: SuppressionPolicy,
                 compiler_paths: Optional[CompilerPaths] = None, max_workers: int = 4,
                 excluded_dirs: Iterable[str] = (), cancel_event: Optional[threading.Event] = None):
        """Initialize builder.

        Args:
            project_root: Root directory of the project
            policy: Include/exclude/ignore and trusted-package decisions
            compiler_paths: tsconfig baseUrl/paths for module resolution
            max_workers: Parser threads
            excluded_dirs: Extra directory names skipped during discovery
            cancel_event: Checked once per file; when set the build raises ScanCancelledError
        """
        self.project_root = Path(project_root).resolve()
        self.policy = policy
        self.compiler_paths = compiler_paths or CompilerPaths()
        self.max_workers = max(1, max_workers)
        self.excluded_dirs = tuple(excluded_dirs)
        self.cancel_event = cancel_event or threading.Event()
        self._parsers = ParserPool()

    def _check_cancelled(self):
        if self.cancel_event.is_set():
            raise ScanCancelledError("Scan cancelled")

    def discover(self) -> List[Path]:
        return discover_files(self.project_root, self.excluded_dirs)

    def select_targets(self, candidates: Iterable[Path]) -> List[str]:
        """Normalized paths of candidates that pass include/exclude and ignore rules."""
        targets = []
        for candidate in candidates:
            path = normalize_path(str(Path(candidate).resolve()))
            if not is_source_file(path):
                continue
            if not self.policy.is_file_included(path):
                logger.debug(f"Excluded by config: {path}")
                continue
            if self.policy.is_file_ignored(path):
                logger.debug(f"Ignored: {path}")
                continue
            if path not in targets:
                targets.append(path)
        return sorted(targets)

    def build(self, target_files: Optional[Iterable[Path]] = None) -> SymbolModel:
        """Build the model.

        Args:
            target_files: Files whose declarations and references are reported;
                every discovered project file when None

        Returns:
            SymbolModel with bound references

        Raises:
            ScanCancelledError: If the cancel event was set during the build
        """
        discovered = self.discover()
        eligible = {normalize_path(str(p)) for p in discovered}
        targets = self.select_targets(discovered if target_files is None else target_files)

        resolver = ModuleResolver(self.project_root, self.compiler_paths,
                                  skip_package=self.policy.is_package_trusted)
        model = SymbolModel(self.project_root, self.policy, resolver, eligible | set(targets))

        parsed = self._parse_all(targets)
        self._check_cancelled()

        for path in targets:
            source_file, warning = parsed.get(path, (None, None))
            if source_file is None:
                model.mark_failed(path, warning)
                continue
            if path not in model.modules:
                model.add_module(source_file, is_target=True)

        self._check_cancelled()
        model.bind_references(self.cancel_event)
        return model

    def _parse_one(self, path: str) -> Tuple[str, Optional[SourceFile], Optional[str]]:
        if self.cancel_event.is_set():
            return path, None, None
        parser = self._parsers.for_path(path)
        if parser is None:
            return path, None, None
        source_file, warning = read_source_file(Path(path), self.project_root, parser)
        return path, source_file, warning

    def _parse_all(self, paths: List[str]) -> Dict[str, Tuple[Optional[SourceFile], Optional[str]]]:
        if not paths:
            return {}
        workers = min(self.max_workers, len(paths))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(self._parse_one, paths))
        logger.debug(f"Parsed {len(paths)} files with {workers} workers")
        return {path: (source_file, warning) for path, source_file, warning in results}
