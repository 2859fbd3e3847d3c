"""Source discovery and module dependency graph using NetworkX."""
import os
from pathlib import Path
from typing import Iterable, List, Set

import networkx as nx
from loguru import logger

from ..policy.pattern_matcher import normalize_path
from .extractor import SourceFile
from .import_tracker import ImportTracker
from .parser import SUPPORTED_LANGUAGES, ParserPool, read_source
from .resolver import ModuleResolver

SOURCE_EXTENSIONS = frozenset(SUPPORTED_LANGUAGES)

# Vendored code, virtual environments, VCS metadata and build output
EXCLUDED_DIRS = frozenset({
    'node_modules', 'bower_components', 'jspm_packages',
    'venv', '.venv', 'env', '.virtualenv', '.tox', 'site-packages', '__pycache__',
    '.git', '.hg', '.svn',
    'dist', 'build', 'out', 'coverage', '.next', '.nuxt', '.cache', '.turbo',
})


def is_source_file(path: str | Path) -> bool:
    return Path(path).suffix.lower() in SOURCE_EXTENSIONS


def discover_files(project_root: str | Path, extra_excluded: Iterable[str] = ()) -> List[Path]:
    """Find all TypeScript/JavaScript sources under the project root.

    Args:
        project_root: Directory to walk
        extra_excluded: Additional directory names to skip (e.g. the tool state dir)

    Returns:
        Sorted absolute paths
    """
    root = Path(project_root).resolve()
    excluded = EXCLUDED_DIRS | set(extra_excluded)
    files = []
    for directory, dir_names, file_names in os.walk(root):
        dir_names[:] = sorted(d for d in dir_names if d not in excluded)
        for name in file_names:
            if is_source_file(name):
                files.append(Path(directory) / name)
    return sorted(files)


def relative_display(path: str | Path, project_root: Path) -> str:
    """Project-relative posix path, or the normalized absolute path outside the root."""
    try:
        return Path(path).resolve().relative_to(project_root).as_posix()
    except ValueError:
        return normalize_path(str(path))


class DependencyGraphBuilder:
    """Build directed dependency graph for project files.

    An edge (A, B) means "file A imports file B"; node keys are normalized
    absolute paths.
    """

    def __init__(self, project_root: str | Path, resolver: ModuleResolver):
        """Initialize graph builder.

        Args:
            project_root: Root directory of project to analyze
            resolver: Module resolver configured with the project's tsconfig paths
        """
        self.project_root = Path(project_root).resolve()
        self.resolver = resolver
        self.graph = nx.DiGraph()
        self._parsers = ParserPool()

    def build_graph(self, files: Iterable[Path]) -> nx.DiGraph:
        """Parse the import statements of every file and connect resolved targets.

        Args:
            files: Project files to include

        Returns:
            NetworkX DiGraph with file dependencies
        """
        for file_path in files:
            self._process_file(Path(file_path))
        return self.graph

    def add_file(self, source_file: SourceFile, specifiers: Iterable[str]):
        """Register an already parsed file and its import specifiers."""
        self.graph.add_node(source_file.path)
        for specifier in specifiers:
            target = self.resolver.resolve(source_file.path, specifier)
            if target is not None:
                self.graph.add_edge(source_file.path, normalize_path(str(target)))

    def _process_file(self, file_path: Path):
        parser = self._parsers.for_path(file_path)
        if parser is None:
            return

        try:
            source = read_source(file_path)
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Skipping {file_path} in dependency graph: {e}")
            return

        path = normalize_path(str(file_path.resolve()))
        source_file = SourceFile(
            path=path,
            relative_path=relative_display(path, self.project_root),
            source=source,
            tree=parser.parse_source(source),
            language=parser.language,
        )
        self.add_file(source_file, ImportTracker(source_file).analyze().specifiers)

    def dependents(self, paths: Iterable[str]) -> Set[str]:
        """All files that transitively import any of ``paths`` (excluding the inputs)."""
        inputs = {normalize_path(str(p)) for p in paths}
        result: Set[str] = set()
        for path in inputs:
            if path in self.graph:
                result.update(nx.ancestors(self.graph, path))
        return result - inputs

