"""Deprecation scan entrypoints.

Pipeline: source files -> SymbolModelBuilder -> DeclarationClassifier +
UsageResolver over the same symbol graph -> ResultAssembler.
"""
import asyncio
import os
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from loguru import logger

from ..config import DEFAULT_STATE_DIR
from ..errors import ScanError
from ..models import USAGE_KIND, DeprecatedItem
from ..policy.ignore_rules import IgnoreRules
from ..policy.pattern_matcher import normalize_path
from ..policy.suppression import SuppressionPolicy
from ..policy.tracker_config import DeprecatedTrackerConfig
from .assembler import ResultAssembler
from .classifier import DeclarationClassifier
from .config_parser import TsConfigReader
from .graph_builder import DependencyGraphBuilder, discover_files
from .resolver import ModuleResolver
from .symbol_model import SymbolModel, SymbolModelBuilder
from .usage_resolver import UsageResolver


@dataclass
class ScanResult:
    """Outcome of one scan.

    Attributes:
        items: Declarations then usages, de-duplicated, with severity
        warnings: Skipped files, invalid patterns and config problems
        files_scanned: Number of files whose results were reported
        duration: Wall time in seconds
    """
    items: List[DeprecatedItem] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    files_scanned: int = 0
    duration: float = 0.0

    @property
    def declarations(self) -> List[DeprecatedItem]:
        return [item for item in self.items if item.kind != USAGE_KIND]

    @property
    def usages(self) -> List[DeprecatedItem]:
        return [item for item in self.items if item.kind == USAGE_KIND]


class DeprecationScanner:
    """Scan a project, a folder, or a set of files for deprecated declarations and their usages."""

    def __init__(self, project_root: str | Path, config: Optional[DeprecatedTrackerConfig] = None,
                 ignore_rules: Optional[IgnoreRules] = None, max_workers: int = 4,
                 state_dir_name: str = DEFAULT_STATE_DIR):
        """Initialize scanner.

        Args:
            project_root: Root directory of the project
            config: Scan configuration snapshot (defaults when None)
            ignore_rules: Ignore snapshot (nothing ignored when None)
            max_workers: Parser threads
            state_dir_name: Tool state directory skipped during discovery

        Raises:
            ScanError: If the root is missing or unreadable
        """
        root = Path(project_root)
        if not root.is_dir():
            raise ScanError(f"Project root does not exist or is not a directory: {project_root}")
        if not os.access(root, os.R_OK | os.X_OK):
            raise ScanError(f"Project root is not readable: {project_root}")

        self.project_root = root.resolve()
        self.config = config or DeprecatedTrackerConfig()
        self.ignore_rules = ignore_rules or IgnoreRules()
        self.max_workers = max_workers
        self.state_dir_name = state_dir_name
        self.cancel_event = threading.Event()
        self.policy = SuppressionPolicy(self.config, self.ignore_rules, self.project_root)

        tsconfig = TsConfigReader(self.project_root)
        self.compiler_paths = tsconfig.read()
        self._setup_warnings = self.policy.warnings + tsconfig.warnings
        self.last_model: Optional[SymbolModel] = None

    def cancel(self):
        """Request cooperative cancellation; the running scan raises ScanCancelledError."""
        self.cancel_event.set()

    def discover(self) -> List[Path]:
        return discover_files(self.project_root, (self.state_dir_name,))

    def scan_project(self) -> ScanResult:
        """Scan every discovered file of the project."""
        return self._run(None)

    def scan_folder(self, folder: str | Path) -> ScanResult:
        """Scan only files inside ``folder`` (resolution still sees the whole project).

        Raises:
            ScanError: If the folder is missing or lies outside the project root
        """
        path = Path(folder)
        if not path.is_absolute():
            path = self.project_root / path
        path = path.resolve()
        if path != self.project_root and self.project_root not in path.parents:
            raise ScanError(f"Folder is outside the project root: {folder}")
        if not path.is_dir():
            raise ScanError(f"Folder does not exist: {folder}")
        targets = [f for f in self.discover() if path == f.parent or path in f.parents]
        return self._run(targets)

    def scan_files(self, files: Iterable[str | Path], include_dependents: bool = False) -> ScanResult:
        """Scan specific files, optionally with every file that transitively imports them.

        Args:
            files: Files to rescan (absolute or relative to the project root)
            include_dependents: Also rescan importers, found on the module dependency graph
        """
        warnings = []
        targets = []
        for file_path in files:
            path = Path(file_path)
            if not path.is_absolute():
                path = self.project_root / path
            if not path.is_file():
                message = f"File not found, skipped: {file_path}"
                logger.warning(message)
                warnings.append(message)
                continue
            targets.append(path.resolve())

        if include_dependents and targets:
            resolver = ModuleResolver(self.project_root, self.compiler_paths,
                                      skip_package=self.policy.is_package_trusted)
            builder = DependencyGraphBuilder(self.project_root, resolver)
            builder.build_graph(self.discover())
            dependents = builder.dependents(normalize_path(str(t)) for t in targets)
            logger.debug(f"{len(dependents)} dependent files added to the rescan")
            targets.extend(Path(p) for p in sorted(dependents))

        result = self._run(targets)
        result.warnings = warnings + result.warnings
        return result

    def _run(self, targets: Optional[List[Path]]) -> ScanResult:
        start = time.perf_counter()
        builder = SymbolModelBuilder(
            self.project_root,
            self.policy,
            compiler_paths=self.compiler_paths,
            max_workers=self.max_workers,
            excluded_dirs=(self.state_dir_name,),
            cancel_event=self.cancel_event,
        )
        model = builder.build(targets)
        self.last_model = model

        classifier = DeclarationClassifier(self.policy.marker_specs,
                                           self.config.ignore_deprecated_in_comments)
        declarations = classifier.classify(model.symbols)
        usages = UsageResolver(classifier, self.policy).resolve(model.references)
        items = ResultAssembler(self.policy).assemble(declarations, usages)

        warnings = []
        for message in self._setup_warnings + model.warnings:
            if message not in warnings:
                warnings.append(message)

        duration = time.perf_counter() - start
        logger.debug(f"Scanned {len(model.targets)} files in {duration:.2f}s: "
                     f"{len(declarations)} declarations, {len(usages)} usages")
        return ScanResult(items=items, warnings=warnings,
                          files_scanned=len(model.targets), duration=duration)


async def scan(project_root: str | Path, config: Optional[DeprecatedTrackerConfig] = None,
               ignore_rules: Optional[IgnoreRules] = None, max_workers: int = 4) -> List[DeprecatedItem]:
    """Scan a whole project without blocking the event loop.

    The synchronous scan runs in the loop's default executor; cancelling the
    awaiting task cancels the scan.

    Returns:
        Declarations then usages

    Raises:
        ScanError: If the root is missing or unreadable
        ScanCancelledError: If the scan was cancelled
    """
    scanner = DeprecationScanner(project_root, config, ignore_rules, max_workers=max_workers)
    loop = asyncio.get_running_loop()
    try:
        result = await loop.run_in_executor(None, scanner.scan_project)
    except asyncio.CancelledError:
        scanner.cancel()
        raise
    return result.items
