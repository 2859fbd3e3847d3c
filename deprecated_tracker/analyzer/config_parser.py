"""tsconfig.json / jsconfig.json reader for module resolution settings."""
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger

TSCONFIG_FILES = ('tsconfig.json', 'jsconfig.json')
MAX_EXTENDS_DEPTH = 8


@dataclass
class CompilerPaths:
    """Resolution-relevant subset of compilerOptions.

    Attributes:
        config_path: File the settings were read from (None when absent)
        base_url: Absolute baseUrl directory, if configured
        paths: Alias pattern -> target patterns, as written
        paths_base: Directory that relative ``paths`` targets are resolved against
    """
    config_path: Optional[Path] = None
    base_url: Optional[Path] = None
    paths: Dict[str, List[str]] = field(default_factory=dict)
    paths_base: Optional[Path] = None


def strip_json_comments(content: str) -> str:
    """Remove // and /* */ comments outside of string literals, then trailing commas."""
    out = []
    i = 0
    n = len(content)
    in_string = False
    while i < n:
        char = content[i]
        if in_string:
            out.append(char)
            if char == '\\' and i + 1 < n:
                out.append(content[i + 1])
                i += 2
                continue
            if char == '"':
                in_string = False
            i += 1
            continue
        if char == '"':
            in_string = True
            out.append(char)
            i += 1
        elif content.startswith('//', i):
            end = content.find('\n', i)
            i = n if end == -1 else end
        elif content.startswith('/*', i):
            end = content.find('*/', i + 2)
            i = n if end == -1 else end + 2
        else:
            out.append(char)
            i += 1
    return re.sub(r',(\s*[}\]])', r'\1', ''.join(out))


class TsConfigReader:
    """Read compilerOptions.baseUrl and compilerOptions.paths for a project."""

    def __init__(self, project_root: str | Path):
        self.project_root = Path(project_root)
        self.warnings: List[str] = []

    def read(self) -> CompilerPaths:
        """Load the first tsconfig.json/jsconfig.json found at the project root.

        Missing or malformed files yield empty settings; problems are reported
        through ``warnings``.
        """
        for name in TSCONFIG_FILES:
            config_path = self.project_root / name
            if config_path.is_file():
                settings = CompilerPaths(config_path=config_path)
                self._apply(config_path, settings, depth=0)
                return settings
        return CompilerPaths()

    def _load_json(self, config_path: Path) -> Optional[dict]:
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = json.loads(strip_json_comments(f.read()))
        except (IOError, OSError, json.JSONDecodeError) as e:
            message = f"Could not parse {config_path}: {e}"
            logger.warning(message)
            self.warnings.append(message)
            return None
        return data if isinstance(data, dict) else None

    def _apply(self, config_path: Path, settings: CompilerPaths, depth: int):
        """Apply a config file over ``settings``, following `extends` first."""
        data = self._load_json(config_path)
        if data is None:
            return

        parent = data.get('extends')
        if isinstance(parent, str) and depth < MAX_EXTENDS_DEPTH:
            parent_path = self._resolve_extends(config_path.parent, parent)
            if parent_path is not None:
                self._apply(parent_path, settings, depth + 1)

        options = data.get('compilerOptions') or {}
        if not isinstance(options, dict):
            return

        base_url = options.get('baseUrl')
        if isinstance(base_url, str):
            settings.base_url = (config_path.parent / base_url).resolve()

        paths = options.get('paths')
        if isinstance(paths, dict):
            settings.paths = {
                alias: [t for t in targets if isinstance(t, str)]
                for alias, targets in paths.items()
                if isinstance(alias, str) and isinstance(targets, list)
            }
            settings.paths_base = settings.base_url or config_path.parent.resolve()

    def _resolve_extends(self, directory: Path, target: str) -> Optional[Path]:
        if target.startswith('.'):
            candidate = (directory / target).resolve()
        else:
            candidate = self.project_root / 'node_modules' / target
        for path in (candidate, candidate.with_name(candidate.name + '.json'), candidate / 'tsconfig.json'):
            if path.is_file():
                return path
        return None
