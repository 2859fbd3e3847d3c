"""Shared fixtures: throwaway TypeScript projects written into tmp_path."""
import textwrap
from pathlib import Path

import pytest

from deprecated_tracker.analyzer.extractor import SourceFile
from deprecated_tracker.analyzer.parser import LanguageParser


def write_files(root: Path, files: dict) -> Path:
    """Write ``{relative_path: source}`` below ``root`` (sources are dedented)."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip('\n'), encoding='utf-8')
    return root


def parse_snippet(source: str, language: str = 'typescript', path: str = '/project/src/sample.ts') -> SourceFile:
    """Parse a dedented snippet into a SourceFile without touching disk."""
    data = textwrap.dedent(source).lstrip('\n').encode('utf-8')
    return SourceFile(
        path=path,
        relative_path=path.rsplit('/', 1)[-1],
        source=data,
        tree=LanguageParser(language).parse_source(data),
        language=language,
    )


@pytest.fixture
def project(tmp_path):
    """Factory writing files into a fresh project root and returning the root."""
    root = tmp_path / 'project'
    root.mkdir()

    def _write(files: dict) -> Path:
        return write_files(root, files)

    return _write


@pytest.fixture
def isolated_env(monkeypatch):
    """Keep tool settings independent of the developer's environment."""
    for name in ('DEPTRACKER_STATE_DIR', 'DEPTRACKER_MAX_WORKERS', 'DEPTRACKER_LOG_LEVEL'):
        monkeypatch.delenv(name, raising=False)
